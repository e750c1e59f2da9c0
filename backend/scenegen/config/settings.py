"""
Application Settings Configuration
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Video generation provider (Dream Machine compatible REST API)
    provider_api_key: str = Field(default="", env="PROVIDER_API_KEY")
    provider_base_url: str = Field(
        default="https://api.lumalabs.ai/dream-machine/v1",
        env="PROVIDER_BASE_URL"
    )
    provider_model: str = Field(default="ray-flash-2", env="PROVIDER_MODEL")
    provider_aspect_ratio: str = Field(default="16:9", env="PROVIDER_ASPECT_RATIO")
    provider_timeout_s: float = Field(default=30.0, env="PROVIDER_TIMEOUT_S")
    # Scale of the progress value in status responses: 0-1 or 0-100
    provider_progress_scale: Literal["fraction", "percent"] = Field(
        default="fraction", env="PROVIDER_PROGRESS_SCALE"
    )

    # Supabase (auth + object storage)
    supabase_url: str = Field(default="", env="SUPABASE_URL")
    supabase_service_key: str = Field(default="", env="SUPABASE_SERVICE_KEY")
    storage_timeout_s: float = Field(default=30.0, env="STORAGE_TIMEOUT_S")
    media_bucket: str = Field(default="media", env="MEDIA_BUCKET")
    public_bucket: str = Field(default="public-media", env="PUBLIC_BUCKET")

    # Keyframe delivery
    signed_url_ttl_seconds: int = Field(default=3600, env="SIGNED_URL_TTL_SECONDS")
    keyframe_delivery: Literal["signed", "public_mirror"] = Field(
        default="signed", env="KEYFRAME_DELIVERY"
    )
    photos_prefix_template: str = Field(
        default="{owner_id}/{project}/photos/",
        env="PHOTOS_PREFIX_TEMPLATE"
    )
    scenes_root: str = Field(default="Scenes", env="SCENES_ROOT")

    # Render pipeline webhooks
    webhook_secret: str = Field(default="", env="WEBHOOK_SECRET")
    webhook_signature_header: str = Field(
        default="X-Hub-Signature-256",
        env="WEBHOOK_SIGNATURE_HEADER"
    )

    # Submission
    enforce_idempotency: bool = Field(default=True, env="ENFORCE_IDEMPOTENCY")

    # Database
    database_url: str = Field(default="sqlite:///./scenes.db", env="DATABASE_URL")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", env="REDIS_URL")
    rq_queue_name: str = Field(default="scenegen", env="RQ_QUEUE_NAME")

    # Rate limiting ("memory" is only safe for a single instance)
    rate_limit_backend: Literal["memory", "redis"] = Field(
        default="memory", env="RATE_LIMIT_BACKEND"
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", env="LOG_LEVEL"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
