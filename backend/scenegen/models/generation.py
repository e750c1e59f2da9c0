"""
Generation Model
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, Float, String, JSON, DateTime, Index, UniqueConstraint

from scenegen.models import Base


class GenerationStatus(str, Enum):
    """Generation lifecycle states"""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({GenerationStatus.COMPLETED.value, GenerationStatus.ERROR.value})


class GenerationModel(Base):
    """
    Generation - One render attempt for a scene

    History is append-only: regenerating a scene adds a row with the
    next version number.
    """

    __tablename__ = "generations"

    id = Column(Integer, primary_key=True, index=True)

    # Public generation identifier
    generation_id = Column(String, unique=True, nullable=False, index=True)

    scene_id = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    # Provider job reference
    provider_job_id = Column(String, nullable=True, index=True)

    status = Column(String, nullable=False, index=True)  # queued, processing, completed, error
    progress_pct = Column(Float, nullable=True)

    # Result
    video_key = Column(String, nullable=True)  # Archived object key
    provider_video_url = Column(String, nullable=True)
    render_meta = Column(JSON, nullable=True)

    # Error handling
    error_code = Column(String, nullable=True)
    error_message = Column(String, nullable=True)

    idempotency_key = Column(String, nullable=False, index=True)
    # Equals idempotency_key while in flight; cleared on terminal status
    dedupe_key = Column(String, nullable=True, unique=True)
    correlation_id = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("scene_id", "version", name="uq_generation_scene_version"),
        Index("idx_generation_created_at", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        """Convert generation model to dictionary"""
        return {
            "generation_id": self.generation_id,
            "scene_id": self.scene_id,
            "version": self.version,
            "provider_job_id": self.provider_job_id,
            "status": self.status,
            "progress_pct": self.progress_pct,
            "video_key": self.video_key,
            "render_meta": self.render_meta,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "idempotency_key": self.idempotency_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @staticmethod
    def generate_generation_id() -> str:
        """Generate a unique generation ID"""
        return str(uuid.uuid4())
