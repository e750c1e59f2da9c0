"""
Application Constants Configuration
"""

from typing import Dict, FrozenSet


# Provider Retry Configuration
MAX_RETRY_ATTEMPTS: int = 3
RETRY_BASE_DELAY_S: float = 0.25

# Upstream diagnostics
BODY_SNIPPET_MAX_CHARS: int = 500
REDACTED: str = "<redacted>"

# Per-model request fields accepted by the provider.
# Anything else is stripped before the call.
MODEL_PARAMETERS: Dict[str, FrozenSet[str]] = {
    "ray-flash-2": frozenset(
        {"prompt", "model", "aspect_ratio", "loop", "keyframes", "resolution", "duration"}
    ),
    "ray-2": frozenset(
        {"prompt", "model", "aspect_ratio", "loop", "keyframes", "resolution", "duration"}
    ),
    "ray-1-6": frozenset({"prompt", "model", "aspect_ratio", "loop", "keyframes"}),
}
DEFAULT_MODEL_PARAMETERS: FrozenSet[str] = frozenset({"prompt", "model", "keyframes"})

# Provider job states mapped onto local generation statuses
PROVIDER_STATE_MAP: Dict[str, str] = {
    "pending": "queued",
    "queued": "queued",
    "dreaming": "processing",
    "processing": "processing",
    "completed": "completed",
    "failed": "failed",
}

# Polling
POLL_INTERVAL_S: float = 3.0
POLL_MAX_ATTEMPTS: int = 60  # ~3 minutes at 3s intervals

# Rate Limiting Configuration
RATE_LIMIT_PER_MIN: int = 10
RATE_LIMIT_WINDOW_S: int = 60
RATE_LIMIT_CLEANUP_INTERVAL_S: int = 300

# Storage
STORAGE_LIST_LIMIT: int = 1000
ARCHIVE_CONTENT_TYPE: str = "video/mp4"
DOWNLOAD_TIMEOUT_S: float = 300.0

# Validation
MAX_STORAGE_KEY_LENGTH: int = 1024
