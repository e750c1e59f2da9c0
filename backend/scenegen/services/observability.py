"""
Observability and Logging Service
"""

import logging
import structlog
from typing import Dict, Any, Optional

from scenegen.config.settings import settings


# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# Get logger
logger = structlog.get_logger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route stdlib logging at the configured level so structlog output is emitted

    Args:
        level: Log level name (defaults to settings.log_level)
    """
    logging.basicConfig(format="%(message)s", level=level or settings.log_level)


def bind_correlation_id(correlation_id: str) -> None:
    """Attach a correlation id to every log line of the current context"""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_failure_classification(
    error_code: str,
    classification: str,
    retryable: bool,
    generation_id: Optional[str] = None,
) -> None:
    """
    Log failure classification event

    Args:
        error_code: Error code (e.g., "SERVER_ERROR", "ARCHIVE_ERROR")
        classification: Error classification ("retryable" or "non_retryable")
        retryable: Whether error is retryable
        generation_id: Optional generation ID for context
    """
    log_data = {
        "error_code": error_code,
        "classification": classification,
        "retryable": retryable,
    }
    if generation_id:
        log_data["generation_id"] = generation_id

    logger.error("failure_classified", **log_data)


def log_state_transition(
    generation_id: str,
    from_statuses: list,
    to_status: str,
    event: str,
    applied: bool,
) -> None:
    """
    Log a generation state transition attempt

    Args:
        generation_id: Generation ID
        from_statuses: Statuses the update was allowed to start from
        to_status: Target status
        event: Event triggering the transition
        applied: False when the conditional update matched no row
    """
    logger.info(
        "generation_transition" if applied else "generation_transition_skipped",
        generation_id=generation_id,
        from_statuses=from_statuses,
        to_status=to_status,
        trigger=event,
    )


def log_error_event(
    route: str,
    method: str,
    status: int,
    code: str,
    message: str,
    correlation_id: str,
    user_id: Optional[str] = None,
    safe_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a request failure with its correlation id

    Args:
        route: Request path
        method: HTTP method
        status: HTTP status returned to the caller
        code: Error code
        message: Error message
        correlation_id: Correlation id echoed to the caller
        user_id: Optional authenticated user
        safe_context: Context that is safe to log (no signed URLs)
    """
    logger.error(
        "request_failed",
        route=route,
        method=method,
        status=status,
        code=code,
        message=message,
        correlation_id=correlation_id,
        user_id=user_id,
        safe_context=safe_context or {},
    )
