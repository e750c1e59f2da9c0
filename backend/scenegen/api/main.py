"""
FastAPI Main Application
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
import structlog

from scenegen.config.settings import settings
from scenegen.models import get_db, init_db
from scenegen.services.errors import AppError, ErrorCode, error_envelope, new_correlation_id
from scenegen.services.observability import (
    bind_correlation_id,
    clear_log_context,
    configure_logging,
    log_error_event,
)
from scenegen.services.storage import ErrorEventDB


# Configure logging
logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "x-correlation-id"


# Create FastAPI app
app = FastAPI(
    title="SceneGen - Keyframe Scene Generation Service",
    description="Orchestrates keyframe-to-video render jobs against an external provider",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Attach a correlation id to the request, its logs and its response"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
    request.state.correlation_id = correlation_id
    bind_correlation_id(correlation_id)
    try:
        response = await call_next(request)
    finally:
        clear_log_context()
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns:
        JSON response with service health status
    """
    return {
        "status": "healthy",
        "version": "1.0.0",
        "service": "scenegen",
    }


def _correlation_id(request: Request) -> str:
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id is None:
        correlation_id = new_correlation_id()
        request.state.correlation_id = correlation_id
    return correlation_id


def _record_failure(
    request: Request,
    http_status: int,
    code: str,
    message: str,
    correlation_id: str,
    safe_context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a failed request and persist it to error_events"""
    user_id = getattr(request.state, "user_id", None)
    log_error_event(
        route=request.url.path,
        method=request.method,
        status=http_status,
        code=code,
        message=message,
        correlation_id=correlation_id,
        user_id=user_id,
        safe_context=safe_context,
    )

    # Honor get_db overrides so events land in the request's database
    session_factory = request.app.dependency_overrides.get(get_db, get_db)
    sessions = session_factory()
    db = next(sessions)
    try:
        ErrorEventDB.record(
            db,
            route=request.url.path,
            method=request.method,
            status=http_status,
            code=code,
            message=message,
            correlation_id=correlation_id,
            user_id=user_id,
            safe_context=safe_context,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("error_event_persist_failed", correlation_id=correlation_id, error=str(e))
    finally:
        sessions.close()


# Exception handlers
def _serialize_validation_errors(errors):
    cleaned = []
    for err in errors:
        err_copy = {key: value for key, value in err.items() if key != "input"}
        ctx = err_copy.get("ctx")
        if ctx:
            err_copy["ctx"] = {
                key: (str(value) if isinstance(value, Exception) else value)
                for key, value in ctx.items()
            }
        cleaned.append(err_copy)
    return cleaned


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Handle application errors (status from the error code)
    """
    exc.correlation_id = _correlation_id(request)
    safe_context: Dict[str, Any] = {}
    if isinstance(exc.detail, dict):
        safe_context["detail"] = exc.detail
    if exc.upstream is not None:
        safe_context["upstream"] = exc.upstream.to_dict()

    _record_failure(request, exc.status, exc.code.value, exc.message, exc.correlation_id, safe_context)

    return JSONResponse(
        status_code=exc.status,
        content=exc.to_response(),
        headers={CORRELATION_HEADER: exc.correlation_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors (400)
    """
    correlation_id = _correlation_id(request)
    details = _serialize_validation_errors(exc.errors())
    _record_failure(
        request,
        status.HTTP_400_BAD_REQUEST,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        correlation_id,
        {"errors": details},
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(
            code=ErrorCode.VALIDATION_ERROR.value,
            message="Request validation failed",
            correlation_id=correlation_id,
            detail=details,
        ),
        headers={CORRELATION_HEADER: correlation_id},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle generic exceptions (500)
    """
    correlation_id = _correlation_id(request)
    logger.error(
        "unexpected_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    _record_failure(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.SERVER_ERROR.value,
        "An unexpected error occurred",
        correlation_id,
        {"error_type": type(exc).__name__},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            code=ErrorCode.SERVER_ERROR.value,
            message="An unexpected error occurred",
            correlation_id=correlation_id,
        ),
        headers={CORRELATION_HEADER: correlation_id},
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """
    Initialize application on startup
    """
    configure_logging()
    logger.info(
        "application_starting",
        log_level=settings.log_level,
        rate_limit_backend=settings.rate_limit_backend,
        keyframe_delivery=settings.keyframe_delivery,
    )

    init_db()

    logger.info("application_started")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on shutdown
    """
    from scenegen.api.dependencies import get_auth_client, get_downloader, get_provider, get_storage

    for factory in (get_provider, get_storage, get_auth_client, get_downloader):
        if factory.cache_info().currsize:
            await factory().close()
    logger.info("application_shutting_down")


# Import routers
from scenegen.api.routes import scenes, webhooks

# Register routers
app.include_router(scenes.router, prefix="/v1", tags=["scenes"])
app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint

    Returns:
        JSON response with API information
    """
    return {
        "name": "SceneGen API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
