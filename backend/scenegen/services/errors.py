"""
Application Errors - Single tagged error type and response envelope
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Stable error taxonomy shared by retry logic and API responses"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    FORBIDDEN_ERROR = "FORBIDDEN_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT_ERROR = "CONFLICT_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    ARCHIVE_ERROR = "ARCHIVE_ERROR"


# HTTP status returned to the caller for each code
HTTP_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.AUTH_ERROR: 401,
    ErrorCode.FORBIDDEN_ERROR: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT_ERROR: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.QUOTA_EXCEEDED: 502,
    ErrorCode.SERVER_ERROR: 500,
    ErrorCode.NETWORK_ERROR: 502,
    ErrorCode.API_ERROR: 502,
    ErrorCode.ARCHIVE_ERROR: 500,
}


class UpstreamInfo(BaseModel):
    """Diagnostics for a failed upstream call (never the full response)"""

    endpoint: str
    status: int
    body_snippet: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "status": self.status,
            "bodySnippet": self.body_snippet,
        }


def new_correlation_id() -> str:
    return str(uuid.uuid4())


class AppError(Exception):
    """
    Application error tagged with an ErrorCode

    One type for every failure kind; the code decides HTTP status and
    client-facing treatment.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[Any] = None,
        upstream: Optional[UpstreamInfo] = None,
        correlation_id: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.detail = detail
        self.upstream = upstream
        self.correlation_id = correlation_id or new_correlation_id()
        self.status = status or HTTP_STATUS.get(self.code, 500)

    def to_response(self) -> Dict[str, Any]:
        """Render the error response envelope"""
        return error_envelope(
            code=self.code.value,
            message=self.message,
            correlation_id=self.correlation_id,
            detail=self.detail,
            upstream=self.upstream,
        )


def error_envelope(
    code: str,
    message: str,
    correlation_id: str,
    detail: Optional[Any] = None,
    upstream: Optional[UpstreamInfo] = None,
) -> Dict[str, Any]:
    error: Dict[str, Any] = {
        "code": code,
        "message": message,
        "correlationId": correlation_id,
    }
    if detail:
        error["detail"] = detail
    if upstream is not None:
        error["upstream"] = upstream.to_dict()
    return {"ok": False, "error": error}


def ok_envelope(data: Any) -> Dict[str, Any]:
    return {"ok": True, "data": data}
