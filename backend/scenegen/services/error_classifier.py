"""
Error Classifier - Map provider and local failures onto the error taxonomy
"""

import json
from typing import Dict, Any, Optional
import httpx

from scenegen.services.errors import ErrorCode
from scenegen.services.observability import log_failure_classification


class ErrorClassifier:
    """
    Classify provider failures for retry logic and user-facing messages
    """

    def classify_status(
        self,
        status: int,
        body: Optional[str] = None,
        generation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Classify a non-2xx provider response

        Args:
            status: Upstream HTTP status code
            body: Upstream response body (used to echo validation detail)
            generation_id: Optional generation ID for logging

        Returns:
            Dict with code, message, classification, retryable, terminal
        """
        if status in (401, 403):
            result = self._result(
                ErrorCode.AUTH_ERROR,
                "Authentication failed with the video provider. Please check API key configuration.",
                retryable=False,
            )
        elif status == 429:
            result = self._result(
                ErrorCode.QUOTA_EXCEEDED,
                "Video provider quota exceeded. Please try again later.",
                retryable=False,
            )
        elif 400 <= status < 500:
            result = self._result(
                ErrorCode.VALIDATION_ERROR,
                self._upstream_detail(body) or "Invalid request to the video provider",
                retryable=False,
            )
        elif 500 <= status < 600:
            result = self._result(
                ErrorCode.SERVER_ERROR,
                "Video provider server error. Please try again later.",
                retryable=True,
            )
        else:
            result = self._api_error()

        self._log(result, generation_id)
        return result

    def classify_exception(
        self,
        error: Exception,
        generation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Classify an exception raised while talking to the provider

        Args:
            error: Exception to classify
            generation_id: Optional generation ID for logging

        Returns:
            Dict with code, message, classification, retryable, terminal
        """
        if isinstance(error, httpx.HTTPStatusError):
            return self.classify_status(
                error.response.status_code,
                error.response.text,
                generation_id,
            )

        if isinstance(error, httpx.TimeoutException):
            result = self._result(
                ErrorCode.NETWORK_ERROR,
                "Network timeout while connecting to the video provider",
                retryable=True,
            )
        elif isinstance(error, httpx.TransportError):
            result = self._result(
                ErrorCode.NETWORK_ERROR,
                "Network error while connecting to the video provider",
                retryable=True,
            )
        else:
            result = self._api_error()

        self._log(result, generation_id)
        return result

    def classify_archive_failure(
        self,
        error: Exception,
        generation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Classify a failure to download or persist a rendered asset

        The provider succeeded; the local archive step did not.
        """
        if isinstance(error, httpx.HTTPStatusError):
            message = (
                f"Failed to archive rendered video: download returned "
                f"{error.response.status_code}"
            )
        else:
            message = f"Failed to archive rendered video: {error}"

        result = self._result(ErrorCode.ARCHIVE_ERROR, message, retryable=False)
        self._log(result, generation_id)
        return result

    def _api_error(self) -> Dict[str, Any]:
        return self._result(
            ErrorCode.API_ERROR,
            "Scene generation failed",
            retryable=False,
        )

    @staticmethod
    def _result(code: ErrorCode, message: str, retryable: bool) -> Dict[str, Any]:
        return {
            "code": code.value,
            "message": message,
            "classification": "retryable" if retryable else "non_retryable",
            "retryable": retryable,
            "terminal": not retryable,
        }

    @staticmethod
    def _upstream_detail(body: Optional[str]) -> Optional[str]:
        """Extract a validation message from an upstream JSON body"""
        if not body:
            return None
        try:
            parsed = json.loads(body)
        except ValueError:
            return None
        if not isinstance(parsed, dict):
            return None
        for key in ("detail", "message", "error"):
            value = parsed.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @staticmethod
    def _log(result: Dict[str, Any], generation_id: Optional[str]) -> None:
        log_failure_classification(
            error_code=result["code"],
            classification=result["classification"],
            retryable=result["retryable"],
            generation_id=generation_id,
        )
