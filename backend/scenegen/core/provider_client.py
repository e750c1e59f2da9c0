"""
Provider Client - Video generation REST API integration
"""

import asyncio
import copy
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
from pydantic import BaseModel

from scenegen.config.settings import settings
from scenegen.config.constants import (
    BODY_SNIPPET_MAX_CHARS,
    DEFAULT_MODEL_PARAMETERS,
    MAX_RETRY_ATTEMPTS,
    MODEL_PARAMETERS,
    PROVIDER_STATE_MAP,
    REDACTED,
    RETRY_BASE_DELAY_S,
)
from scenegen.services.error_classifier import ErrorClassifier
from scenegen.services.errors import UpstreamInfo
from scenegen.services.observability import logger


class Keyframe(BaseModel):
    """Image anchor for interpolation"""

    type: str = "image"
    url: str


class GenerationPayload(BaseModel):
    """Request body for a provider generation"""

    prompt: str
    model: str = "ray-flash-2"
    aspect_ratio: Optional[str] = None
    loop: Optional[bool] = None
    resolution: Optional[str] = None
    duration: Optional[str] = None
    keyframes: Dict[str, Keyframe] = {}


class ProviderError(BaseModel):
    """Classified provider failure"""

    code: str
    message: str
    retryable: bool
    endpoint: str
    status: Optional[int] = None
    body_snippet: Optional[str] = None
    detail: Optional[Any] = None

    def upstream(self) -> UpstreamInfo:
        return UpstreamInfo(
            endpoint=self.endpoint,
            status=self.status or 0,
            body_snippet=self.body_snippet,
        )


class SubmitResult(BaseModel):
    """Outcome of a submission (never raised)"""

    success: bool
    job_id: Optional[str] = None
    provider_error: Optional[ProviderError] = None
    attempts: int = 0


class StatusResult(BaseModel):
    """Outcome of a single status request"""

    success: bool
    job_id: str
    state: Optional[str] = None  # queued, processing, completed, failed
    raw_state: Optional[str] = None
    progress: Optional[float] = None
    video_url: Optional[str] = None
    failure_reason: Optional[str] = None
    provider_error: Optional[ProviderError] = None


def body_snippet(text: Optional[str]) -> Optional[str]:
    """Truncate an upstream body for diagnostics"""
    if text is None:
        return None
    if len(text) > BODY_SNIPPET_MAX_CHARS:
        return text[:BODY_SNIPPET_MAX_CHARS] + "..."
    return text


def redact_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a payload with keyframe URLs removed, safe for logging"""
    redacted = copy.deepcopy(payload)
    keyframes = redacted.get("keyframes")
    if isinstance(keyframes, dict):
        for frame in keyframes.values():
            if isinstance(frame, dict) and "url" in frame:
                frame["url"] = REDACTED
    return redacted


def filter_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only the fields the target model accepts

    Args:
        payload: Request body; "model" selects the whitelist

    Returns:
        Filtered copy of the payload
    """
    allowed = MODEL_PARAMETERS.get(payload.get("model", ""), DEFAULT_MODEL_PARAMETERS)
    stripped = sorted(key for key in payload if key not in allowed)
    if stripped:
        logger.info("provider_payload_fields_stripped", model=payload.get("model"), fields=stripped)
    return {key: value for key, value in payload.items() if key in allowed}


def backoff_delay(attempt: int) -> float:
    """Delay after a failed attempt (1-based): 0.25s, 0.5s, 1s, ..."""
    return RETRY_BASE_DELAY_S * (2 ** (attempt - 1))


def _coerce_progress(value: Any) -> Optional[float]:
    """Numeric progress, or None when the provider sent something else"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("%"))
        except ValueError:
            return None
    return None


def _failure_reason(data: Dict[str, Any]) -> Optional[str]:
    reason = data.get("failure_reason") or data.get("error")
    if reason is None:
        return None
    if isinstance(reason, dict):
        reason = reason.get("message") or reason
    return str(reason)


class ProviderClient:
    """
    Stateless client for the external video generation API

    Submission retries 5xx and transport failures with exponential backoff;
    4xx responses are terminal.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
    ):
        """Initialize provider client"""
        self.api_key = api_key if api_key is not None else settings.provider_api_key
        self.base_url = (base_url or settings.provider_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=timeout or settings.provider_timeout_s
        )
        self.classifier = classifier or ErrorClassifier()
        self.sleep = sleep
        self.max_attempts = max_attempts

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _provider_error(
        self,
        classification: Dict[str, Any],
        endpoint: str,
        status: Optional[int] = None,
        text: Optional[str] = None,
    ) -> ProviderError:
        return ProviderError(
            code=classification["code"],
            message=classification["message"],
            retryable=classification["retryable"],
            endpoint=endpoint,
            status=status,
            body_snippet=body_snippet(text),
        )

    async def submit(
        self,
        payload: Union[GenerationPayload, Dict[str, Any]],
    ) -> SubmitResult:
        """
        Submit a generation request

        Args:
            payload: Generation payload (model-specific fields are filtered)

        Returns:
            SubmitResult with job_id on success or provider_error on failure
        """
        if isinstance(payload, GenerationPayload):
            payload = payload.model_dump(exclude_none=True)
        body = filter_payload(payload)
        endpoint = f"{self.base_url}/generations"

        logger.info("provider_submit", endpoint=endpoint, payload=redact_payload(body))

        last_error: Optional[ProviderError] = None
        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            try:
                response = await self.client.post(endpoint, json=body, headers=self._headers())
            except httpx.TransportError as e:
                classification = self.classifier.classify_exception(e)
                last_error = self._provider_error(classification, endpoint)
                logger.warning(
                    "provider_submit_retry" if attempt < self.max_attempts else "provider_submit_transport_error",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                if attempt < self.max_attempts:
                    await self.sleep(backoff_delay(attempt))
                continue

            if response.is_success:
                try:
                    data = response.json()
                except ValueError:
                    data = None
                job_id = data.get("id") if isinstance(data, dict) else None
                if not job_id or not isinstance(job_id, str):
                    classification = self.classifier.classify_status(0)
                    last_error = self._provider_error(
                        classification, endpoint, response.status_code, response.text
                    )
                    break

                logger.info("provider_submitted", job_id=job_id, attempts=attempt)
                return SubmitResult(success=True, job_id=job_id, attempts=attempt)

            classification = self.classifier.classify_status(
                response.status_code, response.text
            )
            last_error = self._provider_error(
                classification, endpoint, response.status_code, response.text
            )

            if response.status_code >= 500 and attempt < self.max_attempts:
                logger.warning(
                    "provider_submit_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    status=response.status_code,
                )
                await self.sleep(backoff_delay(attempt))
                continue
            break

        logger.error(
            "provider_submit_failed",
            attempts=attempt,
            code=last_error.code if last_error else None,
            status=last_error.status if last_error else None,
            body_snippet=last_error.body_snippet if last_error else None,
        )
        return SubmitResult(success=False, provider_error=last_error, attempts=attempt)

    async def get_status(self, job_id: str) -> StatusResult:
        """
        Fetch provider job status with a single request

        Args:
            job_id: Provider job ID

        Returns:
            StatusResult with normalized state
        """
        endpoint = f"{self.base_url}/generations/{job_id}"
        try:
            response = await self.client.get(endpoint, headers=self._headers())
        except httpx.TransportError as e:
            classification = self.classifier.classify_exception(e)
            logger.warning("provider_status_transport_error", job_id=job_id, error=str(e))
            return StatusResult(
                success=False,
                job_id=job_id,
                provider_error=self._provider_error(classification, endpoint),
            )

        if not response.is_success:
            classification = self.classifier.classify_status(response.status_code, response.text)
            logger.warning(
                "provider_status_failed",
                job_id=job_id,
                status=response.status_code,
            )
            return StatusResult(
                success=False,
                job_id=job_id,
                provider_error=self._provider_error(
                    classification, endpoint, response.status_code, response.text
                ),
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            classification = self.classifier.classify_status(0)
            return StatusResult(
                success=False,
                job_id=job_id,
                provider_error=self._provider_error(
                    classification, endpoint, response.status_code, response.text
                ),
            )

        raw_state = data.get("state") or data.get("status")
        if raw_state is not None:
            raw_state = str(raw_state)
        state = PROVIDER_STATE_MAP.get(str(raw_state).lower()) if raw_state else None

        logger.info("provider_status", job_id=job_id, state=state, raw_state=raw_state)

        return StatusResult(
            success=True,
            job_id=job_id,
            state=state,
            raw_state=raw_state,
            progress=_coerce_progress(data.get("progress")),
            video_url=self._extract_video_url(data),
            failure_reason=_failure_reason(data),
        )

    @staticmethod
    def _extract_video_url(data: Dict[str, Any]) -> Optional[str]:
        video = data.get("video")
        if isinstance(video, dict):
            url = video.get("url") or video.get("download_url")
            if url and isinstance(url, str):
                return url
        assets = data.get("assets")
        if isinstance(assets, dict) and isinstance(assets.get("video"), str):
            return assets["video"]
        return None

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
