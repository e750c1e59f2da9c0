"""
Status Poller - Drive a scene's generation to a terminal state
"""

import asyncio
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.config.constants import POLL_INTERVAL_S, POLL_MAX_ATTEMPTS
from scenegen.core.provider_client import ProviderClient
from scenegen.models.generation import GenerationModel, GenerationStatus
from scenegen.services.completion import CompletionHandler
from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.generation_state import transition_generation
from scenegen.services.observability import logger
from scenegen.services.storage import GenerationDB, SceneDB


class PollResult(BaseModel):
    """Snapshot of a scene's current generation"""

    scene_id: str
    generation_id: str
    version: int
    status: str
    progress: Optional[float] = None
    video_key: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    is_terminal: bool = False
    transient_error: Optional[str] = None

    @classmethod
    def from_generation(
        cls,
        generation: GenerationModel,
        transient_error: Optional[str] = None,
    ) -> "PollResult":
        return cls(
            scene_id=generation.scene_id,
            generation_id=generation.generation_id,
            version=generation.version,
            status=generation.status,
            progress=generation.progress_pct,
            video_key=generation.video_key,
            error_code=generation.error_code,
            error_message=generation.error_message,
            is_terminal=generation.is_terminal,
            transient_error=transient_error,
        )


class StatusPoller:
    """
    Poll the provider for a scene's current generation

    Each tick issues at most one provider request and applies at most one
    state change.
    """

    def __init__(
        self,
        provider: ProviderClient,
        completion: CompletionHandler,
        progress_scale: Optional[str] = None,
    ):
        self.provider = provider
        self.completion = completion
        self.progress_scale = progress_scale or settings.provider_progress_scale

    async def poll_once(self, db: Session, owner_id: str, scene_id: str) -> PollResult:
        """
        Run one poll tick for a scene

        Args:
            db: Database session
            owner_id: Authenticated user
            scene_id: Scene identifier

        Returns:
            PollResult after applying any state change

        Raises:
            AppError: NOT_FOUND if the scene or its generation is missing
        """
        scene = SceneDB.get_owned_scene(db, owner_id, scene_id)
        if scene is None:
            raise AppError(ErrorCode.NOT_FOUND, "Scene not found")

        generation = GenerationDB.get_by_version(db, scene.id, scene.version)
        if generation is None:
            raise AppError(ErrorCode.NOT_FOUND, "Generation not found")

        # Terminal results are cached; the provider is not asked again
        if generation.is_terminal:
            return PollResult.from_generation(generation)

        generation_id = generation.generation_id
        transient_error = None

        if not generation.provider_job_id:
            # Submission has not returned a job id yet
            return PollResult.from_generation(generation)

        status = await self.provider.get_status(generation.provider_job_id)

        if not status.success:
            error = status.provider_error
            if error.retryable:
                logger.warning(
                    "poll_transient_error",
                    generation_id=generation_id,
                    code=error.code,
                )
                transient_error = error.code
            else:
                self.completion.fail(
                    db, generation, error.code, error.message, event="poll_status_failed"
                )

        elif status.state == "completed":
            if status.video_url:
                await self.completion.complete_with_remote_video(
                    db, generation, status.video_url, event="poll_completed"
                )
            else:
                self.completion.fail(
                    db,
                    generation,
                    ErrorCode.API_ERROR.value,
                    "Provider reported completion without a video URL",
                    event="poll_completed_without_video",
                )

        elif status.state == "failed":
            self.completion.fail(
                db,
                generation,
                ErrorCode.API_ERROR.value,
                status.failure_reason or "Scene generation failed",
                event="poll_failed",
            )

        elif status.state in ("queued", "processing"):
            values = {}
            if status.progress is not None:
                values["progress_pct"] = _progress_pct(status.progress, self.progress_scale)
            transition_generation(
                db,
                generation_id,
                GenerationStatus.PROCESSING.value,
                event="poll_progress",
                **values,
            )

        else:
            logger.warning(
                "poll_unknown_state",
                generation_id=generation_id,
                raw_state=status.raw_state,
            )

        generation = GenerationDB.get_generation(db, generation_id)
        return PollResult.from_generation(generation, transient_error=transient_error)

    async def watch(
        self,
        db: Session,
        owner_id: str,
        scene_id: str,
        on_update: Optional[Callable[[PollResult], Awaitable[None]]] = None,
        interval_s: float = POLL_INTERVAL_S,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        stop_event: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """
        Poll repeatedly until terminal, out of attempts, or stopped

        Stopping (stop_event set or task cancelled) only stops polling; the
        provider job keeps running.

        Args:
            db: Database session
            owner_id: Authenticated user
            scene_id: Scene identifier
            on_update: Awaited with each tick's result
            interval_s: Delay between ticks
            max_attempts: Maximum number of ticks
            stop_event: Set to stop polling

        Returns:
            Last PollResult
        """
        result = None
        for attempt in range(1, max_attempts + 1):
            result = await self.poll_once(db, owner_id, scene_id)
            if on_update is not None:
                await on_update(result)
            if result.is_terminal:
                break
            if attempt == max_attempts:
                logger.warning("poll_attempts_exhausted", scene_id=scene_id, attempts=attempt)
                break

            if stop_event is not None:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
                except asyncio.TimeoutError:
                    continue
                logger.info("poll_stopped", scene_id=scene_id, attempts=attempt)
                break
            await asyncio.sleep(interval_s)
        return result


def _progress_pct(progress: float, scale: str = "fraction") -> float:
    """Convert provider progress on the given scale to a clamped percentage"""
    if scale == "fraction":
        progress = progress * 100
    return max(0.0, min(100.0, float(progress)))
