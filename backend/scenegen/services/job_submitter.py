"""
Job Submitter - Create scenes and submit their render jobs
"""

from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.config.constants import MAX_STORAGE_KEY_LENGTH
from scenegen.core.idempotency import compute_idempotency_key
from scenegen.core.provider_client import GenerationPayload, Keyframe, ProviderClient
from scenegen.models.generation import GenerationModel, GenerationStatus
from scenegen.models.scene import SceneModel, SceneStatus
from scenegen.services.auth import require_approved_profile
from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.generation_state import transition_generation
from scenegen.services.observability import logger
from scenegen.services.signed_urls import KeyframeUrls, SignedUrlManager, has_parent_segment
from scenegen.services.storage import GenerationDB, ProjectDB, SceneDB, ShotTypeDB


class SubmissionResult(BaseModel):
    """Outcome of a successful submission"""

    scene_id: str
    generation_id: str
    version: int
    ordinal: int
    status: str
    idempotency_key: str
    provider_job_id: Optional[str] = None
    deduplicated: bool = False


def photos_prefix(owner_id: str, project_name: str) -> str:
    return settings.photos_prefix_template.format(owner_id=owner_id, project=project_name)


def validate_keyframe_key(key: str, owner_id: str, project_name: str, field: str) -> None:
    """
    Check a keyframe key belongs to the owner's project photos

    Raises:
        AppError: VALIDATION_ERROR for malformed keys, FORBIDDEN_ERROR for
            keys outside the project's photos prefix
    """
    if not key or len(key) > MAX_STORAGE_KEY_LENGTH:
        raise AppError(
            ErrorCode.VALIDATION_ERROR,
            f"{field} must be a non-empty storage key",
            detail={"field": field},
        )
    if has_parent_segment(key) or not key.startswith(photos_prefix(owner_id, project_name)):
        logger.warning("keyframe_key_rejected", owner_id=owner_id, field=field)
        raise AppError(
            ErrorCode.FORBIDDEN_ERROR,
            f"{field} must belong to your project ({project_name})",
            detail={"field": field},
        )


class JobSubmitter:
    """
    Create a scene, persist its generation and submit it to the provider
    """

    def __init__(self, provider: ProviderClient, url_manager: SignedUrlManager):
        self.provider = provider
        self.url_manager = url_manager

    async def submit_scene(
        self,
        db: Session,
        owner_id: str,
        project_id: str,
        start_key: str,
        end_key: Optional[str],
        shot_type_id: str,
        correlation_id: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Create a scene from a keyframe pair and start rendering it

        Args:
            db: Database session
            owner_id: Authenticated user
            project_id: Target project (must be owned by owner_id)
            start_key: Start keyframe storage key
            end_key: End keyframe storage key (optional)
            shot_type_id: Shot type supplying the prompt
            correlation_id: Request correlation id

        Returns:
            SubmissionResult

        Raises:
            AppError: On validation, ownership or provider failure. A
                provider failure leaves the scene visible in error.
        """
        require_approved_profile(db, owner_id)

        project = ProjectDB.get_owned_project(db, owner_id, project_id)
        if project is None:
            raise AppError(ErrorCode.NOT_FOUND, "Project not found", correlation_id=correlation_id)

        validate_keyframe_key(start_key, owner_id, project.name, "start_key")
        if end_key:
            validate_keyframe_key(end_key, owner_id, project.name, "end_key")

        shot_type = ShotTypeDB.get_for_owner(db, owner_id, shot_type_id)
        if shot_type is None:
            raise AppError(ErrorCode.NOT_FOUND, "Shot type not found", correlation_id=correlation_id)
        prompt = shot_type.prompt_template

        idempotency_key = compute_idempotency_key(
            owner_id, project.id, start_key, end_key, shot_type.id, prompt
        )

        if settings.enforce_idempotency:
            duplicate = self._find_duplicate(db, idempotency_key)
            if duplicate is not None:
                return duplicate

        # Resolve URLs before reserving the ordinal so a signing failure
        # leaves no gap in the sequence
        urls = await self.url_manager.resolve_keyframes(db, start_key, end_key)

        try:
            ordinal = ProjectDB.next_ordinal(db, project.id, commit=False)
            scene = SceneDB.create_scene(
                db,
                owner_id=owner_id,
                project_id=project.id,
                ordinal=ordinal,
                start_key=start_key,
                end_key=end_key,
                shot_type_id=shot_type.id,
                status=SceneStatus.QUEUED.value,
                commit=False,
            )
            scene.start_frame_url = urls.start_url
            scene.end_frame_url = urls.end_url
            scene.signed_url_expires_at = urls.expires_at
            generation = GenerationDB.create_generation(
                db,
                scene_id=scene.id,
                version=1,
                status=GenerationStatus.QUEUED.value,
                idempotency_key=idempotency_key,
                correlation_id=correlation_id,
                commit=False,
                dedupe=settings.enforce_idempotency,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            # An identical submission claimed the in-flight slot first
            duplicate = self._find_duplicate(db, idempotency_key)
            if duplicate is not None:
                return duplicate
            raise AppError(
                ErrorCode.CONFLICT_ERROR,
                "An identical submission is already in progress",
                correlation_id=correlation_id,
            )
        except Exception:
            db.rollback()
            raise

        logger.info(
            "scene_created",
            scene_id=scene.id,
            generation_id=generation.generation_id,
            project_id=project.id,
            ordinal=ordinal,
        )
        return await self._submit_generation(db, scene, generation, prompt, urls, correlation_id)

    async def regenerate_scene(
        self,
        db: Session,
        owner_id: str,
        scene_id: str,
        correlation_id: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Render a scene again as a new generation version

        Raises:
            AppError: CONFLICT_ERROR while a generation is still in flight
        """
        require_approved_profile(db, owner_id)

        scene = SceneDB.get_owned_scene(db, owner_id, scene_id)
        if scene is None:
            raise AppError(ErrorCode.NOT_FOUND, "Scene not found", correlation_id=correlation_id)

        latest = GenerationDB.get_latest_for_scene(db, scene.id)
        if latest is not None and not latest.is_terminal:
            raise AppError(
                ErrorCode.CONFLICT_ERROR,
                "Scene is still rendering",
                detail={"generationId": latest.generation_id, "status": latest.status},
                correlation_id=correlation_id,
            )

        shot_type = ShotTypeDB.get_for_owner(db, owner_id, scene.shot_type_id)
        if shot_type is None:
            raise AppError(ErrorCode.NOT_FOUND, "Shot type not found", correlation_id=correlation_id)
        prompt = shot_type.prompt_template

        scene = await self.url_manager.ensure_fresh(db, scene)
        version = (latest.version if latest else 0) + 1
        idempotency_key = compute_idempotency_key(
            owner_id, scene.project_id, scene.start_key, scene.end_key, shot_type.id, prompt
        )

        try:
            generation = GenerationDB.create_generation(
                db,
                scene_id=scene.id,
                version=version,
                status=GenerationStatus.QUEUED.value,
                idempotency_key=idempotency_key,
                correlation_id=correlation_id,
            )
        except IntegrityError:
            db.rollback()
            raise AppError(
                ErrorCode.CONFLICT_ERROR,
                "Scene is already being regenerated",
                correlation_id=correlation_id,
            )
        scene = SceneDB.update_scene(db, scene.id, version=version, status=SceneStatus.QUEUED.value)

        logger.info(
            "scene_regenerating",
            scene_id=scene.id,
            generation_id=generation.generation_id,
            version=version,
        )
        urls = KeyframeUrls(
            start_url=scene.start_frame_url,
            end_url=scene.end_frame_url,
            expires_at=scene.signed_url_expires_at,
        )
        return await self._submit_generation(db, scene, generation, prompt, urls, correlation_id)

    def _find_duplicate(self, db: Session, idempotency_key: str) -> Optional[SubmissionResult]:
        """Return the in-flight submission with the same inputs, if any"""
        generation = GenerationDB.find_in_flight(db, idempotency_key)
        if generation is None:
            return None
        scene = SceneDB.get_scene(db, generation.scene_id)
        if scene is None:
            return None

        logger.info(
            "submission_deduplicated",
            scene_id=scene.id,
            generation_id=generation.generation_id,
        )
        return SubmissionResult(
            scene_id=scene.id,
            generation_id=generation.generation_id,
            version=generation.version,
            ordinal=scene.ordinal,
            status=generation.status,
            idempotency_key=idempotency_key,
            provider_job_id=generation.provider_job_id,
            deduplicated=True,
        )

    @staticmethod
    def build_payload(prompt: str, urls: KeyframeUrls) -> GenerationPayload:
        keyframes = {"frame0": Keyframe(url=urls.start_url)}
        if urls.end_url:
            keyframes["frame1"] = Keyframe(url=urls.end_url)
        return GenerationPayload(
            prompt=prompt,
            model=settings.provider_model,
            aspect_ratio=settings.provider_aspect_ratio,
            loop=False,
            keyframes=keyframes,
        )

    async def _submit_generation(
        self,
        db: Session,
        scene: SceneModel,
        generation: GenerationModel,
        prompt: str,
        urls: KeyframeUrls,
        correlation_id: Optional[str],
    ) -> SubmissionResult:
        generation_id = generation.generation_id
        try:
            result = await self.provider.submit(self.build_payload(prompt, urls))
        except Exception as e:
            logger.error(
                "provider_submit_unexpected_error",
                generation_id=generation_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            transition_generation(
                db,
                generation_id,
                GenerationStatus.ERROR.value,
                event="provider_submit_crashed",
                error_code=ErrorCode.SERVER_ERROR.value,
                error_message="Unexpected error while submitting to the video provider",
            )
            raise

        if result.success:
            transition_generation(
                db,
                generation_id,
                GenerationStatus.PROCESSING.value,
                event="provider_submitted",
                provider_job_id=result.job_id,
            )
            return SubmissionResult(
                scene_id=scene.id,
                generation_id=generation_id,
                version=generation.version,
                ordinal=scene.ordinal,
                status=GenerationStatus.PROCESSING.value,
                idempotency_key=generation.idempotency_key,
                provider_job_id=result.job_id,
            )

        error = result.provider_error
        transition_generation(
            db,
            generation_id,
            GenerationStatus.ERROR.value,
            event="provider_submit_failed",
            error_code=error.code,
            error_message=error.message,
        )
        raise AppError(
            ErrorCode(error.code),
            error.message,
            detail={"sceneId": scene.id, "generationId": generation_id},
            upstream=error.upstream() if error.status is not None else None,
            correlation_id=correlation_id,
        )
