"""
Completion Service - Archive rendered videos and finish generations

Shared by the status poller and the render webhook so both paths apply
the same terminal transitions.
"""

from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from scenegen.config.settings import settings
from scenegen.config.constants import ARCHIVE_CONTENT_TYPE
from scenegen.models.generation import GenerationModel, GenerationStatus
from scenegen.models.scene import SceneModel
from scenegen.services.error_classifier import ErrorClassifier
from scenegen.services.errors import ErrorCode
from scenegen.services.generation_state import transition_generation
from scenegen.services.object_storage import StorageClient, StorageError
from scenegen.services.observability import logger
from scenegen.services.storage import ProjectDB, SceneDB
from scenegen.services.video_downloader import VideoDownloader


def scenes_prefix(owner_id: str, project_name: str) -> str:
    """Storage folder holding a project's archived scene videos"""
    return f"users/{owner_id}/{settings.scenes_root}/{project_name}/"


def archive_key(scene: SceneModel, project_name: str, version: int) -> str:
    """Storage key of an archived generation video"""
    return f"{scenes_prefix(scene.owner_id, project_name)}scene-{scene.ordinal}-v{version}.mp4"


def project_folder(db: Session, scene: SceneModel) -> str:
    project = ProjectDB.get_project(db, scene.project_id)
    return project.name if project else scene.project_id


class CompletionHandler:
    """
    Drive a generation to a terminal state

    Every method returns True only if this call performed the transition;
    a generation that is already terminal is left untouched.
    """

    def __init__(
        self,
        storage: StorageClient,
        downloader: Optional[VideoDownloader] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.storage = storage
        self.downloader = downloader or VideoDownloader()
        self.classifier = classifier or ErrorClassifier()

    async def complete_with_remote_video(
        self,
        db: Session,
        generation: GenerationModel,
        video_url: str,
        event: str,
        render_meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Download the provider's video, archive it, then mark completed

        A download or upload failure marks the generation as error with
        ARCHIVE_ERROR instead.

        Args:
            db: Database session
            generation: Generation being completed
            video_url: Provider video URL
            event: Event name for the transition log
            render_meta: Optional render metadata to store

        Returns:
            True if the transition was applied
        """
        if generation.is_terminal:
            return False

        scene = SceneDB.get_scene(db, generation.scene_id, include_deleted=True)
        key = archive_key(scene, project_folder(db, scene), generation.version)

        try:
            data = await self.downloader.download_video(video_url)
            await self.storage.upload(key, data, ARCHIVE_CONTENT_TYPE)
        except (httpx.HTTPError, StorageError) as e:
            classification = self.classifier.classify_archive_failure(
                e, generation_id=generation.generation_id
            )
            return transition_generation(
                db,
                generation.generation_id,
                GenerationStatus.ERROR.value,
                event=f"{event}_archive_failed",
                provider_video_url=video_url,
                error_code=classification["code"],
                error_message=classification["message"],
            )

        logger.info(
            "generation_archived",
            generation_id=generation.generation_id,
            video_key=key,
        )
        return transition_generation(
            db,
            generation.generation_id,
            GenerationStatus.COMPLETED.value,
            event=event,
            video_key=key,
            provider_video_url=video_url,
            render_meta=render_meta,
            progress_pct=100.0,
            error_code=None,
            error_message=None,
        )

    def complete_with_stored_video(
        self,
        db: Session,
        generation: GenerationModel,
        video_key: str,
        event: str,
        render_meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Mark completed with a video that is already in storage"""
        if generation.is_terminal:
            return False
        return transition_generation(
            db,
            generation.generation_id,
            GenerationStatus.COMPLETED.value,
            event=event,
            video_key=video_key,
            render_meta=render_meta,
            progress_pct=100.0,
        )

    def fail(
        self,
        db: Session,
        generation: GenerationModel,
        code: str,
        message: str,
        event: str,
        render_meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Mark a generation as error"""
        if generation.is_terminal:
            return False
        values: Dict[str, Any] = {
            "error_code": ErrorCode(code).value,
            "error_message": message,
        }
        if render_meta is not None:
            values["render_meta"] = render_meta
        return transition_generation(
            db,
            generation.generation_id,
            GenerationStatus.ERROR.value,
            event=event,
            **values,
        )
