"""
Scenes API Routes
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from scenegen.api.dependencies import (
    get_correlation_id,
    get_current_user,
    get_limiter,
    get_poller,
    get_submitter,
    get_url_manager,
)
from scenegen.models import get_db
from scenegen.models.generation import GenerationModel
from scenegen.services.auth import AuthUser
from scenegen.services.errors import AppError, ErrorCode, ok_envelope
from scenegen.services.job_submitter import JobSubmitter, SubmissionResult
from scenegen.services.rate_limiter import RateLimiter
from scenegen.services.scene_lifecycle import soft_delete_scene
from scenegen.services.signed_urls import SignedUrlManager
from scenegen.services.status_poller import PollResult, StatusPoller
from scenegen.services.storage import GenerationDB, SceneDB
from scenegen.workers.queue import enqueue_scene_purge


router = APIRouter()


class CreateSceneRequest(BaseModel):
    """Scene creation request"""

    project_id: str = Field(min_length=1)
    start_key: str = Field(min_length=1)
    end_key: Optional[str] = None
    shot_type_id: str = Field(min_length=1)


def _rate_limit_key(request: Request, user: AuthUser) -> str:
    if user.id:
        return f"user:{user.id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _submission_data(result: SubmissionResult) -> Dict[str, Any]:
    return {
        "sceneId": result.scene_id,
        "generationId": result.generation_id,
        "version": result.version,
        "ordinal": result.ordinal,
        "status": result.status,
        "idempotencyKey": result.idempotency_key,
        "deduplicated": result.deduplicated,
    }


def _poll_data(result: PollResult) -> Dict[str, Any]:
    data = {
        "sceneId": result.scene_id,
        "generationId": result.generation_id,
        "version": result.version,
        "status": result.status,
        "progress": result.progress,
        "videoKey": result.video_key,
        "errorCode": result.error_code,
        "errorMessage": result.error_message,
        "isTerminal": result.is_terminal,
    }
    if result.transient_error:
        data["transientError"] = result.transient_error
    return data


def _generation_data(generation: GenerationModel) -> Dict[str, Any]:
    return {
        "generationId": generation.generation_id,
        "version": generation.version,
        "status": generation.status,
        "progress": generation.progress_pct,
        "videoKey": generation.video_key,
        "renderMeta": generation.render_meta,
        "errorCode": generation.error_code,
        "errorMessage": generation.error_message,
        "createdAt": generation.created_at.isoformat() if generation.created_at else None,
        "completedAt": generation.completed_at.isoformat() if generation.completed_at else None,
    }


@router.post("/scenes", status_code=status.HTTP_202_ACCEPTED)
async def create_scene(
    body: CreateSceneRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    submitter: JobSubmitter = Depends(get_submitter),
    limiter: RateLimiter = Depends(get_limiter),
    correlation_id: str = Depends(get_correlation_id),
):
    """
    Create a scene and submit its first render

    Returns 202 with the scene and generation identifiers; progress is
    observed through GET /v1/scenes/{scene_id}/status.
    """
    limiter.enforce(_rate_limit_key(request, user), correlation_id=correlation_id)
    result = await submitter.submit_scene(
        db,
        owner_id=user.id,
        project_id=body.project_id,
        start_key=body.start_key,
        end_key=body.end_key,
        shot_type_id=body.shot_type_id,
        correlation_id=correlation_id,
    )
    return ok_envelope(_submission_data(result))


@router.post("/scenes/{scene_id}/regenerate", status_code=status.HTTP_202_ACCEPTED)
async def regenerate_scene(
    scene_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    submitter: JobSubmitter = Depends(get_submitter),
    limiter: RateLimiter = Depends(get_limiter),
    correlation_id: str = Depends(get_correlation_id),
):
    """Render a scene again as a new version"""
    limiter.enforce(_rate_limit_key(request, user), correlation_id=correlation_id)
    result = await submitter.regenerate_scene(
        db, owner_id=user.id, scene_id=scene_id, correlation_id=correlation_id
    )
    return ok_envelope(_submission_data(result))


@router.get("/scenes/{scene_id}/status")
async def get_scene_status(
    scene_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    poller: StatusPoller = Depends(get_poller),
    url_manager: SignedUrlManager = Depends(get_url_manager),
):
    """Run one poll tick and return the current generation state"""
    result = await poller.poll_once(db, user.id, scene_id)
    data = _poll_data(result)
    if result.video_key:
        grant = await url_manager.issue(result.video_key)
        data["videoUrl"] = grant.url
        data["videoUrlExpiresAt"] = grant.expires_at.isoformat()
    return ok_envelope(data)


@router.get("/scenes/{scene_id}/generations")
async def list_scene_generations(
    scene_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """List every generation of a scene, oldest first"""
    scene = SceneDB.get_owned_scene(db, user.id, scene_id)
    if scene is None:
        raise AppError(ErrorCode.NOT_FOUND, "Scene not found")
    generations = GenerationDB.list_for_scene(db, scene.id)
    return ok_envelope(
        {
            "sceneId": scene.id,
            "currentVersion": scene.version,
            "generations": [_generation_data(generation) for generation in generations],
        }
    )


@router.post("/scenes/{scene_id}/refresh-urls")
async def refresh_scene_urls(
    scene_id: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    url_manager: SignedUrlManager = Depends(get_url_manager),
):
    """Return keyframe URLs, reissuing them if they have expired"""
    scene = SceneDB.get_owned_scene(db, user.id, scene_id)
    if scene is None:
        raise AppError(ErrorCode.NOT_FOUND, "Scene not found")
    scene = await url_manager.ensure_fresh(db, scene)
    return ok_envelope(
        {
            "sceneId": scene.id,
            "startFrameUrl": scene.start_frame_url,
            "endFrameUrl": scene.end_frame_url,
            "expiresAt": scene.signed_url_expires_at.isoformat() if scene.signed_url_expires_at else None,
        }
    )


@router.delete("/scenes/{scene_id}")
async def delete_scene(
    scene_id: str,
    purge: bool = Query(default=False),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Soft delete a scene; purge=true also schedules removal of its data"""
    scene = soft_delete_scene(db, user.id, scene_id)
    data: Dict[str, Any] = {"sceneId": scene.id, "deleted": True}
    if purge:
        job = enqueue_scene_purge(user.id, scene.id)
        data["purgeJobId"] = job.id
    return ok_envelope(data)
