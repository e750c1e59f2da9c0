"""
Scene Lifecycle - Soft and hard deletion of scenes
"""

from typing import Any, Dict

from sqlalchemy.orm import Session

from scenegen.models.scene import SceneModel
from scenegen.services.completion import project_folder, scenes_prefix
from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.object_storage import StorageClient, StorageError
from scenegen.services.observability import logger
from scenegen.services.storage import GenerationDB, SceneDB


def soft_delete_scene(db: Session, owner_id: str, scene_id: str) -> SceneModel:
    """
    Hide a scene from status and regenerate calls

    Raises:
        AppError: NOT_FOUND if the scene is missing or not owned by owner_id
    """
    scene = SceneDB.get_owned_scene(db, owner_id, scene_id)
    if scene is None:
        raise AppError(ErrorCode.NOT_FOUND, "Scene not found")
    scene = SceneDB.soft_delete(db, scene.id)
    logger.info("scene_soft_deleted", scene_id=scene_id)
    return scene


async def hard_delete_scene(
    db: Session,
    storage: StorageClient,
    owner_id: str,
    scene_id: str,
) -> Dict[str, Any]:
    """
    Remove a scene, its generations and its archived videos

    Storage failures are logged and do not stop the row deletion.

    Args:
        db: Database session
        storage: Storage client
        owner_id: Scene owner
        scene_id: Scene identifier

    Returns:
        Dict with scene_id, removed_objects, removed_generations

    Raises:
        AppError: NOT_FOUND if the scene is missing or not owned by owner_id
    """
    scene = SceneDB.get_owned_scene(db, owner_id, scene_id, include_deleted=True)
    if scene is None:
        raise AppError(ErrorCode.NOT_FOUND, "Scene not found")

    prefix = scenes_prefix(scene.owner_id, project_folder(db, scene))
    video_prefix = f"{prefix}scene-{scene.ordinal}-v"
    keys = {
        generation.video_key
        for generation in GenerationDB.list_for_scene(db, scene.id)
        if generation.video_key
    }

    removed_objects = 0
    try:
        keys.update(key for key in await storage.list(prefix) if key.startswith(video_prefix))
        removed_objects = await storage.remove(sorted(keys))
    except StorageError as e:
        logger.error(
            "scene_storage_cleanup_failed",
            scene_id=scene_id,
            endpoint=e.endpoint,
            status=e.status,
        )

    removed_generations = GenerationDB.delete_for_scene(db, scene.id)
    SceneDB.delete_scene(db, scene.id)

    logger.info(
        "scene_hard_deleted",
        scene_id=scene_id,
        removed_objects=removed_objects,
        removed_generations=removed_generations,
    )
    return {
        "scene_id": scene_id,
        "removed_objects": removed_objects,
        "removed_generations": removed_generations,
    }
