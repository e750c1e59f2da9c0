"""
RQ task definitions for scene maintenance.
"""

import asyncio
from typing import Any, Dict

from scenegen.models import SessionLocal
from scenegen.services.object_storage import StorageClient
from scenegen.services.observability import logger
from scenegen.services.scene_lifecycle import hard_delete_scene


async def _purge(owner_id: str, scene_id: str) -> Dict[str, Any]:
    db = SessionLocal()
    storage = StorageClient()
    try:
        return await hard_delete_scene(db, storage, owner_id, scene_id)
    finally:
        await storage.close()
        db.close()


def purge_scene(owner_id: str, scene_id: str) -> Dict[str, Any]:
    logger.info("purge_worker_start", scene_id=scene_id, owner_id=owner_id)
    try:
        result = asyncio.run(_purge(owner_id, scene_id))
    except Exception as exc:
        logger.error("purge_worker_failed", scene_id=scene_id, error=str(exc))
        raise
    logger.info("purge_worker_complete", **result)
    return result
