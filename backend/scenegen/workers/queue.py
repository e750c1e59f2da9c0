"""
RQ queue helpers.
"""

from typing import Optional

import redis
from rq import Queue
from rq.job import Job

from scenegen.config.settings import settings


def get_redis_connection() -> redis.Redis:
    return redis.from_url(settings.redis_url)


def get_queue(name: Optional[str] = None, connection: Optional[redis.Redis] = None) -> Queue:
    return Queue(name or settings.rq_queue_name, connection=connection or get_redis_connection())


def enqueue_scene_purge(owner_id: str, scene_id: str, queue: Optional[Queue] = None) -> Job:
    """Schedule the hard delete of a scene on the worker queue"""
    from scenegen.workers.scene_tasks import purge_scene

    queue = queue or get_queue()
    return queue.enqueue(purge_scene, owner_id, scene_id, job_timeout=300)
