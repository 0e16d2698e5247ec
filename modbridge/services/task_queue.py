"""
Task Queue - durable, insertion-ordered work list backed by Redis.

Redis layout:
    queue:tasks   sorted set of task ids scored by enqueue time (ms)
    queue:data    hash of task id -> JSON QueueTask
    queue:lease   single-flight worker lease (SET NX EX)

Delivery is at-most-once: the worker removes each task after dispatch whether
or not the handler succeeded.
"""

import secrets
import time
from typing import Any

from pydantic import ValidationError

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.task_domain import (
    HandlerName,
    QueueTask,
    WithdrawnTask,
    extract_content_id,
)
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

QUEUE_KEY = "queue:tasks"
DATA_KEY = "queue:data"
LEASE_KEY = "queue:lease"


class TaskQueue:
    """Producer and consumer side of the bridge's work queue."""

    def __init__(self, redis_client: FastRedisClient | None = None):
        self.redis = redis_client or fast_redis
        self._lease_token: str | None = None

    def _new_task_id(self, now_ms: int) -> str:
        return f"{now_ms}-{secrets.token_hex(4)}"

    async def enqueue(self, handler: HandlerName, payload: dict[str, Any]) -> str | None:
        """
        Add a task. Never raises: storage problems are logged and the caller moves on.

        Returns:
            The task id, or None when the task could not be stored
        """
        try:
            now = time.time()
            now_ms = int(now * 1000)
            task = QueueTask(
                handler=handler,
                payload=payload,
                content_id=extract_content_id(payload),
                enqueued_at=now,
            )
            task_id = self._new_task_id(now_ms)

            if not await self.redis.hash_set(DATA_KEY, {task_id: task.model_dump_json()}):
                logger.error("Failed to enqueue task", handler=handler.value)
                return None

            if not await self.redis.zset_add(QUEUE_KEY, task_id, now_ms):
                logger.error("Failed to index enqueued task", handler=handler.value)
                await self.redis.hash_delete(DATA_KEY, task_id)
                return None

            logger.info(
                "Enqueued task", handler=handler.value, task_id=task_id, content_id=task.content_id
            )
            return task_id

        except Exception as e:
            logger.error(
                "Failed to enqueue task",
                handler=getattr(handler, "value", str(handler)),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def size(self) -> int | None:
        return await self.redis.zset_card(QUEUE_KEY)

    async def withdraw_batch(self, max_size: int) -> list[WithdrawnTask]:
        """
        Read up to max_size oldest tasks without removing them.

        Index entries without data and unreadable task records are removed here
        so they do not block the head of the queue.
        """
        task_ids = await self.redis.zset_range(QUEUE_KEY, 0, max_size - 1)
        if not task_ids:
            return []

        raw_tasks = await self.redis.hash_get_many(DATA_KEY, task_ids)

        batch: list[WithdrawnTask] = []
        for task_id, raw in zip(task_ids, raw_tasks, strict=True):
            if raw is None:
                logger.warning("Task data missing, dropping index entry", task_id=task_id)
                await self.remove(task_id)
                continue

            try:
                task = QueueTask.model_validate_json(raw)
            except ValidationError as e:
                logger.error("Failed to parse task data", task_id=task_id, error=str(e))
                await self.remove(task_id)
                continue

            if task.content_id is None:
                task.content_id = extract_content_id(task.payload)

            batch.append(WithdrawnTask(task_id=task_id, task=task))

        return batch

    async def remove(self, task_id: str) -> None:
        await self.redis.zset_remove(QUEUE_KEY, task_id)
        await self.redis.hash_delete(DATA_KEY, task_id)

    async def acquire_lease(self, ttl_seconds: int) -> bool | None:
        """
        Take the single-flight worker lease.

        Returns:
            True when acquired, False when another worker holds it,
            None when the lease store is unreachable
        """
        token = f"{time.time()}-{secrets.token_hex(8)}"
        acquired = await self.redis.set_if_absent(LEASE_KEY, token, ttl_seconds)
        if acquired:
            self._lease_token = token
        return acquired

    async def release_lease(self) -> None:
        """Release the lease only while this queue still holds it."""
        token, self._lease_token = self._lease_token, None
        if token is None:
            return
        if not await self.redis.delete_if_equal(LEASE_KEY, token):
            logger.warning("Queue lease expired or taken over before release")


task_queue = TaskQueue()
