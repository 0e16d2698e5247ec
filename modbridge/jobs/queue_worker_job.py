"""
Queue Worker Job - drains the task queue in bounded, single-flight batches.

Each invocation:
1. Takes the queue lease (returns at once when another worker holds it)
2. Withdraws up to batch_size oldest tasks
3. Pre-fetches every distinct content item the batch refers to in one call
4. Fetches a moderation queue snapshot when a task in the batch needs one
5. Dispatches tasks one by one with a short pause, removing each afterwards

Delivery is at-most-once: a task is removed whether its handler succeeded or raised.
"""

import asyncio
from datetime import UTC, datetime

from modbridge.bridge import open_bridge
from modbridge.config import settings
from modbridge.context import BridgeContext
from modbridge.handlers.registry import HANDLER_REGISTRY
from modbridge.infrastructure.observability.logging import get_logger, log_job_summary
from modbridge.models.domain.content_domain import SourceItem
from modbridge.models.domain.task_domain import QUEUE_SNAPSHOT_HANDLERS, WithdrawnTask

logger = get_logger(__name__)


class QueueWorkerError(Exception):
    """Custom exception for queue worker operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class QueueWorkerMetrics:
    """Metrics tracking for one queue worker invocation."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.queue_size = 0
        self.tasks_withdrawn = 0
        self.tasks_dispatched = 0
        self.handler_failures = 0
        self.items_prefetched = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_success(self):
        self.tasks_dispatched += 1

    def record_failure(self, task_id: str, handler: str, error: str):
        self.tasks_dispatched += 1
        self.handler_failures += 1
        self.errors.append(
            {
                "task_id": task_id,
                "handler": handler,
                "error": error,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        logger.error("Handler failed", task_id=task_id, handler=handler, error=error)

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "queue_worker",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "queue_size": self.queue_size,
            "tasks_withdrawn": self.tasks_withdrawn,
            "tasks_dispatched": self.tasks_dispatched,
            "handler_failures": self.handler_failures,
            "items_prefetched": self.items_prefetched,
            "errors_count": len(self.errors),
        }


class QueueWorkerJob:
    def __init__(
        self,
        batch_size: int | None = None,
        lease_ttl_seconds: int | None = None,
        task_delay_seconds: float | None = None,
    ):
        config = settings.get_worker_config()
        self.batch_size = batch_size or config["batch_size"]
        self.lease_ttl_seconds = lease_ttl_seconds or config["lease_ttl_seconds"]
        self.task_delay_seconds = (
            task_delay_seconds if task_delay_seconds is not None else config["task_delay_seconds"]
        )
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = QueueWorkerMetrics()

    async def run_once(self, ctx: BridgeContext) -> dict:
        """
        Process one batch.

        Returns:
            Job metrics, or a skip marker when the lease is held elsewhere

        Raises:
            QueueWorkerError: If the lease store cannot be reached
        """
        if self.is_running:
            logger.warning("Queue worker already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        self.job_metrics.reset()
        lease_acquired = False

        try:
            lease = await ctx.queue.acquire_lease(self.lease_ttl_seconds)
            if lease is None:
                raise QueueWorkerError("Queue lease store unavailable", operation="acquire_lease")
            if not lease:
                logger.info("Queue lease held by another worker, skipping")
                return {"skipped": True, "reason": "lease_held"}
            lease_acquired = True

            self.job_metrics.queue_size = await ctx.queue.size() or 0
            logger.info("Queue worker started", queue_size=self.job_metrics.queue_size)

            batch = await ctx.queue.withdraw_batch(self.batch_size)
            self.job_metrics.tasks_withdrawn = len(batch)
            if not batch:
                self.job_metrics.finalize()
                return self.job_metrics.to_dict()

            prefetched = await self._prefetch_items(ctx, batch)
            ctx.mod_queue_ids = await self._queue_snapshot(ctx, batch)

            await self._dispatch_batch(ctx, batch, prefetched)

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()
            logger.info("Queue worker batch completed", **metrics)
            return metrics

        except QueueWorkerError:
            raise
        except Exception as e:
            logger.error("Queue worker failed", error=str(e), error_type=type(e).__name__)
            raise QueueWorkerError(f"Queue worker failed: {e}", operation="run_once") from e

        finally:
            ctx.mod_queue_ids = None
            if lease_acquired:
                await ctx.queue.release_lease()
            self.is_running = False

    async def _prefetch_items(
        self, ctx: BridgeContext, batch: list[WithdrawnTask]
    ) -> dict[str, SourceItem]:
        content_ids = list(dict.fromkeys(w.task.content_id for w in batch if w.task.content_id))
        if not content_ids:
            return {}

        try:
            items = await ctx.platform.get_items(content_ids)
        except Exception as e:
            # Handlers fall back to fetching one by one
            logger.warning("Batch pre-fetch failed", count=len(content_ids), error=str(e))
            return {}

        self.job_metrics.items_prefetched = len(items)
        logger.debug("Pre-fetched content items", requested=len(content_ids), found=len(items))
        return {item.id: item for item in items}

    async def _queue_snapshot(
        self, ctx: BridgeContext, batch: list[WithdrawnTask]
    ) -> set[str] | None:
        if not any(w.task.handler in QUEUE_SNAPSHOT_HANDLERS for w in batch):
            return None
        try:
            return await ctx.platform.get_mod_queue_ids()
        except Exception as e:
            logger.error("Failed to fetch moderation queue snapshot", error=str(e))
            return None

    async def _dispatch_batch(
        self,
        ctx: BridgeContext,
        batch: list[WithdrawnTask],
        prefetched: dict[str, SourceItem],
    ) -> None:
        for index, withdrawn in enumerate(batch):
            task = withdrawn.task
            handler = HANDLER_REGISTRY[task.handler]
            item = prefetched.get(task.content_id) if task.content_id else None

            try:
                await handler(task.payload, ctx, item)
                self.job_metrics.record_success()
            except Exception as e:
                self.job_metrics.record_failure(
                    withdrawn.task_id, task.handler.value, f"{type(e).__name__}: {e}"
                )
            finally:
                await ctx.queue.remove(withdrawn.task_id)

            if self.task_delay_seconds and index < len(batch) - 1:
                await asyncio.sleep(self.task_delay_seconds)

    def get_job_status(self) -> dict:
        return {
            "job_name": "queue_worker",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "batch_size": self.batch_size,
            "lease_ttl_seconds": self.lease_ttl_seconds,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


# Singleton instance for application use
queue_worker_job = QueueWorkerJob()


async def run_queue_worker_job() -> dict:
    """Run a single queue worker invocation."""
    async with open_bridge() as ctx:
        result = await queue_worker_job.run_once(ctx)
    log_job_summary("queue_worker", result)
    return result


async def start_queue_worker_scheduler():
    """Drain the queue every WORKER_INTERVAL_SECONDS until cancelled."""
    interval = settings.WORKER_INTERVAL_SECONDS
    logger.info("Starting queue worker scheduler", interval_seconds=interval)

    async with open_bridge() as ctx:
        while True:
            try:
                await queue_worker_job.run_once(ctx)
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Queue worker scheduler cancelled")
                break
            except KeyboardInterrupt:
                logger.info("Queue worker scheduler stopped by user")
                break
            except Exception as e:
                logger.error("Queue worker scheduler error", error=str(e))
                await asyncio.sleep(min(interval, 10))
