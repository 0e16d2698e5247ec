"""
Spam Queue Check Job - catches removals that produced no moderation event.

The platform's spam filter can remove content silently. This sweep walks the
spam queue and enqueues corrective tasks:
- tracked content still shown as live gets a STATE_SYNC to SPAM
- untracked silent removals get a SPAM_REMOVAL notification plus a STATE_SYNC
Items older than the retention horizon are ignored.
"""

import asyncio
import time

from modbridge.bridge import open_bridge
from modbridge.config import settings
from modbridge.context import BridgeContext
from modbridge.handlers.common import has_link
from modbridge.infrastructure.observability.logging import get_logger, log_job_summary
from modbridge.models.domain.content_domain import SourceItem
from modbridge.models.domain.states import ChannelClass, ItemState
from modbridge.models.domain.task_domain import HandlerName

logger = get_logger(__name__)

MODERATOR_REMOVAL_CATEGORIES = frozenset({"moderator", "author"})


class SpamQueueCheckError(Exception):
    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def is_silent_removal(item: SourceItem) -> bool:
    """Spam-queue items that no moderator action accounts for."""
    if item.is_post:
        return bool(
            item.removed_by_category
            and item.removed_by_category not in MODERATOR_REMOVAL_CATEGORIES
        )
    return not item.is_removed and not item.is_spam


class SpamQueueCheckJob:
    def __init__(self, scan_limit: int | None = None, max_age_seconds: int | None = None):
        self.scan_limit = scan_limit or settings.SPAM_SCAN_LIMIT
        self.max_age_seconds = max_age_seconds or settings.PRUNE_AGE_SECONDS
        self.is_running = False

    async def run_once(self, ctx: BridgeContext, now: float | None = None) -> dict:
        """
        Scan the spam queue once.

        Raises:
            SpamQueueCheckError: If the spam queue cannot be read
        """
        if self.is_running:
            return {"skipped": True, "reason": "already_running"}

        if not await ctx.settings.get_bool("REMOVALS_SCAN_SPAM"):
            return {"skipped": True, "reason": "disabled"}

        self.is_running = True
        metrics = {"scanned": 0, "conflicts": 0, "new_removals": 0, "already_logged": 0}

        try:
            try:
                items = await ctx.platform.get_spam_queue(self.scan_limit)
            except Exception as e:
                raise SpamQueueCheckError(
                    f"Failed to read spam queue: {e}", operation="get_spam_queue"
                ) from e

            cutoff = (now if now is not None else time.time()) - self.max_age_seconds

            for item in items:
                if item.created_at.timestamp() < cutoff:
                    continue
                if not is_silent_removal(item):
                    continue

                metrics["scanned"] += 1
                outcome = await self._reconcile_item(ctx, item)
                metrics[outcome] += 1

            logger.info("Spam queue check completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _reconcile_item(self, ctx: BridgeContext, item: SourceItem) -> str:
        links = await ctx.store.find_links(item.id)
        task_payload = {"target_id": item.id, "target_state": ItemState.SPAM.value, "id": item.id}

        conflicting = bool(links) and not any(
            link.current_state in (ItemState.SPAM, ItemState.REMOVED) for link in links
        )
        if conflicting:
            logger.info("Tracked state conflicts with spam queue", content_id=item.id)
            await ctx.queue.enqueue(HandlerName.STATE_SYNC, task_payload)
            return "conflicts"

        if has_link(links, ChannelClass.REMOVALS):
            return "already_logged"

        logger.info("New silent removal detected", content_id=item.id)
        await ctx.queue.enqueue(HandlerName.SPAM_REMOVAL, task_payload)
        await ctx.queue.enqueue(HandlerName.STATE_SYNC, task_payload)
        return "new_removals"


spam_queue_check_job = SpamQueueCheckJob()


async def run_spam_queue_check_job() -> dict:
    async with open_bridge() as ctx:
        result = await spam_queue_check_job.run_once(ctx)
    log_job_summary("spam_queue_check", result)
    return result


async def start_spam_queue_check_scheduler():
    interval = settings.SPAM_SCAN_INTERVAL_SECONDS
    logger.info("Starting spam queue check scheduler", interval_seconds=interval)

    async with open_bridge() as ctx:
        while True:
            try:
                await spam_queue_check_job.run_once(ctx)
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Spam queue check scheduler cancelled")
                break
            except Exception as e:
                logger.error("Spam queue check scheduler error", error=str(e))
                await asyncio.sleep(60)
