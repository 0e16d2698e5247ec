"""
Mod Queue Check Job - removes queue listings for items no longer in the moderation queue.
"""

import asyncio

from modbridge.bridge import open_bridge
from modbridge.config import settings
from modbridge.context import BridgeContext
from modbridge.infrastructure.observability.logging import get_logger, log_job_summary
from modbridge.models.domain.states import ChannelClass

logger = get_logger(__name__)


class ModQueueCheckJob:
    def __init__(self, scan_limit: int | None = None):
        self.scan_limit = scan_limit or settings.MOD_QUEUE_CHECK_LIMIT
        self.is_running = False

    async def run_once(self, ctx: BridgeContext) -> dict:
        if self.is_running:
            return {"skipped": True, "reason": "already_running"}

        if not await ctx.settings.get_webhook(ChannelClass.MOD_QUEUE):
            return {"skipped": True, "reason": "disabled"}

        self.is_running = True
        result = {"queue_size": 0, "checked": 0, "deleted": 0}

        try:
            try:
                queue_ids = await ctx.platform.get_mod_queue_ids()
            except Exception as e:
                logger.error("Failed to fetch moderation queue", error=str(e))
                return {"skipped": True, "reason": "queue_unavailable"}

            result["queue_size"] = len(queue_ids)

            for entry in await ctx.store.recent_links(self.scan_limit):
                if entry.channel_class != ChannelClass.MOD_QUEUE:
                    continue
                result["checked"] += 1
                if entry.source_id in queue_ids:
                    continue

                logger.info("Queue listing no longer queued, deleting", content_id=entry.source_id)
                if await ctx.gateway.delete(entry.destination_ref, entry.destination_message_id):
                    await ctx.store.delete_link(entry)
                    result["deleted"] += 1

            logger.info("Mod queue check completed", **result)
            return result

        finally:
            self.is_running = False


mod_queue_check_job = ModQueueCheckJob()


async def run_mod_queue_check_job() -> dict:
    async with open_bridge() as ctx:
        result = await mod_queue_check_job.run_once(ctx)
    log_job_summary("mod_queue_check", result)
    return result


async def start_mod_queue_check_scheduler():
    interval = settings.MOD_QUEUE_CHECK_INTERVAL_SECONDS
    logger.info("Starting mod queue check scheduler", interval_seconds=interval)

    async with open_bridge() as ctx:
        while True:
            try:
                await mod_queue_check_job.run_once(ctx)
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Mod queue check scheduler cancelled")
                break
            except Exception as e:
                logger.error("Mod queue check scheduler error", error=str(e))
                await asyncio.sleep(60)
