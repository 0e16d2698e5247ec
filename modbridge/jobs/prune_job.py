"""
Prune Job - retention enforcement for destination notifications.

Runs hourly and deletes every notification (and its link) created more than
PRUNE_AGE_SECONDS ago, 13 days by default. Links are dropped even when the
destination delete fails, so unreachable webhooks never block the index head.

Usage:
    import asyncio
    from modbridge.jobs.prune_job import start_prune_scheduler

    asyncio.create_task(start_prune_scheduler())
"""

import asyncio
from datetime import UTC, datetime

from modbridge.bridge import open_bridge
from modbridge.config import settings
from modbridge.context import BridgeContext
from modbridge.infrastructure.observability.logging import get_logger, log_job_summary

logger = get_logger(__name__)


class PruneJob:
    """Deletes notifications older than the retention horizon."""

    def __init__(self, max_age_seconds: int | None = None, batch_limit: int | None = None):
        self.max_age_seconds = max_age_seconds or settings.PRUNE_AGE_SECONDS
        self.batch_limit = batch_limit or settings.PRUNE_BATCH_LIMIT
        self.is_running = False

    async def run_once(self, ctx: BridgeContext, now: float | None = None) -> dict:
        """
        Prune one batch of expired notifications.

        Returns:
            dict: {
                "success": bool,
                "expired_found": int,
                "deleted": int,
                "missing_links": int,
                "errors": list,
            }
        """
        if self.is_running:
            logger.warning("Prune job already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        start_time = datetime.now(UTC)

        result = {
            "success": True,
            "expired_found": 0,
            "deleted": 0,
            "missing_links": 0,
            "errors": [],
        }

        try:
            expired_ids = await ctx.store.find_expired(self.max_age_seconds, self.batch_limit, now)
            result["expired_found"] = len(expired_ids)

            if not expired_ids:
                logger.info("No expired notifications found")
                return result

            logger.info("Found expired notifications", count=len(expired_ids))

            for message_id in expired_ids:
                entry = await ctx.store.get_link(message_id)
                if entry is None:
                    logger.warning("Expired id indexed without a link record", message_id=message_id)
                    result["missing_links"] += 1
                    continue

                try:
                    if entry.destination_ref:
                        deleted = await ctx.gateway.delete(
                            entry.destination_ref, entry.destination_message_id
                        )
                        if not deleted:
                            # Past retention the link goes regardless
                            logger.warning(
                                "Destination delete failed, dropping link anyway",
                                message_id=message_id,
                                source_id=entry.source_id,
                            )
                            result["errors"].append(f"Delete failed for {message_id}")

                    await ctx.store.delete_link(entry)
                    result["deleted"] += 1

                except Exception as e:
                    error_msg = f"Failed to prune {message_id}: {e}"
                    logger.error(error_msg)
                    result["errors"].append(error_msg)

        except Exception as e:
            logger.error("Unexpected error in prune job", error=str(e))
            result["success"] = False
            result["errors"].append(f"Unexpected error: {e}")

        finally:
            self.is_running = False
            duration = (datetime.now(UTC) - start_time).total_seconds()
            logger.info("Prune job completed", duration_seconds=duration, result=result)

        return result


prune_job = PruneJob()


async def run_prune_job() -> dict:
    async with open_bridge() as ctx:
        result = await prune_job.run_once(ctx)
    log_job_summary("prune", result)
    return result


async def start_prune_scheduler():
    """Prune every PRUNE_INTERVAL_SECONDS until cancelled."""
    interval = settings.PRUNE_INTERVAL_SECONDS
    logger.info(
        "Prune scheduler STARTED",
        interval_seconds=interval,
        max_age_seconds=prune_job.max_age_seconds,
    )

    async with open_bridge() as ctx:
        while True:
            try:
                await prune_job.run_once(ctx)
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Prune scheduler cancelled")
                break
            except Exception as e:
                logger.error("Error in prune scheduler, will retry", error=str(e))
                await asyncio.sleep(300)
