"""
Modmail Sync Job - marks conversation notifications archived once the thread is archived.

Archival produces no event, so active conversations are polled. Archived ones
are re-rendered as ARCHIVED_MODMAIL and stop being tracked.
"""

import asyncio

from modbridge.bridge import open_bridge
from modbridge.config import settings
from modbridge.context import BridgeContext
from modbridge.handlers.mod_mail import latest_user_message
from modbridge.infrastructure.observability.logging import get_logger, log_job_summary
from modbridge.models.domain.content_domain import Conversation
from modbridge.models.domain.states import ChannelClass, ItemState

logger = get_logger(__name__)


class ModmailSyncJob:
    def __init__(self):
        self.is_running = False

    async def run_once(self, ctx: BridgeContext) -> dict:
        if self.is_running:
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        result = {"checked": 0, "archived": 0, "errors": 0}

        try:
            conversation_ids = await ctx.store.active_conversation_ids()
            if not conversation_ids:
                logger.info("No active conversations to check")
                return result

            for conversation_id in conversation_ids:
                result["checked"] += 1
                try:
                    conversation = await ctx.platform.get_conversation(conversation_id)
                    if conversation is None:
                        logger.warning("Conversation not found", conversation_id=conversation_id)
                        continue
                    if conversation.is_archived:
                        await self._archive(ctx, conversation)
                        result["archived"] += 1
                except Exception as e:
                    result["errors"] += 1
                    logger.error(
                        "Failed to sync conversation",
                        conversation_id=conversation_id,
                        error=str(e),
                    )

            logger.info("Modmail sync completed", **result)
            return result

        finally:
            self.is_running = False

    async def _archive(self, ctx: BridgeContext, conversation: Conversation) -> None:
        logger.info("Conversation archived, updating notifications", conversation_id=conversation.id)
        messages = conversation.newest_first()
        payload = await ctx.builder.conversation_payload(
            conversation, latest_user_message(messages), None, ItemState.ARCHIVED_MODMAIL
        )

        for link in await ctx.store.find_links(conversation.id):
            if link.channel_class != ChannelClass.MOD_MAIL:
                continue
            if link.current_state == ItemState.ARCHIVED_MODMAIL:
                continue
            if await ctx.gateway.edit(link.destination_ref, link.destination_message_id, payload):
                await ctx.store.update_state(link.destination_message_id, ItemState.ARCHIVED_MODMAIL)

        await ctx.store.untrack_active_conversation(conversation.id)


modmail_sync_job = ModmailSyncJob()


async def run_modmail_sync_job() -> dict:
    async with open_bridge() as ctx:
        result = await modmail_sync_job.run_once(ctx)
    log_job_summary("modmail_sync", result)
    return result


async def start_modmail_sync_scheduler():
    interval = settings.MODMAIL_SYNC_INTERVAL_SECONDS
    logger.info("Starting modmail sync scheduler", interval_seconds=interval)

    async with open_bridge() as ctx:
        while True:
            try:
                await modmail_sync_job.run_once(ctx)
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Modmail sync scheduler cancelled")
                break
            except Exception as e:
                logger.error("Modmail sync scheduler error", error=str(e))
                await asyncio.sleep(60)
