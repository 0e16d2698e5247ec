"""
Handlers for moderation outcomes on tracked content: state changes, removals,
removal reasons, reports, deletions, edits and the moderation queue.
"""

from typing import Any

from modbridge.context import BridgeContext
from modbridge.handlers.common import has_link, mod_action_target_id, send_and_link
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import ContentDetail, SourceItem
from modbridge.models.domain.states import (
    VISIBLE_STATES,
    ChannelClass,
    ItemState,
    RemovalAttribution,
    state_from_mod_action,
)
from modbridge.models.domain.task_domain import extract_content_id
from modbridge.services.attribution import removal_notice_attribution
from modbridge.services.reconciler import EVOLVING_CLASSES

logger = get_logger(__name__)

REMOVAL_ACTION_STATES = frozenset({ItemState.REMOVED, ItemState.SPAM})
SPAM_FILTER_ACCOUNT = "Reddit Filter"
SPAM_FILTER_REASON = "Item was silently removed or marked as spam by Reddit."


def requested_state(payload: dict[str, Any]) -> ItemState | None:
    """State carried by a moderation action, or an explicit target_state from a sweep."""
    state = state_from_mod_action(payload.get("action"))
    if state is not None:
        return state
    target_state = payload.get("target_state")
    if not target_state:
        return None
    try:
        return ItemState(target_state)
    except ValueError:
        logger.warning("Unknown target state in task payload", target_state=target_state)
        return None


async def handle_state_sync(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Converge every notification of the targeted content with its new state."""
    content_id = mod_action_target_id(payload) or extract_content_id(payload)
    if not content_id:
        return

    state = requested_state(payload)
    if state is None:
        return

    links = await ctx.store.find_links(content_id)
    if not links and state not in VISIBLE_STATES:
        logger.info("No tracked notifications, skipping state sync", content_id=content_id)
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    await ctx.reconciler.reconcile(content_id, state, detail, links, ctx.mod_queue_ids)


async def handle_removal(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Create the removal notification, once per content item."""
    content_id = mod_action_target_id(payload)
    if not content_id:
        return

    action_state = state_from_mod_action(payload.get("action"))
    if action_state not in REMOVAL_ACTION_STATES:
        return

    webhook = await ctx.settings.get_webhook(ChannelClass.REMOVALS)
    if not webhook:
        return

    links = await ctx.store.find_links(content_id)
    if has_link(links, ChannelClass.REMOVALS):
        logger.info("Removal notification already exists", content_id=content_id)
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    state = await ctx.reconciler.effective_state(action_state, detail)

    if state == ItemState.AWAITING_REVIEW:
        notice_kind = RemovalAttribution.AUTOMATED
    elif state == ItemState.REMOVED:
        notice_kind = removal_notice_attribution(
            detail.removed_by, await ctx.moderators(), automated=False
        )
    else:
        notice_kind = RemovalAttribution.MODERATOR

    message = await ctx.builder.content_payload(
        detail, state, custom_text=await ctx.settings.removal_notice(notice_kind)
    )
    await send_and_link(ctx, webhook, message, content_id, ChannelClass.REMOVALS, state)


async def handle_spam_removal(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Notify about content the platform filtered without a moderator action."""
    content_id = payload.get("target_id") or extract_content_id(payload)
    if not content_id:
        return

    webhook = await ctx.settings.get_webhook(ChannelClass.REMOVALS)
    if not webhook:
        return

    links = await ctx.store.find_links(content_id)
    if has_link(links, ChannelClass.REMOVALS):
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    if not detail.removed_by:
        detail.removed_by = SPAM_FILTER_ACCOUNT
        detail.removal_reason = detail.removal_reason or SPAM_FILTER_REASON

    if detail.author_name.lower() in await ctx.settings.ignored_removal_authors():
        logger.info("Author is ignored for removals", content_id=content_id)
        return

    message = await ctx.builder.content_payload(
        detail, ItemState.SPAM, custom_text=await ctx.settings.get_text("REMOVE_MESSAGE_SPAM")
    )
    await send_and_link(ctx, webhook, message, content_id, ChannelClass.REMOVALS, ItemState.SPAM)


async def handle_removal_reason(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Re-render tracked notifications once a removal reason is attached."""
    if payload.get("action") != "addremovalreason":
        return

    content_id = mod_action_target_id(payload)
    if not content_id:
        return

    links = await ctx.store.find_links(content_id)
    if not links:
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    if not detail.removal_reason:
        return

    state = await ctx.reconciler.effective_state(ItemState.REMOVED, detail)
    await ctx.reconciler.refresh(links, detail, state=state, channel_classes=EVOLVING_CLASSES)


async def handle_report(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """
    Create the report notification once per content item and refresh tracked
    notifications on every later report. A zero report count suppresses updates.
    """
    content_id = extract_content_id(payload)
    if not content_id:
        return

    webhook = await ctx.settings.get_webhook(ChannelClass.REPORTS)
    if not webhook:
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    if not detail.report_count:
        logger.debug("No open reports, nothing to update", content_id=content_id)
        return

    links = await ctx.store.find_links(content_id)

    if not has_link(links, ChannelClass.REPORTS):
        message = await ctx.builder.content_payload(
            detail,
            ItemState.UNHANDLED_REPORT,
            custom_text=await ctx.settings.get_text("REPORT_MESSAGE"),
        )
        await send_and_link(
            ctx, webhook, message, content_id, ChannelClass.REPORTS, ItemState.UNHANDLED_REPORT
        )

    await ctx.reconciler.refresh(
        links,
        detail,
        state=ItemState.UNHANDLED_REPORT,
        channel_classes=frozenset({ChannelClass.NEW_POSTS, ChannelClass.REPORTS}),
    )
    await ctx.reconciler.refresh(
        links, detail, channel_classes=frozenset({ChannelClass.REMOVALS})
    )


async def handle_deletion(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    content_id = extract_content_id(payload)
    if not content_id:
        return

    links = await ctx.store.find_links(content_id)
    if not links:
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    if not item.is_deleted():
        logger.info("Delete event but content still present", content_id=content_id)
        return

    detail = await ctx.resolver.gather_details(item)
    await ctx.reconciler.reconcile(
        content_id, ItemState.DELETED, detail, links, ctx.mod_queue_ids
    )


async def handle_update(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Re-render every notification after an edit, flair or flag change."""
    content_id = extract_content_id(payload)
    if not content_id:
        return

    links = await ctx.store.find_links(content_id)
    if not links:
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    logger.info("Content update, syncing notifications", content_id=content_id, links=len(links))
    # Author flair can change alongside the content
    if item.author_name:
        await ctx.resolver.refresh_author_stats(item.author_name, item.subreddit_name)
    detail = await ctx.resolver.gather_details(item)
    await ctx.reconciler.refresh(links, detail)


def queue_listing_state(detail: ContentDetail) -> ItemState:
    state = ItemState.LIVE
    if detail.report_count:
        state = ItemState.UNHANDLED_REPORT
    if detail.is_removed or detail.is_spam or detail.removed_by:
        state = ItemState.AWAITING_REVIEW
    return state


async def post_queue_listing(
    ctx: BridgeContext, detail: ContentDetail, queue_ids: set[str] | None
) -> bool:
    """List content that is waiting in the moderation queue; False when not applicable."""
    webhook = await ctx.settings.get_webhook(ChannelClass.MOD_QUEUE)
    if not webhook or queue_ids is None:
        return False

    if detail.id not in queue_ids or detail.is_approved:
        return False

    links = await ctx.store.find_links(detail.id)
    if has_link(links, ChannelClass.MOD_QUEUE):
        logger.info("Queue listing already exists", content_id=detail.id)
        return False

    state = queue_listing_state(detail)
    notice = None
    if state == ItemState.UNHANDLED_REPORT:
        notice = await ctx.settings.get_text("MOD_QUEUE_MESSAGE_REPORT")
    elif state == ItemState.AWAITING_REVIEW:
        notice = await ctx.settings.get_text("MOD_QUEUE_MESSAGE_REMOVAL")

    logger.info("New moderation queue entry", content_id=detail.id, state=state.value)
    message = await ctx.builder.content_payload(detail, state, custom_text=notice)
    entry = await send_and_link(ctx, webhook, message, detail.id, ChannelClass.MOD_QUEUE, state)
    return entry is not None


async def create_queue_listing(
    ctx: BridgeContext, detail: ContentDetail, state: ItemState = ItemState.LIVE
) -> bool:
    if state == ItemState.APPROVED:
        return False
    if ctx.mod_queue_ids is None:
        try:
            ctx.mod_queue_ids = await ctx.platform.get_mod_queue_ids()
        except Exception as e:
            logger.error("Failed to fetch moderation queue", error=str(e))
            return False
    return await post_queue_listing(ctx, detail, ctx.mod_queue_ids)


async def handle_mod_queue(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    content_id = extract_content_id(payload)
    if not content_id:
        return

    if not await ctx.settings.get_webhook(ChannelClass.MOD_QUEUE):
        return

    if ctx.mod_queue_ids is None:
        logger.warning("No moderation queue snapshot for this batch", content_id=content_id)
        return

    if content_id not in ctx.mod_queue_ids:
        return

    links = await ctx.store.find_links(content_id)
    if has_link(links, ChannelClass.MOD_QUEUE):
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None or item.is_approved:
        return

    detail = await ctx.resolver.gather_details(item)
    await post_queue_listing(ctx, detail, ctx.mod_queue_ids)
