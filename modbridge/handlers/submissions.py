"""
Handlers for newly submitted content: private new-post feed, public listing,
flair watch and moderator activity.
"""

from typing import Any

from modbridge.context import BridgeContext
from modbridge.handlers.common import has_link, send_and_link
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import ContentDetail, SourceItem
from modbridge.models.domain.states import ChannelClass, ContentKind, ItemState
from modbridge.models.domain.task_domain import extract_content_id

logger = get_logger(__name__)


def listing_blocked(detail: ContentDetail, state: ItemState) -> bool:
    """Public listings skip content that shows any sign of removal, unless it was just approved."""
    if state == ItemState.APPROVED:
        return False
    return bool(
        detail.is_removed or detail.is_spam or detail.removed_by or detail.removal_reason
    )


async def handle_new_post(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    content_id = extract_content_id(payload)
    if not content_id:
        logger.warning("New post task without content id")
        return

    webhook = await ctx.settings.get_webhook(ChannelClass.NEW_POSTS)
    if not webhook:
        return

    links = await ctx.store.find_links(content_id)
    if has_link(links, ChannelClass.NEW_POSTS):
        logger.info("Already sent to new posts channel", content_id=content_id)
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    state = ItemState.APPROVED if item.is_approved else ItemState.LIVE
    detail = await ctx.resolver.gather_details(item)
    message = await ctx.builder.content_payload(
        detail, state, custom_text=await ctx.settings.get_text("NEW_POST_MESSAGE")
    )
    await send_and_link(ctx, webhook, message, content_id, ChannelClass.NEW_POSTS, state)


async def create_public_listing(
    ctx: BridgeContext, detail: ContentDetail, state: ItemState = ItemState.LIVE
) -> bool:
    """Post a public listing for a visible post; no-op when one already exists."""
    if detail.kind != ContentKind.POST:
        return False

    webhook = await ctx.settings.get_webhook(ChannelClass.PUBLIC_NEW_POSTS)
    if not webhook:
        return False

    links = await ctx.store.find_links(detail.id)
    if has_link(links, ChannelClass.PUBLIC_NEW_POSTS):
        logger.info("Public listing already exists", content_id=detail.id)
        return False

    if listing_blocked(detail, state):
        logger.info("Post appears to be removed, not listing publicly", content_id=detail.id)
        return False

    message = await ctx.builder.content_payload(
        detail,
        ItemState.PUBLIC_POST,
        custom_text=await ctx.settings.get_text("NEW_PUBLIC_POST_MESSAGE"),
    )
    entry = await send_and_link(
        ctx, webhook, message, detail.id, ChannelClass.PUBLIC_NEW_POSTS, ItemState.PUBLIC_POST
    )
    return entry is not None


async def handle_public_post(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    content_id = extract_content_id(payload)
    if not content_id:
        return

    if not await ctx.settings.get_webhook(ChannelClass.PUBLIC_NEW_POSTS):
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    state = ItemState.APPROVED if item.is_approved else ItemState.LIVE
    await create_public_listing(ctx, detail, state)


async def post_flair_watch(
    ctx: BridgeContext,
    detail: ContentDetail,
    public_only: bool = False,
    state: ItemState = ItemState.LIVE,
) -> int:
    """
    Send the content to every flair watch rule it matches.

    A rule matches when its flair text appears in the post flair or the
    author's flair, and it is enabled for the content kind.

    Returns:
        Number of notifications sent
    """
    rules = await ctx.settings.flair_watch_rules()
    if not rules:
        return 0

    author_flair = detail.author_stats.flair_text if detail.author_stats else None
    post_flair = detail.flair_text if detail.kind == ContentKind.POST else None
    is_post = detail.kind == ContentKind.POST

    links = await ctx.store.find_links(detail.id)
    sent = 0

    for rule in rules:
        if not (
            (author_flair and rule.flair in author_flair) or (post_flair and rule.flair in post_flair)
        ):
            continue
        if (is_post and not rule.post) or (not is_post and not rule.comment):
            continue
        if not rule.webhook or (public_only and not rule.public_format):
            continue

        channel_class = (
            ChannelClass.PUBLIC_FLAIR_WATCH if rule.public_format else ChannelClass.FLAIR_WATCH
        )
        if any(
            link.channel_class == channel_class and link.destination_ref == rule.webhook
            for link in links
        ):
            continue
        if rule.public_format and listing_blocked(detail, state):
            continue

        link_state = ItemState.PUBLIC_POST if rule.public_format else ItemState.LIVE
        logger.info("Flair watch match", content_id=detail.id, flair=rule.flair)
        message = await ctx.builder.content_payload(detail, link_state)
        if await send_and_link(ctx, rule.webhook, message, detail.id, channel_class, link_state):
            sent += 1

    return sent


async def create_public_flair_listing(
    ctx: BridgeContext, detail: ContentDetail, state: ItemState = ItemState.LIVE
) -> bool:
    return await post_flair_watch(ctx, detail, public_only=True, state=state) > 0


async def handle_flair_watch(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    content_id = extract_content_id(payload)
    if not content_id:
        return

    if not await ctx.settings.flair_watch_rules():
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None:
        return

    detail = await ctx.resolver.gather_details(item)
    await post_flair_watch(ctx, detail)


async def handle_mod_activity(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Mirror content written by members of the moderator team."""
    content_id = extract_content_id(payload)
    if not content_id:
        return

    webhook = await ctx.settings.get_webhook(ChannelClass.MOD_ACTIVITY)
    if not webhook:
        return

    is_post = content_id.startswith("t3_")
    if is_post and not await ctx.settings.get_bool("MOD_ACTIVITY_CHECK_POSTS", default=True):
        return
    if not is_post and not await ctx.settings.get_bool("MOD_ACTIVITY_CHECK_COMMENTS", default=True):
        return

    links = await ctx.store.find_links(content_id)
    if has_link(links, ChannelClass.MOD_ACTIVITY):
        return

    item = await ctx.resolver.fetch(content_id, prefetched)
    if item is None or not item.author_name:
        return

    moderators = {name.lower() for name in await ctx.moderators()}
    if item.author_name.lower() not in moderators:
        return

    detail = await ctx.resolver.gather_details(item)
    message = await ctx.builder.content_payload(
        detail, ItemState.LIVE, custom_text=await ctx.settings.get_text("MOD_ACTIVITY_MESSAGE")
    )
    await send_and_link(
        ctx, webhook, message, content_id, ChannelClass.MOD_ACTIVITY, ItemState.LIVE
    )
