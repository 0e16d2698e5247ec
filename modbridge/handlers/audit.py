"""
Moderator oversight handlers: the rolling moderation log and high-activity warnings.
"""

from typing import Any

from modbridge.context import BridgeContext
from modbridge.handlers.common import send_and_link
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import SourceItem
from modbridge.models.domain.states import ChannelClass, ItemState

logger = get_logger(__name__)

# Platform accounts whose actions never count toward the activity threshold
UNTRACKED_MODERATORS = frozenset({"AutoModerator", "reddit", "Anti-Evil Operations"})

DEFAULT_ABUSE_TIMEFRAME_MINUTES = 10
DEFAULT_ABUSE_THRESHOLD = 20


def moderator_name_of(event: dict[str, Any]) -> str | None:
    return event.get("moderator_name") or (event.get("moderator") or {}).get("name")


def abuse_target_id(event: dict[str, Any]) -> str:
    for key in ("target_post", "target_comment", "target_user"):
        target_id = (event.get(key) or {}).get("id")
        if target_id:
            return target_id
    return "subreddit"


async def handle_mod_log(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """Append one notification per logged moderation action; entries are never edited."""
    webhook = await ctx.settings.get_webhook(ChannelClass.MOD_LOG)
    if not webhook:
        return

    action = payload.get("action") or ""
    if action not in await ctx.settings.get_list("MODLOG_ACTIONS"):
        return

    target = await ctx.resolver.gather_mod_action_target(payload)
    message = ctx.builder.mod_log_payload(payload, target)
    notice = await ctx.settings.get_text("MODLOG_MESSAGE")
    if notice:
        message["content"] = notice

    event_id = payload.get("id") or ""
    logger.info("Creating moderation log notification", event_id=event_id, action=action)
    await send_and_link(ctx, webhook, message, event_id, ChannelClass.MOD_LOG, ItemState.LIVE)


async def handle_mod_abuse(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    """
    Warn when one moderator performs many watched actions in a short timeframe.

    Every action is tracked; only watched actions are counted. A warning starts
    a cooldown so a burst produces a single notification.
    """
    moderator_name = moderator_name_of(payload)
    if not moderator_name or moderator_name in UNTRACKED_MODERATORS:
        return

    webhook = await ctx.settings.get_mod_abuse_webhook()
    if not webhook:
        return

    action = payload.get("action") or ""
    timeframe = await ctx.settings.get_int("MOD_ABUSE_TIMEFRAME", DEFAULT_ABUSE_TIMEFRAME_MINUTES)
    threshold = await ctx.settings.get_int("MOD_ABUSE_THRESHOLD", DEFAULT_ABUSE_THRESHOLD)
    watched_actions = await ctx.settings.get_list("MOD_ABUSE_ACTIONS")

    await ctx.tracker.track(moderator_name, action, abuse_target_id(payload))

    if action not in watched_actions:
        return

    count = await ctx.tracker.count_recent(moderator_name, timeframe, watched_actions)
    if count < threshold:
        return

    if await ctx.tracker.is_on_cooldown(moderator_name):
        logger.info(
            "Activity threshold reached but warning on cooldown",
            moderator=moderator_name,
            count=count,
            threshold=threshold,
        )
        return

    logger.warning(
        "Moderator activity threshold reached",
        moderator=moderator_name,
        count=count,
        timeframe_minutes=timeframe,
    )
    message = ctx.builder.mod_abuse_payload(
        moderator_name,
        count,
        threshold,
        timeframe,
        action,
        custom_text=await ctx.settings.get_text("MOD_ABUSE_MESSAGE"),
    )
    await ctx.gateway.send(webhook, message)
    await ctx.tracker.start_cooldown(moderator_name)
