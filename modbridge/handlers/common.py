"""Helpers shared by the task handlers."""

from collections.abc import Awaitable, Callable
from typing import Any

from modbridge.context import BridgeContext
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import SourceItem
from modbridge.models.domain.link_domain import LinkEntry
from modbridge.models.domain.states import ChannelClass, ItemState
from modbridge.services.notification_gateway import Sent

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any], BridgeContext, SourceItem | None], Awaitable[None]]


def has_link(links: list[LinkEntry], channel_class: ChannelClass) -> bool:
    return any(link.channel_class == channel_class for link in links)


def mod_action_target_id(payload: dict[str, Any]) -> str | None:
    """Content targeted by a moderation action event."""
    return (
        (payload.get("target_post") or {}).get("id")
        or (payload.get("target_comment") or {}).get("id")
        or payload.get("target_id")
    )


async def send_and_link(
    ctx: BridgeContext,
    endpoint: str,
    payload: dict[str, Any],
    source_id: str,
    channel_class: ChannelClass,
    state: ItemState,
) -> LinkEntry | None:
    """
    Send a new notification and record its link.

    The destination call happens first; nothing is recorded when it fails.
    """
    result = await ctx.gateway.send(endpoint, payload)
    if not isinstance(result, Sent):
        logger.warning(
            "Notification not sent, no link recorded",
            source_id=source_id,
            channel_class=channel_class.value,
            reason=result.reason,
        )
        return None

    entry = LinkEntry.new(
        source_id=source_id,
        destination_message_id=result.message_id,
        channel_class=channel_class,
        current_state=state,
        destination_ref=endpoint,
    )
    await ctx.store.record_link(entry)
    return entry
