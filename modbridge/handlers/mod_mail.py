"""
Private moderator conversation handler.

A conversation maps to a chain of notifications. The newest one follows the
sub-machine NEW_MODMAIL -> ANSWERED_MODMAIL -> NEW_REPLY_MODMAIL; a user
reply after an answer (or after archival) starts a fresh notification.
"""

from typing import Any

from modbridge.config import settings as app_settings
from modbridge.context import BridgeContext
from modbridge.handlers.common import send_and_link
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import (
    Conversation,
    ConversationMessage,
    SourceItem,
)
from modbridge.models.domain.link_domain import LinkEntry
from modbridge.models.domain.states import ChannelClass, ItemState

logger = get_logger(__name__)

CONVERSATION_ID_PREFIX = "ModmailConversation_"

REOPENING_STATES = frozenset({ItemState.ANSWERED_MODMAIL, ItemState.ARCHIVED_MODMAIL})


def clean_conversation_id(payload: dict[str, Any]) -> str | None:
    conversation_id = payload.get("conversation_id") or payload.get("conversationId")
    if not conversation_id:
        return None
    return conversation_id.removeprefix(CONVERSATION_ID_PREFIX)


def next_conversation_state(
    latest_link: LinkEntry | None, from_moderator: bool
) -> tuple[ItemState, bool]:
    """
    Decide the state of the conversation notification.

    Returns:
        (state, create_new) where create_new means a fresh notification is sent
    """
    if latest_link is None:
        return ItemState.NEW_MODMAIL, True
    if from_moderator:
        return ItemState.ANSWERED_MODMAIL, False
    if latest_link.current_state in REOPENING_STATES:
        return ItemState.NEW_REPLY_MODMAIL, True
    if latest_link.current_state == ItemState.NEW_REPLY_MODMAIL:
        return ItemState.NEW_REPLY_MODMAIL, False
    return ItemState.NEW_MODMAIL, False


def latest_user_message(messages: list[ConversationMessage]) -> ConversationMessage | None:
    """Newest message not written by a moderator; messages are newest first."""
    for message in messages:
        if not message.from_moderator:
            return message
    return messages[-1] if messages else None


async def handle_mod_mail(
    payload: dict[str, Any], ctx: BridgeContext, prefetched: SourceItem | None
) -> None:
    webhook = await ctx.settings.get_webhook(ChannelClass.MOD_MAIL)
    if not webhook:
        return

    conversation_id = clean_conversation_id(payload)
    if not conversation_id:
        return

    try:
        conversation = await ctx.platform.get_conversation(conversation_id)
    except Exception as e:
        logger.error(
            "Failed to fetch conversation", conversation_id=conversation_id, error=str(e)
        )
        return

    if conversation is None:
        logger.warning("Conversation not found", conversation_id=conversation_id)
        return

    messages = conversation.newest_first()
    if not messages:
        return

    latest = messages[0]
    links = await ctx.store.find_links(conversation_id)
    links.sort(key=lambda link: link.created_at, reverse=True)
    latest_link = links[0] if links else None

    state, create_new = next_conversation_state(latest_link, latest.from_moderator)

    if state == ItemState.NEW_MODMAIL and latest.from_moderator:
        author = (latest.author_name or "").lower()
        allow_own = await ctx.settings.get_bool("ALLOW_NOTIFICATIONS_IN_DISCORD")
        if not (allow_own and author == app_settings.APP_ACCOUNT_NAME.lower()):
            logger.info("Conversation opened by a moderator, ignoring", conversation_id=conversation_id)
            return

    ignored = await ctx.settings.ignored_conversation_authors()
    if latest.author_name and latest.author_name.lower() in ignored:
        logger.info(
            "Conversation author is ignored",
            conversation_id=conversation_id,
            author=latest.author_name,
        )
        return

    if create_new:
        await _create_notification(ctx, webhook, conversation, messages, state, latest_link is None)
    else:
        await _update_notification(ctx, conversation, messages, latest_link, state)


async def _create_notification(
    ctx: BridgeContext,
    webhook: str,
    conversation: Conversation,
    messages: list[ConversationMessage],
    state: ItemState,
    first_notification: bool,
) -> None:
    # The first notification of a thread shows the opening message
    shown = messages[-1] if first_notification else messages[0]
    logger.info(
        "Creating conversation notification", conversation_id=conversation.id, state=state.value
    )

    message = await ctx.builder.conversation_payload(conversation, shown, None, state)
    notice = await ctx.settings.get_text("MODMAIL_MESSAGE")
    if notice:
        message["content"] = notice

    entry = await send_and_link(ctx, webhook, message, conversation.id, ChannelClass.MOD_MAIL, state)
    if entry:
        await ctx.store.track_active_conversation(conversation.id)


async def _update_notification(
    ctx: BridgeContext,
    conversation: Conversation,
    messages: list[ConversationMessage],
    link: LinkEntry,
    state: ItemState,
) -> None:
    latest = messages[0]
    if latest.from_moderator and link.current_state == ItemState.ANSWERED_MODMAIL:
        logger.debug("Reply already shown as answered", conversation_id=conversation.id)
        return

    logger.info(
        "Updating conversation notification", conversation_id=conversation.id, state=state.value
    )
    moderator_reply = latest if latest.from_moderator else None
    message = await ctx.builder.conversation_payload(
        conversation, latest_user_message(messages), moderator_reply, state
    )

    if not await ctx.gateway.edit(link.destination_ref, link.destination_message_id, message):
        logger.warning(
            "Conversation notification edit failed",
            conversation_id=conversation.id,
            message_id=link.destination_message_id,
        )
        return

    if link.current_state != state:
        await ctx.store.update_state(link.destination_message_id, state)
