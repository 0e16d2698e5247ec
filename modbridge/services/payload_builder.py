"""
Payload Builder - renders destination message payloads (webhook embeds).

Only the minimum needed to render each notification kind; colors can be
overridden per state through the settings hash.
"""

from datetime import UTC, datetime
from typing import Any

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import (
    ContentDetail,
    Conversation,
    ConversationMessage,
    ModActionTarget,
)
from modbridge.models.domain.states import ChannelClass, ItemState
from modbridge.services.settings_service import SettingsService, settings_service

logger = get_logger(__name__)

# state -> (settings key, default hex color)
STATE_COLORS = {
    ItemState.PUBLIC_POST: ("publicPostColorCode", "#71c7d6"),
    ItemState.LIVE: ("liveColorCode", "#71c7d6"),
    ItemState.APPROVED: ("approvedColorCode", "#2ECC71"),
    ItemState.REMOVED: ("removedColorCode", "#E74C3C"),
    ItemState.SPAM: ("spamColorCode", "#E74C3C"),
    ItemState.AWAITING_REVIEW: ("awaitingReviewColorCode", "#E67E22"),
    ItemState.DELETED: ("deletedColorCode", "#808080"),
    ItemState.UNHANDLED_REPORT: ("unhandledReportColorCode", "#F1C40F"),
    ItemState.NEW_MODMAIL: ("newModMailColorCode", "#3498DB"),
    ItemState.ANSWERED_MODMAIL: ("answeredModMailColorCode", "#2ECC71"),
    ItemState.NEW_REPLY_MODMAIL: ("newReplyModMailColorCode", "#9B59B6"),
    ItemState.ARCHIVED_MODMAIL: ("archivedModMailColorCode", "#2ECC71"),
}
FALLBACK_COLOR = 0x95A5A6

# state -> (status text, last action text)
STATUS_TEXT = {
    ItemState.APPROVED: ("✅ Approved", "Approved"),
    ItemState.REMOVED: ("❌ Removed", "Removed"),
    ItemState.SPAM: ("❌ Removed", "Identified as Spam"),
    ItemState.AWAITING_REVIEW: ("⏳ Awaiting Review", "Auto-Removed"),
    ItemState.DELETED: ("🗑️ Deleted", "Deleted by User/Reddit"),
    ItemState.LIVE: ("🟢 Live", "None"),
    ItemState.UNHANDLED_REPORT: ("⚠️ Reported", "Awaiting Review"),
}

MODMAIL_STATUS_TEXT = {
    ItemState.NEW_MODMAIL: "📩 New",
    ItemState.ANSWERED_MODMAIL: "✅ Answered",
    ItemState.NEW_REPLY_MODMAIL: "💬 New Reply",
    ItemState.ARCHIVED_MODMAIL: "📦 Archived",
}

CRITICAL_ACTIONS = {"banuser", "spamlink", "removelink", "removecomment", "spamcomment"}
POSITIVE_ACTIONS = {"approve", "approvelink", "approvecomment", "unbanuser", "distinguish"}
SETTINGS_ACTIONS = {"community_styling", "modqueue", "wikirevise", "createrule", "editrule"}


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def parse_hex_color(value: str | None, default: str) -> int:
    for candidate in (value, default):
        if not candidate:
            continue
        try:
            return int(candidate.strip().lstrip("#"), 16)
        except ValueError:
            logger.warning("Invalid color code, falling back", color=candidate)
    return FALLBACK_COLOR


def mod_action_color(action: str) -> int:
    if action in CRITICAL_ACTIONS:
        return 0xF04747
    if action in POSITIVE_ACTIONS:
        return 0x2ECC71
    if action in SETTINGS_ACTIONS:
        return FALLBACK_COLOR
    return 0x3498DB


class PayloadBuilder:
    def __init__(self, settings_source: SettingsService | None = None):
        self.settings = settings_source or settings_service

    async def color_for(self, state: ItemState) -> int:
        setting_name, default = STATE_COLORS.get(state, (None, None))
        if setting_name is None:
            return FALLBACK_COLOR
        return parse_hex_color(await self.settings.get_text(setting_name), default)

    async def content_payload(
        self,
        detail: ContentDetail,
        state: ItemState,
        custom_text: str | None = None,
    ) -> dict[str, Any]:
        """Embed for a post or comment notification in the given state."""
        public = state == ItemState.PUBLIC_POST
        hide_body = hide_image = False
        if public and detail.content_warning == "NSFW":
            hide_body = await self.settings.get_bool("NEW_PUBLIC_POST_HIDE_NSFW_BODY")
            hide_image = await self.settings.get_bool("NEW_PUBLIC_POST_HIDE_NSFW_IMAGE")
        elif public and detail.content_warning == "Spoilers":
            hide_body = await self.settings.get_bool("NEW_PUBLIC_POST_HIDE_SPOILER_BODY")
            hide_image = await self.settings.get_bool("NEW_PUBLIC_POST_HIDE_SPOILER_IMAGE")

        fields = [{"name": "Author", "value": f"u/{detail.author_name}", "inline": True}]
        if detail.flair_text:
            fields.append({"name": "Flair", "value": detail.flair_text, "inline": True})
        if detail.content_warning:
            fields.append(
                {"name": "Content Warning", "value": detail.content_warning, "inline": True}
            )

        if not public:
            status_text, action_text = STATUS_TEXT.get(state, ("Unknown", "N/A"))
            fields.append({"name": "Status", "value": status_text, "inline": True})
            if state in (ItemState.REMOVED, ItemState.AWAITING_REVIEW) and detail.removed_by:
                action_text = f"{action_text} by {detail.removed_by}"
            fields.append({"name": "Last Action", "value": action_text, "inline": True})

            if detail.removal_reason:
                fields.append(
                    {"name": "Removal Reason", "value": detail.removal_reason[:1024], "inline": True}
                )
            if detail.report_reasons:
                fields.append(
                    {
                        "name": "Report Reasons",
                        "value": ", ".join(detail.report_reasons)[:1024],
                        "inline": False,
                    }
                )
            if detail.report_count:
                fields.append(
                    {"name": "Report Count", "value": str(detail.report_count), "inline": True}
                )

        embed: dict[str, Any] = {
            "title": detail.title[:256],
            "url": detail.permalink,
            "description": "" if hide_body else _truncate(detail.body, 300),
            "color": await self.color_for(state),
            "fields": fields,
            "timestamp": detail.created_at.isoformat(),
            "footer": {"text": f"r/{detail.subreddit_name}"},
        }
        if detail.image_url and not hide_image:
            embed["image"] = {"url": detail.image_url}

        payload: dict[str, Any] = {"embeds": [embed]}
        if custom_text:
            payload["content"] = custom_text
        return payload

    def mod_log_payload(
        self, event: dict[str, Any], target: ModActionTarget
    ) -> dict[str, Any]:
        action = event.get("action") or "unknown"
        moderator_name = (event.get("moderator") or {}).get("name") or "Reddit"
        actioned_at = event.get("actioned_at")
        timestamp = actioned_at or datetime.now(UTC).isoformat()
        subreddit_name = (event.get("subreddit") or {}).get("name") or "Subreddit"

        description = event.get("details") or event.get("description") or ""
        if not description:
            description = {
                "sticky": "Stickied content",
                "unsticky": "Unstickied content",
                "lock": "Locked content",
                "unlock": "Unlocked content",
            }.get(action, "")

        fields = [
            {"name": "Moderator", "value": f"u/{moderator_name}", "inline": True},
            {"name": "Action", "value": f"`{action}`", "inline": True},
        ]
        if target.target_type == "content" and target.content:
            fields.append(
                {"name": "Target", "value": f"[{target.target_name}]({target.target_url})", "inline": True}
            )
            if target.content.body:
                snippet = target.content.body[:150].replace("\n", " ")
                description = f"{description}\n\n> {snippet}..." if description else f"> {snippet}..."
        elif target.target_type == "user":
            fields.append(
                {"name": "User", "value": f"[{target.target_name}]({target.target_url})", "inline": True}
            )
        else:
            fields.append({"name": "Target", "value": target.target_name, "inline": True})

        embed: dict[str, Any] = {
            "title": f"Mod Action: {action}",
            "color": mod_action_color(action),
            "fields": fields,
            "timestamp": timestamp,
            "footer": {"text": f"r/{subreddit_name} • {ChannelClass.MOD_LOG.value}"},
        }
        if description:
            embed["description"] = description
        return {"embeds": [embed]}

    async def conversation_payload(
        self,
        conversation: Conversation,
        user_message: ConversationMessage | None,
        moderator_reply: ConversationMessage | None,
        state: ItemState,
    ) -> dict[str, Any]:
        body = (user_message.body_markdown if user_message else "") or "No content."
        if len(body) > 400:
            body = body[:390] + "..."

        author = user_message.author_name if user_message and user_message.author_name else "Unknown"
        fields = [
            {"name": "User", "value": f"u/{author}", "inline": True},
            {"name": "Status", "value": MODMAIL_STATUS_TEXT.get(state, "Unknown"), "inline": True},
        ]
        if moderator_reply:
            reply = moderator_reply.body_markdown or "No content."
            if len(reply) > 400:
                reply = reply[:390] + "..."
            fields.append(
                {
                    "name": f"↩️ Reply by u/{moderator_reply.author_name}",
                    "value": reply,
                    "inline": False,
                }
            )

        return {
            "embeds": [
                {
                    "title": f"Modmail: {conversation.subject or 'No subject'}",
                    "url": f"https://mod.reddit.com/mail/all/{conversation.id}",
                    "description": body,
                    "color": await self.color_for(state),
                    "fields": fields,
                    "timestamp": datetime.now(UTC).isoformat(),
                    "footer": {
                        "text": f"Conversation ID: {conversation.id} • {ChannelClass.MOD_MAIL.value}"
                    },
                }
            ]
        }

    def mod_abuse_payload(
        self,
        moderator_name: str,
        action_count: int,
        threshold: int,
        timeframe_minutes: int,
        last_action: str,
        custom_text: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "embeds": [
                {
                    "title": "High Activity Detected",
                    "color": 0xFF0000,
                    "description": f"Threshold: {threshold} actions.\nLast Action: `{last_action}`",
                    "timestamp": datetime.now(UTC).isoformat(),
                    "fields": [
                        {"name": "Moderator", "value": f"u/{moderator_name}", "inline": True},
                        {"name": "Count", "value": str(action_count), "inline": True},
                        {"name": "Timeframe", "value": f"{timeframe_minutes} Minutes", "inline": True},
                    ],
                }
            ]
        }
        if custom_text:
            payload["content"] = custom_text
        return payload


payload_builder = PayloadBuilder()
