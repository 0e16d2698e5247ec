"""
Shared vocabulary between source content lifecycle and notification state.
"""

from enum import StrEnum


class ItemState(StrEnum):
    LIVE = "LIVE"
    APPROVED = "APPROVED"
    REMOVED = "REMOVED"
    SPAM = "SPAM"
    AWAITING_REVIEW = "AWAITING_REVIEW"
    UNHANDLED_REPORT = "UNHANDLED_REPORT"
    DELETED = "DELETED"
    PUBLIC_POST = "PUBLIC_POST"

    # Private conversation sub-machine
    NEW_MODMAIL = "NEW_MODMAIL"
    ANSWERED_MODMAIL = "ANSWERED_MODMAIL"
    NEW_REPLY_MODMAIL = "NEW_REPLY_MODMAIL"
    ARCHIVED_MODMAIL = "ARCHIVED_MODMAIL"


class ChannelClass(StrEnum):
    PUBLIC_NEW_POSTS = "PUBLIC_NEW_POSTS_CHANNEL"
    NEW_POSTS = "NEW_POSTS_CHANNEL"
    REPORTS = "REPORTS_CHANNEL"
    REMOVALS = "REMOVALS_CHANNEL"
    MOD_MAIL = "MODMAIL_CHANNEL"
    MOD_LOG = "MODLOG_CHANNEL"
    FLAIR_WATCH = "FLAIR_WATCH_CHANNEL"
    PUBLIC_FLAIR_WATCH = "PUBLIC_FLAIR_WATCH_CHANNEL"
    MOD_QUEUE = "MOD_QUEUE_CHANNEL"
    MOD_ACTIVITY = "MOD_ACTIVITY_CHANNEL"


class ContentKind(StrEnum):
    POST = "post"
    COMMENT = "comment"


class RemovalAttribution(StrEnum):
    MODERATOR = "moderator"
    AUTOMATED = "automated"
    UNKNOWN = "unknown"


POST_PREFIX = "t3_"
COMMENT_PREFIX = "t1_"

# States in which public-facing listings must not show the content
HIDDEN_STATES = frozenset(
    {ItemState.REMOVED, ItemState.AWAITING_REVIEW, ItemState.SPAM, ItemState.DELETED}
)

# States in which public-facing listings may show the content
VISIBLE_STATES = frozenset({ItemState.LIVE, ItemState.APPROVED})

# States that resolve a queue entry (the item may still be queued for another reason)
QUEUE_RESOLVED_STATES = frozenset(
    {ItemState.REMOVED, ItemState.APPROVED, ItemState.SPAM, ItemState.DELETED}
)


def content_kind_for(content_id: str | None) -> ContentKind | None:
    """Derive post/comment from the fullname prefix; None for anything else."""
    if not content_id:
        return None
    if content_id.startswith(POST_PREFIX):
        return ContentKind.POST
    if content_id.startswith(COMMENT_PREFIX):
        return ContentKind.COMMENT
    return None


_MOD_ACTION_STATES = {
    "approvelink": ItemState.APPROVED,
    "approvecomment": ItemState.APPROVED,
    "removelink": ItemState.REMOVED,
    "removecomment": ItemState.REMOVED,
    "spamlink": ItemState.SPAM,
    "spamcomment": ItemState.SPAM,
}


def state_from_mod_action(action: str | None) -> ItemState | None:
    """Map a moderation action name to the lifecycle state it produces."""
    return _MOD_ACTION_STATES.get(action or "")
