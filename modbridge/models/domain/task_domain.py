"""
Queue task models and the payload normalization step applied at the queue boundary.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from modbridge.models.domain.states import content_kind_for


class HandlerName(StrEnum):
    NEW_POST = "NewPostHandler"
    PUBLIC_POST = "PublicPostHandler"
    STATE_SYNC = "StateSyncHandler"
    REMOVAL = "RemovalHandler"
    SPAM_REMOVAL = "SpamRemovalHandler"
    REMOVAL_REASON = "RemovalReasonHandler"
    REPORT = "ReportHandler"
    MOD_LOG = "ModLogHandler"
    DELETION = "DeletionHandler"
    FLAIR_WATCH = "FlairWatchHandler"
    MOD_ACTIVITY = "ModActivityHandler"
    MOD_ABUSE = "ModAbuseHandler"
    MOD_MAIL = "ModMailHandler"
    MOD_QUEUE = "ModQueueHandler"
    UPDATE = "UpdateHandler"


# Handlers that need a snapshot of the moderation queue to decide anything
QUEUE_SNAPSHOT_HANDLERS = frozenset({HandlerName.MOD_QUEUE})


class QueueTask(BaseModel):
    """A unit of work as stored in the queue data hash."""

    handler: HandlerName
    payload: dict[str, Any] = Field(default_factory=dict)
    content_id: str | None = None
    enqueued_at: float | None = None


class WithdrawnTask(BaseModel):
    """A task read from the queue together with its storage key."""

    task_id: str
    task: QueueTask


def _nested_id(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if isinstance(value, dict):
        nested = value.get("id")
        return nested if isinstance(nested, str) else None
    return None


def _candidate_ids(payload: dict[str, Any]) -> list[str | None]:
    event_type = payload.get("type")
    candidates: list[str | None] = []

    # Delete events carry a separate id field per kind
    if event_type == "CommentDelete":
        candidates.append(payload.get("comment_id"))
    elif event_type == "PostDelete":
        candidates.append(payload.get("post_id"))

    candidates.extend(
        [
            _nested_id(payload, "target_post"),
            _nested_id(payload, "target_comment"),
            payload.get("target_id"),
            payload.get("id"),
            payload.get("item_id"),
            payload.get("post_id"),
            payload.get("comment_id"),
            _nested_id(payload, "post"),
            _nested_id(payload, "comment"),
        ]
    )
    return candidates


def extract_content_id(payload: dict[str, Any] | None) -> str | None:
    """
    Find the canonical source content id (post or comment fullname) in an event payload.

    Event payloads differ by kind: moderation actions nest the target under
    target_post/target_comment, submissions carry a bare id, delete events use
    post_id/comment_id, update events nest the item under post/comment. The
    first candidate that looks like a content fullname wins.
    """
    if not payload:
        return None

    for candidate in _candidate_ids(payload):
        if isinstance(candidate, str) and content_kind_for(candidate) is not None:
            return candidate
    return None
