"""
Event intake - turns source platform events into queued handler tasks.

Intake never does work itself; it only decides which handlers care about an
event and enqueues one task per handler. Enqueue failures are logged by the
queue and never raised to the event source.
"""

from typing import Any

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.task_domain import HandlerName
from modbridge.services.task_queue import TaskQueue, task_queue

logger = get_logger(__name__)

# Moderation actions that change how tracked content renders without changing its state
CONTENT_UPDATE_ACTIONS = frozenset(
    {"marknsfw", "lock", "unlock", "sticky", "unsticky", "spoiler", "unspoiler", "editflair"}
)

UPDATE_EVENTS = frozenset(
    {"PostUpdate", "CommentUpdate", "PostNsfwUpdate", "PostSpoilerUpdate", "PostFlairUpdate"}
)

SUBMISSION_ROUTES: dict[str, tuple[str, list[HandlerName]]] = {
    "PostSubmit": (
        "post",
        [
            HandlerName.NEW_POST,
            HandlerName.PUBLIC_POST,
            HandlerName.FLAIR_WATCH,
            HandlerName.MOD_ACTIVITY,
            HandlerName.MOD_QUEUE,
            HandlerName.REPORT,
        ],
    ),
    "CommentSubmit": (
        "comment",
        [
            HandlerName.MOD_QUEUE,
            HandlerName.REPORT,
            HandlerName.FLAIR_WATCH,
            HandlerName.MOD_ACTIVITY,
        ],
    ),
    "PostReport": ("post", [HandlerName.REPORT, HandlerName.MOD_QUEUE]),
    "CommentReport": ("comment", [HandlerName.REPORT, HandlerName.MOD_QUEUE]),
}


def _has_content_target(event: dict[str, Any]) -> bool:
    return bool(
        (event.get("target_post") or {}).get("id") or (event.get("target_comment") or {}).get("id")
    )


class EventIntake:
    def __init__(self, queue: TaskQueue | None = None):
        self.queue = queue or task_queue

    def plan(self, event_type: str, event: dict[str, Any]) -> list[tuple[HandlerName, dict[str, Any]]]:
        """Handler tasks an event should produce, in enqueue order."""
        if event_type == "ModAction":
            tasks: list[tuple[HandlerName, dict[str, Any]]] = []
            if _has_content_target(event):
                tasks.extend(
                    (handler, event)
                    for handler in (
                        HandlerName.MOD_QUEUE,
                        HandlerName.STATE_SYNC,
                        HandlerName.REMOVAL,
                        HandlerName.REMOVAL_REASON,
                    )
                )
            tasks.append((HandlerName.MOD_LOG, event))
            tasks.append((HandlerName.MOD_ABUSE, event))
            if event.get("action") in CONTENT_UPDATE_ACTIONS:
                tasks.append((HandlerName.UPDATE, event))
            return tasks

        if event_type in SUBMISSION_ROUTES:
            key, handlers = SUBMISSION_ROUTES[event_type]
            item = event.get(key)
            if not isinstance(item, dict):
                logger.warning("Event without content item", event_type=event_type)
                return []
            return [(handler, item) for handler in handlers]

        if event_type in ("PostDelete", "CommentDelete"):
            payload = {**event, "type": event_type}
            return [(HandlerName.MOD_QUEUE, payload), (HandlerName.DELETION, payload)]

        if event_type == "ModMail":
            return [(HandlerName.MOD_MAIL, event)]

        if event_type in UPDATE_EVENTS:
            return [(HandlerName.UPDATE, event)]

        logger.debug("Unrouted event type", event_type=event_type)
        return []

    async def route(self, event_type: str, event: dict[str, Any]) -> list[str]:
        """
        Enqueue every handler task for an event.

        Returns:
            Ids of the tasks that were stored
        """
        task_ids = []
        for handler, payload in self.plan(event_type, event):
            task_id = await self.queue.enqueue(handler, payload)
            if task_id:
                task_ids.append(task_id)

        logger.info("Event routed", event_type=event_type, tasks=len(task_ids))
        return task_ids


event_intake = EventIntake()
