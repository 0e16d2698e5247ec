"""
Linkage Store - durable index of every notification sent for source content.

Redis layout:
    link:{message_id}                  hash with the LinkEntry fields
    link_index:source:{source_id}      sorted set of message ids (score = created epoch)
    link_index:chrono                  sorted set of all message ids (score = created epoch)
    link_index:conversations:active    sorted set of open private conversation ids
"""

import time

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.link_domain import LinkEntry
from modbridge.models.domain.states import ItemState
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

LINK_KEY_PREFIX = "link"
SOURCE_INDEX_PREFIX = "link_index:source"
CHRONO_INDEX_KEY = "link_index:chrono"
ACTIVE_CONVERSATIONS_KEY = "link_index:conversations:active"

RECENT_SCAN_PAGE_SIZE = 50
RECENT_SCAN_MAX_DEPTH = 2000


class LinkageStore:
    """Maps source content ids to destination messages and their last known state."""

    def __init__(self, redis_client: FastRedisClient | None = None):
        self.redis = redis_client or fast_redis

    def _link_key(self, message_id: str) -> str:
        return f"{LINK_KEY_PREFIX}:{message_id}"

    def _source_index_key(self, source_id: str) -> str:
        return f"{SOURCE_INDEX_PREFIX}:{source_id}"

    async def record_link(self, entry: LinkEntry) -> bool:
        """
        Store a link and add it to both indexes.

        Not idempotent in identity: callers check find_links before creating a
        notification for a channel class that must stay unique per content.
        """
        stored = await self.redis.hash_set(
            self._link_key(entry.destination_message_id), entry.to_redis_hash()
        )
        if not stored:
            logger.error(
                "Failed to record link",
                source_id=entry.source_id,
                message_id=entry.destination_message_id,
            )
            return False

        await self.redis.zset_add(
            self._source_index_key(entry.source_id),
            entry.destination_message_id,
            entry.created_at_epoch,
        )
        await self.redis.zset_add(
            CHRONO_INDEX_KEY, entry.destination_message_id, entry.created_at_epoch
        )

        logger.info(
            "Link recorded",
            source_id=entry.source_id,
            message_id=entry.destination_message_id,
            channel_class=entry.channel_class.value,
            state=entry.current_state.value,
        )
        return True

    async def get_link(self, message_id: str) -> LinkEntry | None:
        record = await self.redis.hash_get_all(self._link_key(message_id))
        return LinkEntry.from_redis_hash(record)

    async def linked_message_ids(self, source_id: str) -> list[str]:
        return await self.redis.zset_range(self._source_index_key(source_id), 0, -1)

    async def find_links(self, source_id: str) -> list[LinkEntry]:
        """
        Return every notification ever sent for this content, oldest first.

        Index references whose backing record is gone are removed on the way.
        A failed read is skipped, never treated as a missing record.
        """
        entries: list[LinkEntry] = []
        index_key = self._source_index_key(source_id)

        for message_id in await self.linked_message_ids(source_id):
            link_key = self._link_key(message_id)
            record = await self.redis.hash_get_all(link_key)
            if not record:
                if await self.redis.exists(link_key) is False:
                    logger.info(
                        "Removing dangling link reference",
                        source_id=source_id,
                        message_id=message_id,
                    )
                    await self.redis.zset_remove(index_key, message_id)
                else:
                    logger.warning(
                        "Link record unreadable, keeping reference",
                        source_id=source_id,
                        message_id=message_id,
                    )
                continue

            entry = LinkEntry.from_redis_hash(record)
            if entry is None:
                logger.warning("Skipping unreadable link record", message_id=message_id)
                continue
            entries.append(entry)

        return entries

    async def update_state(self, message_id: str, new_state: ItemState) -> bool:
        """In-place state update, no other side effects. A deleted link stays deleted."""
        link_key = self._link_key(message_id)
        if not await self.redis.exists(link_key):
            logger.info("Link gone, skipping state update", message_id=message_id)
            return False
        return await self.redis.hash_set(link_key, {"current_state": new_state.value})

    async def delete_link(self, entry: LinkEntry) -> None:
        """Remove the record and both index memberships; drop an emptied per-content index."""
        index_key = self._source_index_key(entry.source_id)

        await self.redis.delete(self._link_key(entry.destination_message_id))
        await self.redis.zset_remove(index_key, entry.destination_message_id)
        await self.redis.zset_remove(CHRONO_INDEX_KEY, entry.destination_message_id)

        remaining = await self.redis.zset_card(index_key)
        if remaining == 0:
            await self.redis.delete(index_key)

        logger.info(
            "Deleted link and index references",
            source_id=entry.source_id,
            message_id=entry.destination_message_id,
        )

    async def find_expired(
        self, max_age_seconds: int, limit: int = 1000, now: float | None = None
    ) -> list[str]:
        """Message ids created at least max_age_seconds ago, oldest first, at most limit."""
        cutoff = int(now if now is not None else time.time()) - max_age_seconds
        return await self.redis.zset_range_by_score(
            CHRONO_INDEX_KEY, "-inf", cutoff, offset=0, count=limit
        )

    async def recent_links(self, limit: int) -> list[LinkEntry]:
        """Newest-first walk of the chronological index, bounded in depth."""
        entries: list[LinkEntry] = []
        cursor = 0

        while len(entries) < limit and cursor < RECENT_SCAN_MAX_DEPTH:
            page = await self.redis.zset_range(
                CHRONO_INDEX_KEY, cursor, cursor + RECENT_SCAN_PAGE_SIZE - 1, desc=True
            )
            if not page:
                break

            for message_id in page:
                entry = await self.get_link(message_id)
                if entry is not None:
                    entries.append(entry)
                if len(entries) >= limit:
                    break

            cursor += RECENT_SCAN_PAGE_SIZE

        return entries

    # ------------------------------------------------------------------
    # Private conversation tracking
    # ------------------------------------------------------------------

    async def track_active_conversation(self, conversation_id: str) -> None:
        await self.redis.zset_add(ACTIVE_CONVERSATIONS_KEY, conversation_id, time.time())

    async def untrack_active_conversation(self, conversation_id: str) -> None:
        await self.redis.zset_remove(ACTIVE_CONVERSATIONS_KEY, conversation_id)

    async def active_conversation_ids(self) -> list[str]:
        return await self.redis.zset_range(ACTIVE_CONVERSATIONS_KEY, 0, -1)


linkage_store = LinkageStore()
