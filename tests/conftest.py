import itertools
import math
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from modbridge.bridge import build_context
from modbridge.models.domain.content_domain import SourceItem
from modbridge.services.notification_gateway import Sent
from modbridge.services.settings_service import SETTINGS_KEY

WEBHOOK = "https://discord.com/api/webhooks/123/tok"
PUBLIC_WEBHOOK = "https://discord.com/api/webhooks/456/pub"
QUEUE_WEBHOOK = "https://discord.com/api/webhooks/789/que"


def _bound(value: float | str) -> float:
    if value in ("-inf",):
        return -math.inf
    if value in ("+inf", "inf"):
        return math.inf
    return float(value)


class FakeRedis:
    """
    In-memory stand-in for FastRedisClient with a controllable clock for expiry.

    Keys in `unreadable` behave like reads against an unreachable server.
    """

    def __init__(self):
        self.now = 1_700_000_000.0
        self.store: dict[str, str] = {}
        self.expires: dict[str, float] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.unreadable: set[str] = set()

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def seed_settings(self, **values: str) -> None:
        self.hashes.setdefault(SETTINGS_KEY, {}).update(values)

    def _expire(self, key: str) -> None:
        if key in self.expires and self.expires[key] <= self.now:
            self.store.pop(key, None)
            self.expires.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self.store.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        if ttl_s:
            self.expires[key] = self.now + ttl_s
        else:
            self.expires.pop(key, None)
        return True

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool | None:
        self._expire(key)
        if key in self.store:
            return False
        return await self.set_with_ttl(key, value, ttl_s)

    async def delete(self, key: str) -> bool:
        self._expire(key)
        found = False
        for bucket in (self.store, self.hashes, self.zsets):
            if bucket.pop(key, None) is not None:
                found = True
        self.expires.pop(key, None)
        return found

    async def delete_if_equal(self, key: str, expected: str) -> bool:
        self._expire(key)
        if self.store.get(key) != expected:
            return False
        return await self.delete(key)

    async def exists(self, key: str) -> bool | None:
        if key in self.unreadable:
            return None
        self._expire(key)
        return key in self.store or key in self.hashes or key in self.zsets

    async def hash_set(self, key: str, mapping: dict[str, str]) -> bool:
        self.hashes.setdefault(key, {}).update(mapping)
        return True

    async def hash_get(self, key: str, field: str) -> str | None:
        return self.hashes.get(key, {}).get(field)

    async def hash_get_many(self, key: str, fields: list[str]) -> list[str | None]:
        record = self.hashes.get(key, {})
        return [record.get(field) for field in fields]

    async def hash_get_all(self, key: str) -> dict[str, str]:
        if key in self.unreadable:
            return {}
        return dict(self.hashes.get(key, {}))

    async def hash_delete(self, key: str, *fields: str) -> bool:
        record = self.hashes.get(key, {})
        removed = [record.pop(field) for field in fields if field in record]
        if key in self.hashes and not record:
            del self.hashes[key]
        return bool(removed)

    async def zset_add(self, key: str, member: str, score: float) -> bool:
        self.zsets.setdefault(key, {})[member] = float(score)
        return True

    async def zset_remove(self, key: str, *members: str) -> bool:
        zset = self.zsets.get(key, {})
        removed = [zset.pop(member) for member in members if member in zset]
        if key in self.zsets and not zset:
            del self.zsets[key]
        return bool(removed)

    def _ordered(self, key: str) -> list[tuple[str, float]]:
        return sorted(self.zsets.get(key, {}).items(), key=lambda item: (item[1], item[0]))

    async def zset_range(
        self, key: str, start: int = 0, end: int = -1, desc: bool = False
    ) -> list[str]:
        members = [member for member, _ in self._ordered(key)]
        if desc:
            members.reverse()
        stop = len(members) + end + 1 if end < 0 else end + 1
        return members[start:stop]

    async def zset_range_by_score(
        self,
        key: str,
        min_score: float | str,
        max_score: float | str,
        offset: int = 0,
        count: int | None = None,
    ) -> list[str]:
        low, high = _bound(min_score), _bound(max_score)
        members = [member for member, score in self._ordered(key) if low <= score <= high]
        if count is not None:
            return members[offset : offset + count]
        return members[offset:]

    async def zset_remove_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> int | None:
        doomed = await self.zset_range_by_score(key, min_score, max_score)
        if doomed:
            await self.zset_remove(key, *doomed)
        return len(doomed)

    async def zset_card(self, key: str) -> int | None:
        return len(self.zsets.get(key, {}))


class FakePlatform:
    """Scriptable source platform."""

    subreddit_name = "testsub"

    def __init__(self):
        self.items: dict[str, SourceItem] = {}
        self.mod_queue_ids: set[str] = set()
        self.spam_queue: list[SourceItem] = []
        self.modlog: dict[tuple[str, str], list] = {}
        self.moderators = ["ModAlice"]
        self.author_stats: dict = {}
        self.conversations: dict = {}
        self.get_item_calls: list[str] = []
        self.get_items_calls: list[list[str]] = []

    def add(self, item: SourceItem) -> SourceItem:
        self.items[item.id] = item
        return item

    async def get_item(self, content_id: str) -> SourceItem | None:
        self.get_item_calls.append(content_id)
        return self.items.get(content_id)

    async def get_items(self, content_ids: list[str]) -> list[SourceItem]:
        self.get_items_calls.append(list(content_ids))
        return [self.items[cid] for cid in content_ids if cid in self.items]

    async def get_mod_queue_ids(self) -> set[str]:
        return set(self.mod_queue_ids)

    async def get_spam_queue(self, limit: int) -> list[SourceItem]:
        return self.spam_queue[:limit]

    async def get_moderation_log(self, content_id: str, action_type: str, limit: int = 1):
        return self.modlog.get((content_id, action_type), [])[:limit]

    async def get_moderators(self) -> list[str]:
        return list(self.moderators)

    async def get_author_stats(self, author_name: str):
        return self.author_stats.get(author_name)

    async def get_conversation(self, conversation_id: str):
        return self.conversations.get(conversation_id)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def gateway():
    counter = itertools.count(1)

    async def _send(endpoint, payload):
        return Sent(f"msg-{next(counter)}")

    mock = AsyncMock()
    mock.send.side_effect = _send
    mock.edit.return_value = True
    mock.delete.return_value = True
    mock.fetch.return_value = None
    return mock


@pytest.fixture
def ctx(platform, gateway, fake_redis):
    return build_context(platform, gateway, fake_redis)


@pytest.fixture
def make_item():
    def _make(content_id: str = "t3_abc", **overrides) -> SourceItem:
        values = {
            "id": content_id,
            "title": "A post" if content_id.startswith("t3_") else None,
            "body": "Body text",
            "permalink": f"/r/testsub/comments/{content_id}/",
            "author_name": "someone",
            "subreddit_name": "testsub",
            "created_at": datetime(2023, 11, 14, tzinfo=UTC),
        }
        values.update(overrides)
        return SourceItem(**values)

    return _make
