from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from modbridge.models.domain.link_domain import LinkEntry
from modbridge.models.domain.states import ChannelClass, ItemState
from modbridge.services.infrastructure.redis_client import FastRedisClient
from modbridge.services.linkage_store import CHRONO_INDEX_KEY, LinkageStore

DAY = 86400


def _entry(source_id, message_id, channel_class=ChannelClass.NEW_POSTS, created=None):
    return LinkEntry.new(
        source_id=source_id,
        destination_message_id=message_id,
        channel_class=channel_class,
        current_state=ItemState.LIVE,
        destination_ref="https://discord.com/api/webhooks/123/tok",
        now=created,
    )


def _at(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, UTC)


@pytest.mark.asyncio
async def test_record_and_find_links(fake_redis):
    store = LinkageStore(fake_redis)
    await store.record_link(_entry("t3_a", "m1", created=_at(fake_redis.now - 10)))
    await store.record_link(
        _entry("t3_a", "m2", ChannelClass.REMOVALS, created=_at(fake_redis.now))
    )
    await store.record_link(_entry("t3_b", "m3"))

    links = await store.find_links("t3_a")

    assert [link.destination_message_id for link in links] == ["m1", "m2"]
    assert links[1].channel_class == ChannelClass.REMOVALS


@pytest.mark.asyncio
async def test_update_state_changes_only_state(fake_redis):
    store = LinkageStore(fake_redis)
    await store.record_link(_entry("t3_a", "m1"))

    await store.update_state("m1", ItemState.REMOVED)

    link = await store.get_link("m1")
    assert link.current_state == ItemState.REMOVED
    assert link.channel_class == ChannelClass.NEW_POSTS


@pytest.mark.asyncio
async def test_find_links_drops_dangling_references(fake_redis):
    store = LinkageStore(fake_redis)
    await store.record_link(_entry("t3_a", "m1"))
    await store.record_link(_entry("t3_a", "m2"))
    del fake_redis.hashes["link:m1"]

    links = await store.find_links("t3_a")

    assert [link.destination_message_id for link in links] == ["m2"]
    assert await store.linked_message_ids("t3_a") == ["m2"]


@pytest.mark.asyncio
async def test_find_links_keeps_reference_when_record_unreadable(fake_redis):
    store = LinkageStore(fake_redis)
    await store.record_link(_entry("t3_a", "m1"))
    fake_redis.unreadable.add("link:m1")

    assert await store.find_links("t3_a") == []
    assert await store.linked_message_ids("t3_a") == ["m1"]

    fake_redis.unreadable.clear()
    links = await store.find_links("t3_a")
    assert [link.destination_message_id for link in links] == ["m1"]


@pytest.mark.asyncio
async def test_find_links_survives_connection_error_on_read():
    redis_client = FastRedisClient()
    redis_client._initialized = True
    redis_client.client = AsyncMock()
    redis_client.client.zrange.return_value = ["M1"]
    redis_client.client.hgetall.side_effect = redis.ConnectionError("read timed out")
    redis_client.client.exists.side_effect = redis.ConnectionError("read timed out")
    store = LinkageStore(redis_client)

    assert await store.find_links("t3_x") == []
    redis_client.client.zrem.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_state_does_not_recreate_deleted_link(fake_redis):
    store = LinkageStore(fake_redis)
    entry = _entry("t3_a", "m1")
    await store.record_link(entry)
    await store.delete_link(entry)

    assert await store.update_state("m1", ItemState.REMOVED) is False
    assert "link:m1" not in fake_redis.hashes


@pytest.mark.asyncio
async def test_delete_link_cleans_every_index(fake_redis):
    store = LinkageStore(fake_redis)
    entry = _entry("t3_a", "m1")
    await store.record_link(entry)

    await store.delete_link(entry)

    assert await store.get_link("m1") is None
    assert "link_index:source:t3_a" not in fake_redis.zsets
    assert "m1" not in fake_redis.zsets.get(CHRONO_INDEX_KEY, {})


@pytest.mark.asyncio
async def test_delete_link_keeps_index_with_other_members(fake_redis):
    store = LinkageStore(fake_redis)
    first = _entry("t3_a", "m1")
    await store.record_link(first)
    await store.record_link(_entry("t3_a", "m2"))

    await store.delete_link(first)

    assert await store.linked_message_ids("t3_a") == ["m2"]


@pytest.mark.asyncio
async def test_find_expired_never_returns_younger_entries(fake_redis):
    store = LinkageStore(fake_redis)
    now = fake_redis.now
    await store.record_link(_entry("t3_old", "old", created=_at(now - 14 * DAY)))
    await store.record_link(_entry("t3_edge", "edge", created=_at(now - 13 * DAY)))
    await store.record_link(_entry("t3_new", "new", created=_at(now - 12 * DAY)))

    expired = await store.find_expired(13 * DAY, limit=10, now=now)

    assert expired == ["old", "edge"]


@pytest.mark.asyncio
async def test_find_expired_honours_limit_oldest_first(fake_redis):
    store = LinkageStore(fake_redis)
    now = fake_redis.now
    for offset in range(5):
        await store.record_link(
            _entry(f"t3_{offset}", f"m{offset}", created=_at(now - (20 + offset) * DAY))
        )

    assert await store.find_expired(13 * DAY, limit=2, now=now) == ["m4", "m3"]


@pytest.mark.asyncio
async def test_recent_links_newest_first(fake_redis):
    store = LinkageStore(fake_redis)
    now = fake_redis.now
    for offset in range(3):
        await store.record_link(_entry(f"t3_{offset}", f"m{offset}", created=_at(now - offset)))

    recent = await store.recent_links(2)

    assert [link.destination_message_id for link in recent] == ["m0", "m1"]


@pytest.mark.asyncio
async def test_active_conversation_tracking(fake_redis):
    store = LinkageStore(fake_redis)
    await store.track_active_conversation("abc")
    await store.track_active_conversation("def")
    await store.untrack_active_conversation("abc")

    assert await store.active_conversation_ids() == ["def"]
