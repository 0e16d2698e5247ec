"""Redis cache-aside store for expensive enrichment lookups."""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "cache"


class EnrichmentCache:
    """
    TTL key/value cache. Absence always means "recompute".

    Values are JSON encoded. There is no eviction beyond Redis expiry, and reads
    may be stale within the TTL window.
    """

    def __init__(self, redis_client: FastRedisClient | None = None):
        self.redis = redis_client or fast_redis

    def _redis_key(self, key: str) -> str:
        return f"{CACHE_KEY_PREFIX}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._redis_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache value", key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None) -> bool:
        """Store a value; a ttl of None keeps it until explicitly deleted."""
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Value is not cacheable", key=key, error=str(e))
            return False
        return await self.redis.set_with_ttl(self._redis_key(key), encoded, ttl_seconds)

    async def delete(self, key: str) -> bool:
        return await self.redis.delete(self._redis_key(key))

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: int | None,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any | None:
        """Return the cached value, or compute, store and return it. None results are not cached."""
        cached = await self.get(key)
        if cached is not None:
            logger.debug("Enrichment cache hit", key=key)
            return cached

        value = await compute()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value


enrichment_cache = EnrichmentCache()
