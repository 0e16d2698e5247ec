# modbridge/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from modbridge.config import settings
from modbridge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

COMPARE_AND_DELETE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class FastRedisClient:
    """Pooled Redis client with logged, non-raising helpers for every store in the bridge"""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            redis_url = self.url or settings.REDIS_URL

            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info(
                "Fast Redis client initialized successfully",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        """Ensure Redis is initialized, fallback if not"""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    # ------------------------------------------------------------------
    # Plain keys
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get value - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:40], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set value with TTL - with fallback handling"""
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            return False

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool | None:
        """
        Conditionally set a key with expiry (SET NX EX).

        Returns:
            True if the key was written, False if it already existed,
            None if Redis could not be reached.
        """
        try:
            await self._ensure_initialized()
            result = await self.client.set(key, value, nx=True, ex=ttl_s)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET NX failed", key=key[:40], error=str(e))
            return None

    async def delete(self, key: str) -> bool:
        """Delete key - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:40], error=str(e))
            return False

    async def delete_if_equal(self, key: str, expected: str) -> bool:
        """Delete key only while it still holds the expected value."""
        try:
            await self._ensure_initialized()
            result = await self.client.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, expected)
            return bool(result)
        except Exception as e:
            logger.error("Redis compare-and-delete failed", key=key[:40], error=str(e))
            return False

    async def exists(self, key: str) -> bool | None:
        """
        Check if key exists.

        Returns:
            None if Redis could not be reached, so callers can tell a
            missing key from a failed read.
        """
        try:
            await self._ensure_initialized()
            result = await self.client.exists(key)
            return result > 0
        except Exception as e:
            logger.error("Redis EXISTS failed", key=key[:40], error=str(e))
            return None

    # ------------------------------------------------------------------
    # Hashes
    # ------------------------------------------------------------------

    async def hash_set(self, key: str, mapping: dict[str, str]) -> bool:
        """Write one or more hash fields."""
        try:
            await self._ensure_initialized()
            await self.client.hset(key, mapping=mapping)
            return True
        except Exception as e:
            logger.error("Redis HSET failed", key=key[:40], error=str(e))
            return False

    async def hash_get(self, key: str, field: str) -> str | None:
        """Read a single hash field."""
        try:
            await self._ensure_initialized()
            return await self.client.hget(key, field)
        except Exception as e:
            logger.error("Redis HGET failed", key=key[:40], field=field[:40], error=str(e))
            return None

    async def hash_get_many(self, key: str, fields: list[str]) -> list[str | None]:
        """Read several hash fields in one round trip."""
        if not fields:
            return []
        try:
            await self._ensure_initialized()
            return list(await self.client.hmget(key, fields))
        except Exception as e:
            logger.error("Redis HMGET failed", key=key[:40], fields=len(fields), error=str(e))
            return [None] * len(fields)

    async def hash_get_all(self, key: str) -> dict[str, str]:
        """Read a whole hash; empty dict when missing."""
        try:
            await self._ensure_initialized()
            result = await self.client.hgetall(key)
            return dict(result) if result else {}
        except Exception as e:
            logger.error("Redis HGETALL failed", key=key[:40], error=str(e))
            return {}

    async def hash_delete(self, key: str, *fields: str) -> bool:
        """Delete hash fields."""
        try:
            await self._ensure_initialized()
            removed = await self.client.hdel(key, *fields)
            return removed > 0
        except Exception as e:
            logger.error("Redis HDEL failed", key=key[:40], error=str(e))
            return False

    # ------------------------------------------------------------------
    # Sorted sets
    # ------------------------------------------------------------------

    async def zset_add(self, key: str, member: str, score: float) -> bool:
        """Add or re-score a sorted set member."""
        try:
            await self._ensure_initialized()
            await self.client.zadd(key, {member: score})
            return True
        except Exception as e:
            logger.error("Redis ZADD failed", key=key[:40], member=member[:40], error=str(e))
            return False

    async def zset_remove(self, key: str, *members: str) -> bool:
        """Remove sorted set members."""
        try:
            await self._ensure_initialized()
            removed = await self.client.zrem(key, *members)
            return removed > 0
        except Exception as e:
            logger.error("Redis ZREM failed", key=key[:40], error=str(e))
            return False

    async def zset_range(
        self, key: str, start: int = 0, end: int = -1, desc: bool = False
    ) -> list[str]:
        """Return members by rank, ascending by score unless desc is set."""
        try:
            await self._ensure_initialized()
            result = await self.client.zrange(key, start, end, desc=desc)
            return [str(item) for item in result] if result else []
        except Exception as e:
            logger.error("Redis ZRANGE failed", key=key[:40], error=str(e))
            return []

    async def zset_range_by_score(
        self,
        key: str,
        min_score: float | str,
        max_score: float | str,
        offset: int = 0,
        count: int | None = None,
    ) -> list[str]:
        """Return members whose score lies within [min_score, max_score]."""
        try:
            await self._ensure_initialized()
            if count is not None:
                result = await self.client.zrangebyscore(
                    key, min_score, max_score, start=offset, num=count
                )
            else:
                result = await self.client.zrangebyscore(key, min_score, max_score)
            return [str(item) for item in result] if result else []
        except Exception as e:
            logger.error("Redis ZRANGEBYSCORE failed", key=key[:40], error=str(e))
            return []

    async def zset_remove_by_score(
        self, key: str, min_score: float | str, max_score: float | str
    ) -> int | None:
        """Trim members whose score lies within [min_score, max_score]."""
        try:
            await self._ensure_initialized()
            return int(await self.client.zremrangebyscore(key, min_score, max_score))
        except Exception as e:
            logger.error("Redis ZREMRANGEBYSCORE failed", key=key[:40], error=str(e))
            return None

    async def zset_card(self, key: str) -> int | None:
        """Number of members in a sorted set."""
        try:
            await self._ensure_initialized()
            return int(await self.client.zcard(key))
        except Exception as e:
            logger.error("Redis ZCARD failed", key=key[:40], error=str(e))
            return None


# Global instance
fast_redis = FastRedisClient()
