"""
Moderator action tracker for unusual-activity warnings.

Each moderator has a sorted set of recent actions (member
"{epoch}:{action}:{target}", score = epoch) trimmed to the last hour, and a
cooldown key that suppresses repeated warnings.
"""

import time
from collections.abc import Iterable

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

ACTION_WINDOW_SECONDS = 3600
WARNING_COOLDOWN_SECONDS = 15 * 60


class ModActionTracker:
    def __init__(self, redis_client: FastRedisClient | None = None):
        self.redis = redis_client or fast_redis

    def _actions_key(self, moderator_name: str) -> str:
        return f"cache:mod_actions:{moderator_name}"

    def _cooldown_key(self, moderator_name: str) -> str:
        return f"cache:mod_warning_cooldown:{moderator_name}"

    async def track(
        self, moderator_name: str, action: str, target_id: str | None, now: float | None = None
    ) -> None:
        timestamp = int(now if now is not None else time.time())
        key = self._actions_key(moderator_name)
        await self.redis.zset_add(key, f"{timestamp}:{action}:{target_id or 'global'}", timestamp)
        await self.redis.zset_remove_by_score(key, "-inf", timestamp - ACTION_WINDOW_SECONDS)

    async def count_recent(
        self,
        moderator_name: str,
        timeframe_minutes: int,
        watched_actions: Iterable[str],
        now: float | None = None,
    ) -> int:
        """Watched actions by this moderator within the timeframe."""
        start = int(now if now is not None else time.time()) - timeframe_minutes * 60
        members = await self.redis.zset_range_by_score(
            self._actions_key(moderator_name), start, "+inf"
        )
        watched = set(watched_actions)
        count = 0
        for member in members:
            parts = member.split(":")
            if len(parts) > 1 and parts[1] in watched:
                count += 1
        return count

    async def is_on_cooldown(self, moderator_name: str) -> bool:
        return bool(await self.redis.exists(self._cooldown_key(moderator_name)))

    async def start_cooldown(self, moderator_name: str) -> None:
        await self.redis.set_with_ttl(
            self._cooldown_key(moderator_name), "true", WARNING_COOLDOWN_SECONDS
        )


mod_action_tracker = ModActionTracker()
