"""
Wiring of the bridge services into a BridgeContext, and the runtime lifecycle
(Redis pool, platform adapter, webhook client) shared by the periodic jobs.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from modbridge.context import BridgeContext
from modbridge.handlers.registry import register_creators
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.services.content_resolver import ContentResolver
from modbridge.services.enrichment_cache import EnrichmentCache
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis
from modbridge.services.linkage_store import LinkageStore
from modbridge.services.mod_action_tracker import ModActionTracker
from modbridge.services.notification_gateway import (
    NotificationGateway,
    WebhookNotificationGateway,
)
from modbridge.services.payload_builder import PayloadBuilder
from modbridge.services.reconciler import StateReconciler
from modbridge.services.settings_service import SettingsService
from modbridge.services.source_platform import SourcePlatform, load_source_platform
from modbridge.services.task_queue import TaskQueue

logger = get_logger(__name__)


def build_context(
    platform: SourcePlatform,
    gateway: NotificationGateway,
    redis_client: FastRedisClient | None = None,
) -> BridgeContext:
    """Assemble every collaborator on one Redis client and register the gated creators."""
    redis_client = redis_client or fast_redis

    settings_source = SettingsService(redis_client)
    store = LinkageStore(redis_client)
    cache = EnrichmentCache(redis_client)
    builder = PayloadBuilder(settings_source)

    ctx = BridgeContext(
        platform=platform,
        gateway=gateway,
        store=store,
        settings=settings_source,
        cache=cache,
        resolver=ContentResolver(platform, cache),
        reconciler=StateReconciler(
            gateway,
            store=store,
            settings_source=settings_source,
            builder=builder,
            platform=platform,
        ),
        builder=builder,
        queue=TaskQueue(redis_client),
        tracker=ModActionTracker(redis_client),
    )
    register_creators(ctx)
    return ctx


@asynccontextmanager
async def open_bridge(platform: SourcePlatform | None = None) -> AsyncIterator[BridgeContext]:
    """
    Start the shared resources for one job run and tear them down afterwards.

    Raises:
        SourcePlatformError: If no platform is given and the configured adapter cannot load
        RuntimeError: If Redis cannot be reached
    """
    platform = platform or load_source_platform()
    gateway = WebhookNotificationGateway()
    started = []

    try:
        await fast_redis.initialize()
        started.append("redis")
        yield build_context(platform, gateway, fast_redis)
    finally:
        try:
            await gateway.close()
        except Exception as e:
            logger.error("Error closing webhook client", error=str(e))
        if "redis" in started:
            await fast_redis.close()
