"""
Collaborators shared by every handler during one worker invocation.
"""

from dataclasses import dataclass

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.services.content_resolver import ContentResolver
from modbridge.services.enrichment_cache import EnrichmentCache
from modbridge.services.linkage_store import LinkageStore
from modbridge.services.mod_action_tracker import ModActionTracker
from modbridge.services.notification_gateway import NotificationGateway
from modbridge.services.payload_builder import PayloadBuilder
from modbridge.services.reconciler import StateReconciler
from modbridge.services.settings_service import SettingsService
from modbridge.services.source_platform import SourcePlatform
from modbridge.services.task_queue import TaskQueue

logger = get_logger(__name__)


@dataclass(slots=True)
class BridgeContext:
    platform: SourcePlatform
    gateway: NotificationGateway
    store: LinkageStore
    settings: SettingsService
    cache: EnrichmentCache
    resolver: ContentResolver
    reconciler: StateReconciler
    builder: PayloadBuilder
    queue: TaskQueue
    tracker: ModActionTracker

    # Moderation queue snapshot for the current batch, when one was fetched
    mod_queue_ids: set[str] | None = None

    async def moderators(self) -> list[str]:
        """Moderator names, empty when the platform cannot answer."""
        try:
            return await self.platform.get_moderators()
        except Exception as e:
            logger.error("Failed to fetch moderators", error=str(e))
            return []
