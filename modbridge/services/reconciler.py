"""
State Reconciler - converges destination notifications with a content item's state.

Given a content item, the state it just entered and every link recorded for
it, decide per link whether to edit, delete or leave the notification, and
whether a visibility-gated notification needs to be (re)created.

Policy by channel class:
    evolving (NEW_POSTS, REMOVALS, REPORTS, FLAIR_WATCH, MOD_QUEUE, MOD_ACTIVITY)
        edit when the stored state differs from the effective state
    visibility-gated (PUBLIC_NEW_POSTS, PUBLIC_FLAIR_WATCH, MOD_QUEUE)
        delete on a hidden state, create through a registered creator on a
        visible state when no link exists
    MOD_LOG, MOD_MAIL
        never touched here
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import ContentDetail
from modbridge.models.domain.link_domain import LinkEntry
from modbridge.models.domain.states import (
    HIDDEN_STATES,
    QUEUE_RESOLVED_STATES,
    VISIBLE_STATES,
    ChannelClass,
    ItemState,
    RemovalAttribution,
)
from modbridge.services.attribution import classify_removal
from modbridge.services.linkage_store import LinkageStore, linkage_store
from modbridge.services.notification_gateway import NotificationGateway
from modbridge.services.payload_builder import PayloadBuilder, payload_builder
from modbridge.services.settings_service import SettingsService, settings_service
from modbridge.services.source_platform import SourcePlatform

logger = get_logger(__name__)

EVOLVING_CLASSES = frozenset(
    {
        ChannelClass.NEW_POSTS,
        ChannelClass.REMOVALS,
        ChannelClass.REPORTS,
        ChannelClass.FLAIR_WATCH,
        ChannelClass.MOD_QUEUE,
        ChannelClass.MOD_ACTIVITY,
    }
)

VISIBILITY_GATED_CLASSES = frozenset(
    {ChannelClass.PUBLIC_NEW_POSTS, ChannelClass.PUBLIC_FLAIR_WATCH, ChannelClass.MOD_QUEUE}
)

PUBLIC_LISTING_CLASSES = VISIBILITY_GATED_CLASSES - {ChannelClass.MOD_QUEUE}

REFRESHABLE_CLASSES = EVOLVING_CLASSES | PUBLIC_LISTING_CLASSES

UNMANAGED_CLASSES = frozenset({ChannelClass.MOD_LOG, ChannelClass.MOD_MAIL})

# Creator for a visibility-gated class: re-checks upstream state and existing
# links, sends and records. Returns True when a notification was created.
Creator = Callable[[ContentDetail, ItemState], Awaitable[bool]]


class ReconcilerError(Exception):
    """Raised for misuse of the reconciler API (not for destination failures)."""

    def __init__(self, message: str, channel_class: ChannelClass | None = None):
        super().__init__(message)
        self.channel_class = channel_class


@dataclass(slots=True)
class ReconciliationResult:
    source_id: str
    effective_state: ItemState
    edited: int = 0
    deleted: int = 0
    created: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.edited or self.deleted or self.created)


class StateReconciler:
    def __init__(
        self,
        gateway: NotificationGateway,
        store: LinkageStore | None = None,
        settings_source: SettingsService | None = None,
        builder: PayloadBuilder | None = None,
        platform: SourcePlatform | None = None,
    ):
        self.gateway = gateway
        self.store = store or linkage_store
        self.settings = settings_source or settings_service
        self.builder = builder or payload_builder
        self.platform = platform
        self._creators: dict[ChannelClass, Creator] = {}

    def register_creator(self, channel_class: ChannelClass, creator: Creator) -> None:
        if channel_class not in VISIBILITY_GATED_CLASSES:
            raise ReconcilerError(
                f"{channel_class.value} is not a visibility-gated class", channel_class
            )
        self._creators[channel_class] = creator

    async def effective_state(self, new_state: ItemState, detail: ContentDetail) -> ItemState:
        """
        Apply removal attribution to the requested state.

        A removal by an automated or administrative account becomes
        AWAITING_REVIEW. The classification is stored on the detail so
        renderers can pick the matching notice.
        """
        if new_state != ItemState.REMOVED:
            return new_state

        automated_users = await self.settings.automatic_removal_users()
        attribution = classify_removal(detail.removed_by, automated_users)
        detail.removal_attribution = attribution

        if attribution == RemovalAttribution.AUTOMATED:
            logger.info(
                "Removal attributed to automation, awaiting review",
                source_id=detail.id,
                removed_by=detail.removed_by,
            )
            return ItemState.AWAITING_REVIEW
        return new_state

    async def reconcile(
        self,
        source_id: str,
        new_state: ItemState,
        detail: ContentDetail,
        links: list[LinkEntry] | None = None,
        mod_queue_ids: set[str] | None = None,
    ) -> ReconciliationResult:
        """
        Bring every notification for source_id in line with new_state.

        Args:
            source_id: Content fullname
            new_state: State the content just entered, before attribution
            detail: Freshly resolved content detail used to re-render
            links: Links already loaded by the caller; loaded here when None
            mod_queue_ids: Snapshot of the moderation queue, fetched lazily when needed

        Returns:
            Counts of edits, deletions, creations and skips
        """
        effective = await self.effective_state(new_state, detail)
        result = ReconciliationResult(source_id=source_id, effective_state=effective)

        if links is None:
            links = await self.store.find_links(source_id)

        for link in links:
            channel_class = link.channel_class

            if channel_class in UNMANAGED_CLASSES:
                continue

            if channel_class == ChannelClass.MOD_QUEUE and effective in QUEUE_RESOLVED_STATES:
                mod_queue_ids = await self._queue_snapshot(mod_queue_ids)
                # Still queued for another reason, or unknown: keep it and update below
                if mod_queue_ids is not None and source_id not in mod_queue_ids:
                    await self._withdraw(link, result)
                    continue
            elif channel_class in PUBLIC_LISTING_CLASSES and effective in HIDDEN_STATES:
                await self._withdraw(link, result)
                continue

            if channel_class not in EVOLVING_CLASSES:
                result.skipped += 1
                continue

            if link.current_state == effective:
                result.skipped += 1
                continue

            if await self._edit(link, detail, effective):
                result.edited += 1

        if effective in VISIBLE_STATES:
            present = {link.channel_class for link in links}
            for channel_class, creator in self._creators.items():
                if channel_class in present:
                    continue
                if await creator(detail, effective):
                    result.created += 1

        logger.info(
            "Reconciled content state",
            source_id=source_id,
            requested_state=new_state.value,
            effective_state=effective.value,
            edited=result.edited,
            deleted=result.deleted,
            created=result.created,
            skipped=result.skipped,
        )
        return result

    async def refresh(
        self,
        links: list[LinkEntry],
        detail: ContentDetail,
        state: ItemState | None = None,
        channel_classes: frozenset[ChannelClass] | None = None,
    ) -> int:
        """
        Re-render notifications even when their state is unchanged.

        Used for content edits and report updates. With state set, evolving
        links are moved to that state; public listings always keep theirs.

        Returns:
            Number of notifications edited
        """
        allowed = (channel_classes or REFRESHABLE_CLASSES) & REFRESHABLE_CLASSES
        edited = 0
        for link in links:
            if link.channel_class not in allowed:
                continue
            target = link.current_state
            if state is not None and link.channel_class in EVOLVING_CLASSES:
                target = state
            if await self._edit(link, detail, target):
                edited += 1
        return edited

    async def _edit(self, link: LinkEntry, detail: ContentDetail, state: ItemState) -> bool:
        # Edits carry no message text, so the notice sent at creation stays
        payload = await self.builder.content_payload(detail, state)
        ok = await self.gateway.edit(link.destination_ref, link.destination_message_id, payload)
        if not ok:
            logger.warning(
                "Notification edit failed, stored state left unchanged",
                source_id=link.source_id,
                message_id=link.destination_message_id,
                channel_class=link.channel_class.value,
            )
            return False

        if link.current_state != state:
            await self.store.update_state(link.destination_message_id, state)
            link.current_state = state
        return True

    async def _withdraw(self, link: LinkEntry, result: ReconciliationResult) -> None:
        deleted = await self.gateway.delete(link.destination_ref, link.destination_message_id)
        if not deleted:
            logger.warning(
                "Failed to delete gated notification, keeping link",
                source_id=link.source_id,
                message_id=link.destination_message_id,
            )
            return
        await self.store.delete_link(link)
        result.deleted += 1

    async def _queue_snapshot(self, mod_queue_ids: set[str] | None) -> set[str] | None:
        if mod_queue_ids is not None or self.platform is None:
            return mod_queue_ids
        try:
            return await self.platform.get_mod_queue_ids()
        except Exception as e:
            logger.error("Failed to fetch moderation queue snapshot", error=str(e))
            return None
