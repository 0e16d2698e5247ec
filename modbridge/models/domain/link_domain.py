"""
Link entries: one record per notification ever sent for a piece of source content.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ValidationError

from modbridge.models.domain.states import ChannelClass, ItemState


class LinkEntry(BaseModel):
    """Ties a source content item to one destination message and its last reconciled state."""

    source_id: str
    destination_message_id: str
    channel_class: ChannelClass
    current_state: ItemState
    destination_ref: str  # webhook endpoint the message was posted through
    created_at: datetime
    created_at_epoch: int

    @classmethod
    def new(
        cls,
        source_id: str,
        destination_message_id: str,
        channel_class: ChannelClass,
        current_state: ItemState,
        destination_ref: str,
        now: datetime | None = None,
    ) -> "LinkEntry":
        """Build an entry stamped with the current time."""
        created = now or datetime.now(UTC)
        return cls(
            source_id=source_id,
            destination_message_id=destination_message_id,
            channel_class=channel_class,
            current_state=current_state,
            destination_ref=destination_ref,
            created_at=created,
            created_at_epoch=int(created.timestamp()),
        )

    def to_redis_hash(self) -> dict[str, str]:
        return {
            "source_id": self.source_id,
            "destination_message_id": self.destination_message_id,
            "channel_class": self.channel_class.value,
            "current_state": self.current_state.value,
            "destination_ref": self.destination_ref,
            "created_at": self.created_at.isoformat(),
            "created_at_epoch": str(self.created_at_epoch),
        }

    @classmethod
    def from_redis_hash(cls, record: dict[str, str]) -> "LinkEntry | None":
        """Rebuild an entry from its hash; None when the record is empty or unreadable."""
        if not record:
            return None
        try:
            return cls(
                source_id=record["source_id"],
                destination_message_id=record["destination_message_id"],
                channel_class=record["channel_class"],
                current_state=record["current_state"],
                destination_ref=record.get("destination_ref", ""),
                created_at=record["created_at"],
                created_at_epoch=int(record.get("created_at_epoch") or 0),
            )
        except (KeyError, ValueError, ValidationError):
            return None
