"""
Source platform interface.

The bridge never talks to the source platform directly; it goes through an
adapter implementing SourcePlatform. The adapter is chosen at runtime through
the SOURCE_PLATFORM_FACTORY setting ("package.module:callable").
"""

import importlib
from typing import Protocol, runtime_checkable

from modbridge.config import settings
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import (
    AuthorStats,
    Conversation,
    ModLogEntry,
    SourceItem,
)

logger = get_logger(__name__)


class SourcePlatformError(Exception):
    """Raised by adapters when the source platform cannot answer a request."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


@runtime_checkable
class SourcePlatform(Protocol):
    """Read-side contract of the event-emitting platform."""

    @property
    def subreddit_name(self) -> str: ...

    async def get_item(self, content_id: str) -> SourceItem | None: ...

    async def get_items(self, content_ids: list[str]) -> list[SourceItem]: ...

    async def get_mod_queue_ids(self) -> set[str]: ...

    async def get_spam_queue(self, limit: int) -> list[SourceItem]: ...

    async def get_moderation_log(
        self, content_id: str, action_type: str, limit: int = 1
    ) -> list[ModLogEntry]: ...

    async def get_moderators(self) -> list[str]: ...

    async def get_author_stats(self, author_name: str) -> AuthorStats | None: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...


def load_source_platform(factory_path: str | None = None) -> SourcePlatform:
    """
    Build the configured platform adapter.

    Args:
        factory_path: "module:callable" override; defaults to settings.SOURCE_PLATFORM_FACTORY

    Raises:
        SourcePlatformError: If no adapter is configured or it cannot be loaded
    """
    path = factory_path or settings.SOURCE_PLATFORM_FACTORY
    if not path or ":" not in path:
        raise SourcePlatformError(
            "SOURCE_PLATFORM_FACTORY must be set to 'module:callable'", operation="load"
        )

    module_name, attr = path.split(":", 1)
    try:
        factory = getattr(importlib.import_module(module_name), attr)
        platform = factory()
    except (ImportError, AttributeError) as e:
        logger.error("Failed to load source platform adapter", factory=path, error=str(e))
        raise SourcePlatformError(f"Cannot load platform adapter {path}: {e}", "load") from e

    if not isinstance(platform, SourcePlatform):
        raise SourcePlatformError(f"{path} did not return a SourcePlatform", operation="load")

    logger.info("Source platform adapter loaded", factory=path)
    return platform
