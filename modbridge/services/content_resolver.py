"""
Content Resolver - fetches source items and builds enriched ContentDetail records.

Moderation-log matches and author statistics are the expensive parts; both go
through the enrichment cache so repeated processing of the same content within
one event burst does not repeat them.
"""

import re
from typing import Any

from modbridge.config import settings
from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.content_domain import (
    AuthorStats,
    ContentDetail,
    ModActionTarget,
    SourceItem,
)
from modbridge.models.domain.states import ContentKind, content_kind_for
from modbridge.services.enrichment_cache import EnrichmentCache
from modbridge.services.source_platform import SourcePlatform

logger = get_logger(__name__)

SOURCE_BASE_URL = "https://reddit.com"
IMAGE_URL_PATTERN = re.compile(r"\.(jpeg|jpg|gif|png|webp)$", re.IGNORECASE)


def modlog_cache_key(content_id: str) -> str:
    return f"content:{content_id}:modlog"


def author_stats_cache_key(subreddit_name: str, author_name: str) -> str:
    return f"author:{subreddit_name.lower()}:{author_name.lower()}"


def best_image_url(item: SourceItem) -> str | None:
    """Direct image link first, then the preview image, then an absolute thumbnail."""
    if item.url and IMAGE_URL_PATTERN.search(item.url):
        return item.url
    if item.preview_image_url:
        return item.preview_image_url.replace("&amp;", "&")
    if item.thumbnail_url and item.thumbnail_url.startswith("http"):
        return item.thumbnail_url
    return None


def content_warning_for(item: SourceItem) -> str | None:
    if item.nsfw:
        return "NSFW"
    if item.spoiler:
        return "Spoilers"
    return None


class ContentResolver:
    """Turns content ids and platform records into normalized detail records."""

    def __init__(
        self,
        platform: SourcePlatform,
        cache: EnrichmentCache,
        content_ttl_seconds: int | None = None,
        author_ttl_seconds: int | None = None,
    ):
        self.platform = platform
        self.cache = cache
        self.content_ttl_seconds = content_ttl_seconds or settings.CONTENT_CACHE_TTL_SECONDS
        self.author_ttl_seconds = (
            author_ttl_seconds
            if author_ttl_seconds is not None
            else settings.AUTHOR_STATS_CACHE_TTL_SECONDS
        )

    async def fetch(
        self, content_id: str | None, prefetched: SourceItem | None = None
    ) -> SourceItem | None:
        """
        Return the pre-fetched item when the worker has one, otherwise fetch it.

        Fetch failures are logged and reported as None; callers abort without
        side effects.
        """
        if prefetched is not None and prefetched.id == content_id:
            return prefetched

        if content_kind_for(content_id) is None:
            logger.debug("Not a content id, nothing to fetch", content_id=content_id)
            return None

        try:
            logger.info("No pre-fetched item, fetching individually", content_id=content_id)
            return await self.platform.get_item(content_id)
        except Exception as e:
            logger.error(
                "Failed to fetch content",
                content_id=content_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def gather_details(self, item: SourceItem) -> ContentDetail:
        """Build the normalized view of an item, including cached enrichment."""
        is_post = item.kind == ContentKind.POST
        author_name = item.author_name or "[Deleted]"

        detail = ContentDetail(
            id=item.id,
            kind=item.kind or ContentKind.COMMENT,
            title=item.title if is_post and item.title else f"Comment by {author_name}",
            body=item.body or "",
            url=item.url if is_post else "",
            permalink=f"{SOURCE_BASE_URL}{item.permalink}" if item.permalink else "",
            author_name=author_name,
            subreddit_name=item.subreddit_name,
            created_at=item.created_at,
            flair_text=item.flair_text if is_post else None,
            thumbnail=item.thumbnail_url if is_post else None,
            image_url=best_image_url(item) if is_post else None,
            content_warning=content_warning_for(item),
            is_removed=item.is_removed,
            is_spam=item.is_spam,
            is_approved=item.is_approved,
        )

        if item.user_report_reasons:
            detail.report_reasons = list(item.user_report_reasons)
        elif item.mod_report_reasons:
            detail.report_reasons = list(item.mod_report_reasons)

        if item.num_reports and item.num_reports > 0:
            detail.report_count = item.num_reports

        if item.is_removed or item.is_spam or (is_post and item.removed_by_category):
            removal = await self.removal_enrichment(item)
            detail.removal_reason = removal.get("removal_reason")
            detail.removed_by = removal.get("removed_by")

        if item.author_name and author_name.lower() != "[deleted]":
            detail.author_stats = await self.author_stats(author_name, item.subreddit_name)

        return detail

    async def removal_enrichment(self, item: SourceItem) -> dict[str, Any]:
        """Removal reason and removing account from the moderation log, cached per content id."""
        cached = await self.cache.get_or_compute(
            modlog_cache_key(item.id),
            self.content_ttl_seconds,
            lambda: self._lookup_removal(item),
        )
        return cached or {}

    async def _lookup_removal(self, item: SourceItem) -> dict[str, Any]:
        result: dict[str, Any] = {"removal_reason": None, "removed_by": None}

        try:
            entries = await self.platform.get_moderation_log(item.id, "addremovalreason", limit=1)
            match = next((entry for entry in entries if entry.target_id == item.id), None)
            if match:
                result["removal_reason"] = match.description or match.details or None
                logger.debug("Found removal reason in moderation log", content_id=item.id)
        except Exception as e:
            logger.error("Failed to fetch removal reason log", content_id=item.id, error=str(e))

        removal_action = "removelink" if item.is_post else "removecomment"
        try:
            entries = await self.platform.get_moderation_log(item.id, removal_action, limit=1)
            match = next((entry for entry in entries if entry.target_id == item.id), None)
            if match and match.moderator_name:
                result["removed_by"] = match.moderator_name
            if match and match.details and not result["removal_reason"]:
                result["removal_reason"] = match.details
        except Exception as e:
            logger.error("Failed to fetch removal log", content_id=item.id, error=str(e))

        return result

    async def author_stats(self, author_name: str, subreddit_name: str) -> AuthorStats | None:
        """Author statistics, cached per author and subreddit."""

        async def _lookup() -> dict[str, Any] | None:
            try:
                stats = await self.platform.get_author_stats(author_name)
            except Exception as e:
                logger.warning("Failed to fetch author stats", author=author_name, error=str(e))
                return None
            return stats.model_dump(mode="json") if stats else None

        cached = await self.cache.get_or_compute(
            author_stats_cache_key(subreddit_name, author_name), self.author_ttl_seconds, _lookup
        )
        return AuthorStats.model_validate(cached) if cached else None

    async def refresh_author_stats(self, author_name: str, subreddit_name: str) -> None:
        await self.cache.delete(author_stats_cache_key(subreddit_name, author_name))

    async def gather_mod_action_target(self, event: dict[str, Any]) -> ModActionTarget:
        """Describe the target of a moderation action: content, user or the subreddit."""
        target = ModActionTarget()
        subreddit_name = (event.get("subreddit") or {}).get("name") or self.platform.subreddit_name

        target_id = (event.get("target_post") or {}).get("id") or (
            event.get("target_comment") or {}
        ).get("id")
        if target_id:
            target.target_type = "content"
            target.target_name = (event.get("target_post") or {}).get(
                "title"
            ) or f"Comment in {subreddit_name}"

            item = await self.fetch(target_id)
            if item:
                target.content = await self.gather_details(item)
                target.target_name = target.content.title
                target.target_url = target.content.permalink
            else:
                permalink = (event.get("target_post") or {}).get("permalink")
                target.target_url = f"{SOURCE_BASE_URL}{permalink}" if permalink else None
            return target

        target_user = event.get("target_user") or {}
        if target_user.get("id"):
            target.target_type = "user"
            target.target_name = f"u/{target_user.get('name')}"
            target.target_url = f"https://www.reddit.com/user/{target_user.get('name')}"
            return target

        target.target_type = "subreddit"
        target.target_name = f"r/{subreddit_name or 'Subreddit'}"
        target.target_url = f"https://www.reddit.com/r/{subreddit_name}"
        return target
