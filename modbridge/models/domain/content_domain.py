"""
Source content models.

SourceItem, ModLogEntry, AuthorStats and Conversation are the shapes the source
platform adapter returns. ContentDetail is the resolver's normalized view used
to render notifications; it is rebuilt on every reconciliation pass.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from modbridge.models.domain.states import ContentKind, RemovalAttribution, content_kind_for


class SourceItem(BaseModel):
    """A post or comment as fetched from the source platform."""

    id: str
    title: str | None = None  # posts only
    body: str = ""
    url: str = ""
    permalink: str = ""
    author_name: str | None = None
    subreddit_name: str = ""
    created_at: datetime
    flair_text: str | None = None
    thumbnail_url: str | None = None
    preview_image_url: str | None = None
    crosspost_parent_id: str | None = None

    is_removed: bool = False
    is_spam: bool = False
    is_approved: bool = False
    removed_by_category: str | None = None
    num_reports: int = 0
    user_report_reasons: list[str] = Field(default_factory=list)
    mod_report_reasons: list[str] = Field(default_factory=list)

    nsfw: bool = False
    spoiler: bool = False
    locked: bool = False

    @property
    def kind(self) -> ContentKind | None:
        return content_kind_for(self.id)

    @property
    def is_post(self) -> bool:
        return self.kind == ContentKind.POST

    def is_deleted(self) -> bool:
        """Author deletion shows up differently for posts and comments."""
        if self.is_post:
            return self.removed_by_category == "deleted"
        return (self.author_name or "").lower() == "[deleted]"


class ModLogEntry(BaseModel):
    """A moderation log row matched against a content item."""

    id: str | None = None
    action: str
    moderator_name: str | None = None
    target_id: str | None = None
    description: str | None = None
    details: str | None = None
    created_at: datetime | None = None


class AuthorStats(BaseModel):
    """Per author and subreddit statistics used to enrich notifications."""

    author_name: str
    link_karma: int | None = None
    comment_karma: int | None = None
    flair_text: str | None = None
    account_created_at: datetime | None = None


class ContentDetail(BaseModel):
    """Normalized, enriched view of a source item."""

    id: str
    kind: ContentKind
    title: str
    body: str = ""
    url: str = ""
    permalink: str = ""
    author_name: str = "[Deleted]"
    subreddit_name: str = ""
    created_at: datetime
    flair_text: str | None = None
    thumbnail: str | None = None
    image_url: str | None = None
    content_warning: str | None = None  # "NSFW" or "Spoilers"

    # Enriched data
    removal_reason: str | None = None
    removed_by: str | None = None
    removal_attribution: RemovalAttribution | None = None
    report_reasons: list[str] | None = None
    report_count: int | None = None
    author_stats: AuthorStats | None = None

    is_removed: bool = False
    is_spam: bool = False
    is_approved: bool = False


class ModActionTarget(BaseModel):
    """What a moderation action was applied to, for rolling log notifications."""

    target_type: str = "unknown"  # content | user | subreddit | unknown
    target_name: str = "Unknown Target"
    target_url: str | None = None
    content: ContentDetail | None = None


class ConversationMessage(BaseModel):
    id: str
    author_name: str | None = None
    author_is_mod: bool = False
    participating_as: str | None = None
    body_markdown: str = ""
    date: datetime

    @property
    def from_moderator(self) -> bool:
        return self.participating_as == "moderator" or self.author_is_mod


class Conversation(BaseModel):
    """A private moderator conversation thread."""

    id: str
    subject: str | None = None
    state: str | None = None
    messages: list[ConversationMessage] = Field(default_factory=list)

    @property
    def is_archived(self) -> bool:
        return (self.state or "").lower() == "archived"

    def newest_first(self) -> list[ConversationMessage]:
        return sorted(self.messages, key=lambda message: message.date, reverse=True)
