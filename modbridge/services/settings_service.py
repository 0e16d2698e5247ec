"""
Settings Service - per-installation channel settings, read on demand.

Settings live in the Redis hash "settings:bridge" as strings. List settings
are JSON arrays, name lists are semicolon separated, booleans are
"true"/"false". Nothing here is cached: every task sees the current values.
A malformed value disables the feature it controls and is logged.
"""

import json
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modbridge.infrastructure.observability.logging import get_logger
from modbridge.models.domain.states import ChannelClass, RemovalAttribution
from modbridge.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

SETTINGS_KEY = "settings:bridge"

WEBHOOK_URL_PATTERN = re.compile(
    r"^https://(?:ptb\.|canary\.)?discord(?:app)?\.com/api/webhooks/\d+/[a-zA-Z0-9_-]+$"
)

WEBHOOK_SETTING_BY_CHANNEL = {
    ChannelClass.NEW_POSTS: "WEBHOOK_NEW_POSTS",
    ChannelClass.PUBLIC_NEW_POSTS: "WEBHOOK_PUBLIC_NEW_POSTS",
    ChannelClass.REMOVALS: "WEBHOOK_REMOVALS",
    ChannelClass.REPORTS: "WEBHOOK_REPORTS",
    ChannelClass.MOD_MAIL: "WEBHOOK_MODMAIL",
    ChannelClass.MOD_LOG: "WEBHOOK_MODLOG",
    ChannelClass.MOD_QUEUE: "WEBHOOK_MOD_QUEUE",
    ChannelClass.MOD_ACTIVITY: "MOD_ACTIVITY_WEBHOOK",
}

MOD_ABUSE_WEBHOOK_SETTING = "WEBHOOK_MOD_ABUSE"

DEFAULT_AUTOMATIC_REMOVAL_USERS = ["automoderator", "reddit"]

REMOVAL_NOTICE_SETTINGS = {
    RemovalAttribution.MODERATOR: "REMOVE_MESSAGE_MODERATOR",
    RemovalAttribution.AUTOMATED: "REMOVE_MESSAGE_AUTOMATIC",
    RemovalAttribution.UNKNOWN: "REMOVE_MESSAGE_ADMIN",
}


class FlairWatchRule(BaseModel):
    """One entry of the FLAIR_WATCH_CONFIG JSON array."""

    model_config = ConfigDict(populate_by_name=True)

    flair: str = Field(min_length=1)
    post: bool = False
    comment: bool = False
    webhook: str | None = None
    public_format: bool = Field(default=False, alias="publicFormat")


def validate_webhook_url(url: str | None) -> str | None:
    """Return an error message for an invalid webhook URL, None when acceptable or empty."""
    if not url:
        return None
    if not WEBHOOK_URL_PATTERN.match(url.strip()):
        return "Invalid Webhook URL. Must be a valid Discord webhook."
    return None


def split_name_list(value: str | None) -> list[str]:
    """Parse "Name1; Name2" into lowercase names."""
    if not value:
        return []
    return [name.strip().lower() for name in value.split(";") if name.strip()]


class SettingsService:
    """Typed accessors over the installation settings hash."""

    def __init__(self, redis_client: FastRedisClient | None = None):
        self.redis = redis_client or fast_redis

    async def get_raw(self, name: str) -> str | None:
        return await self.redis.hash_get(SETTINGS_KEY, name)

    async def get_text(self, name: str) -> str | None:
        value = await self.get_raw(name)
        return value if value else None

    async def get_bool(self, name: str, default: bool = False) -> bool:
        value = await self.get_raw(name)
        if value is None or value == "":
            return default
        return value.strip().lower() in ("true", "1", "yes", "on")

    async def get_int(self, name: str, default: int) -> int:
        value = await self.get_raw(name)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer setting, using default", setting=name, value=value)
            return default

    async def get_list(self, name: str, default: list[str] | None = None) -> list[str]:
        """JSON array setting; malformed JSON disables the feature (empty list)."""
        value = await self.get_raw(name)
        if value is None or value == "":
            return list(default or [])
        try:
            parsed = json.loads(value)
        except ValueError as e:
            logger.error("Failed to parse list setting", setting=name, error=str(e))
            return []
        if not isinstance(parsed, list):
            logger.error("List setting is not a JSON array", setting=name)
            return []
        return [str(item) for item in parsed]

    async def get_webhook(self, channel_class: ChannelClass) -> str | None:
        setting_name = WEBHOOK_SETTING_BY_CHANNEL.get(channel_class)
        if not setting_name:
            return None
        return await self._validated_webhook(setting_name)

    async def get_mod_abuse_webhook(self) -> str | None:
        return await self._validated_webhook(MOD_ABUSE_WEBHOOK_SETTING)

    async def _validated_webhook(self, setting_name: str) -> str | None:
        url = await self.get_text(setting_name)
        if not url:
            return None
        error = validate_webhook_url(url)
        if error:
            logger.error("Configured webhook rejected", setting=setting_name, error=error)
            return None
        return url.strip()

    async def automatic_removal_users(self) -> set[str]:
        """Accounts whose removals count as automated (selected list plus custom names)."""
        selected = await self.get_list(
            "AUTOMATIC_REMOVALS_USERS", default=DEFAULT_AUTOMATIC_REMOVAL_USERS
        )
        custom = split_name_list(await self.get_raw("AUTOMATIC_REMOVALS_USERS_CUSTOM"))
        return {name.lower() for name in selected} | set(custom)

    async def ignored_removal_authors(self) -> set[str]:
        return set(split_name_list(await self.get_raw("REMOVAL_IGNORE_AUTHOR")))

    async def ignored_conversation_authors(self) -> set[str]:
        return set(split_name_list(await self.get_raw("MODMAIL_AUTHOR_IGNORED")))

    async def removal_notice(self, attribution: RemovalAttribution) -> str | None:
        return await self.get_text(REMOVAL_NOTICE_SETTINGS[attribution])

    async def flair_watch_rules(self) -> list[FlairWatchRule]:
        """Parse FLAIR_WATCH_CONFIG; any syntax or shape error disables flair watching."""
        value = await self.get_raw("FLAIR_WATCH_CONFIG")
        if not value or not value.strip():
            return []

        try:
            parsed = json.loads(value)
        except ValueError as e:
            logger.error("Failed to parse flair watch config JSON", error=str(e))
            return []

        if not isinstance(parsed, list):
            logger.error("Flair watch config must be a JSON array")
            return []

        try:
            rules = [FlairWatchRule.model_validate(item) for item in parsed]
        except ValidationError as e:
            logger.error("Invalid flair watch config entry", error=str(e))
            return []

        valid_rules = []
        for index, rule in enumerate(rules, start=1):
            if rule.webhook and validate_webhook_url(rule.webhook):
                logger.warning("Flair watch entry has invalid webhook, skipping", entry=index)
                continue
            valid_rules.append(rule)
        return valid_rules


settings_service = SettingsService()
