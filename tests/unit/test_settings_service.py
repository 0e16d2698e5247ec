import json

import pytest

from modbridge.models.domain.states import ChannelClass, RemovalAttribution
from modbridge.services.settings_service import SettingsService, validate_webhook_url

WEBHOOK = "https://discord.com/api/webhooks/123/tok"


@pytest.fixture
def service(fake_redis):
    return SettingsService(fake_redis)


def test_validate_webhook_url():
    assert validate_webhook_url(WEBHOOK) is None
    assert validate_webhook_url("https://canary.discord.com/api/webhooks/1/a-b_c") is None
    assert validate_webhook_url("https://example.com/hook") is not None
    assert validate_webhook_url("") is None


@pytest.mark.asyncio
async def test_bool_and_int_defaults(service, fake_redis):
    fake_redis.seed_settings(FLAG="true", NUMBER="abc", OTHER="7")

    assert await service.get_bool("FLAG") is True
    assert await service.get_bool("MISSING", default=True) is True
    assert await service.get_int("NUMBER", 10) == 10
    assert await service.get_int("OTHER", 10) == 7


@pytest.mark.asyncio
async def test_malformed_list_disables_feature(service, fake_redis):
    fake_redis.seed_settings(MODLOG_ACTIONS="[not json", MOD_ABUSE_ACTIONS='["banuser"]')

    assert await service.get_list("MODLOG_ACTIONS") == []
    assert await service.get_list("MOD_ABUSE_ACTIONS") == ["banuser"]


@pytest.mark.asyncio
async def test_webhook_lookup_rejects_invalid_urls(service, fake_redis):
    fake_redis.seed_settings(WEBHOOK_REMOVALS=WEBHOOK, WEBHOOK_REPORTS="https://evil.example/x")

    assert await service.get_webhook(ChannelClass.REMOVALS) == WEBHOOK
    assert await service.get_webhook(ChannelClass.REPORTS) is None
    assert await service.get_webhook(ChannelClass.FLAIR_WATCH) is None


@pytest.mark.asyncio
async def test_automatic_removal_users_combines_lists(service, fake_redis):
    assert await service.automatic_removal_users() == {"automoderator", "reddit"}

    fake_redis.seed_settings(
        AUTOMATIC_REMOVALS_USERS='["AutoModerator"]',
        AUTOMATIC_REMOVALS_USERS_CUSTOM="CleanupBot; OtherBot ;",
    )
    assert await service.automatic_removal_users() == {"automoderator", "cleanupbot", "otherbot"}


@pytest.mark.asyncio
async def test_removal_notice_by_attribution(service, fake_redis):
    fake_redis.seed_settings(REMOVE_MESSAGE_AUTOMATIC="auto", REMOVE_MESSAGE_ADMIN="admin")

    assert await service.removal_notice(RemovalAttribution.AUTOMATED) == "auto"
    assert await service.removal_notice(RemovalAttribution.UNKNOWN) == "admin"
    assert await service.removal_notice(RemovalAttribution.MODERATOR) is None


@pytest.mark.asyncio
async def test_flair_watch_rules_parse(service, fake_redis):
    fake_redis.seed_settings(
        FLAIR_WATCH_CONFIG=json.dumps(
            [
                {"flair": "Verified", "post": True, "webhook": WEBHOOK, "publicFormat": True},
                {"flair": "Bad", "post": True, "webhook": "https://example.com"},
            ]
        )
    )

    rules = await service.flair_watch_rules()

    assert len(rules) == 1
    assert rules[0].flair == "Verified"
    assert rules[0].public_format is True
    assert rules[0].comment is False


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{oops", '{"flair": "x"}', '[{"post": true}]'])
async def test_invalid_flair_config_disables_watch(service, fake_redis, raw):
    fake_redis.seed_settings(FLAIR_WATCH_CONFIG=raw)

    assert await service.flair_watch_rules() == []
