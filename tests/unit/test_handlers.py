from datetime import UTC, datetime, timedelta

import pytest

from modbridge.handlers.audit import handle_mod_abuse, handle_mod_log
from modbridge.handlers.mod_mail import handle_mod_mail, next_conversation_state
from modbridge.handlers.moderation import (
    SPAM_FILTER_ACCOUNT,
    handle_deletion,
    handle_mod_queue,
    handle_removal,
    handle_report,
    handle_spam_removal,
    handle_state_sync,
    handle_update,
)
from modbridge.handlers.submissions import (
    handle_flair_watch,
    handle_mod_activity,
    handle_new_post,
    handle_public_post,
)
from modbridge.models.domain.content_domain import (
    AuthorStats,
    Conversation,
    ConversationMessage,
    ModLogEntry,
)
from modbridge.models.domain.states import ChannelClass, ItemState

from tests.conftest import PUBLIC_WEBHOOK, QUEUE_WEBHOOK, WEBHOOK

REMOVE_EVENT = {
    "id": "ModAction_1",
    "action": "removelink",
    "target_post": {"id": "t3_abc"},
    "moderator": {"name": "ModAlice"},
}


async def _states(ctx, source_id):
    return {link.channel_class: link.current_state for link in await ctx.store.find_links(source_id)}


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_new_post_then_moderator_removal(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_NEW_POSTS=WEBHOOK, WEBHOOK_REMOVALS=WEBHOOK)
    platform.add(make_item())

    await handle_new_post({"id": "t3_abc"}, ctx, None)
    assert await _states(ctx, "t3_abc") == {ChannelClass.NEW_POSTS: ItemState.LIVE}

    platform.add(make_item(is_removed=True))
    platform.modlog[("t3_abc", "removelink")] = [
        ModLogEntry(action="removelink", moderator_name="ModAlice", target_id="t3_abc")
    ]

    for _ in range(2):
        await handle_state_sync(REMOVE_EVENT, ctx, None)
        await handle_removal(REMOVE_EVENT, ctx, None)

    assert await _states(ctx, "t3_abc") == {
        ChannelClass.NEW_POSTS: ItemState.REMOVED,
        ChannelClass.REMOVALS: ItemState.REMOVED,
    }
    assert gateway.send.await_count == 2
    assert gateway.edit.await_count == 1


@pytest.mark.asyncio
async def test_new_post_sent_once(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_NEW_POSTS=WEBHOOK, NEW_POST_MESSAGE="New post!")
    item = platform.add(make_item())

    await handle_new_post({"id": "t3_abc"}, ctx, item)
    await handle_new_post({"id": "t3_abc"}, ctx, item)

    gateway.send.assert_awaited_once()
    assert gateway.send.call_args.args[1]["content"] == "New post!"
    assert platform.get_item_calls == []


@pytest.mark.asyncio
async def test_new_post_without_webhook_does_nothing(ctx, gateway, platform, make_item):
    platform.add(make_item())

    await handle_new_post({"id": "t3_abc"}, ctx, None)

    gateway.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_public_post_skips_removed_content(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_PUBLIC_NEW_POSTS=PUBLIC_WEBHOOK)
    platform.add(make_item("t3_ok"))
    platform.add(make_item("t3_gone", is_removed=True))

    await handle_public_post({"id": "t3_ok"}, ctx, None)
    await handle_public_post({"id": "t3_gone"}, ctx, None)

    assert await _states(ctx, "t3_ok") == {ChannelClass.PUBLIC_NEW_POSTS: ItemState.PUBLIC_POST}
    assert await _states(ctx, "t3_gone") == {}


@pytest.mark.asyncio
async def test_flair_watch_matches_post_flair(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(
        FLAIR_WATCH_CONFIG=f'[{{"flair": "Verified", "post": true, "webhook": "{WEBHOOK}"}}]'
    )
    platform.add(make_item(flair_text="Verified Seller"))
    platform.add(make_item("t3_other", flair_text="Question"))

    await handle_flair_watch({"id": "t3_abc"}, ctx, None)
    await handle_flair_watch({"id": "t3_abc"}, ctx, None)
    await handle_flair_watch({"id": "t3_other"}, ctx, None)

    gateway.send.assert_awaited_once()
    assert await _states(ctx, "t3_abc") == {ChannelClass.FLAIR_WATCH: ItemState.LIVE}


@pytest.mark.asyncio
async def test_mod_activity_only_for_moderators(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(MOD_ACTIVITY_WEBHOOK=WEBHOOK)
    platform.add(make_item("t1_mod", author_name="modalice"))
    platform.add(make_item("t1_user"))

    await handle_mod_activity({"id": "t1_mod"}, ctx, None)
    await handle_mod_activity({"id": "t1_user"}, ctx, None)

    gateway.send.assert_awaited_once()
    assert await _states(ctx, "t1_mod") == {ChannelClass.MOD_ACTIVITY: ItemState.LIVE}


# ---------------------------------------------------------------------------
# Moderation outcomes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_state_sync_ignores_untracked_hidden_content(ctx, gateway, platform, make_item):
    platform.add(make_item(is_removed=True))

    await handle_state_sync(REMOVE_EVENT, ctx, None)

    assert platform.get_item_calls == []
    gateway.edit.assert_not_awaited()


@pytest.mark.asyncio
async def test_automated_removal_uses_automatic_notice(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_REMOVALS=WEBHOOK, REMOVE_MESSAGE_AUTOMATIC="Filtered")
    platform.add(make_item(is_removed=True))
    platform.modlog[("t3_abc", "removelink")] = [
        ModLogEntry(action="removelink", moderator_name="AutoModerator", target_id="t3_abc")
    ]

    await handle_removal({**REMOVE_EVENT, "moderator": {"name": "AutoModerator"}}, ctx, None)

    assert gateway.send.call_args.args[1]["content"] == "Filtered"
    assert await _states(ctx, "t3_abc") == {ChannelClass.REMOVALS: ItemState.AWAITING_REVIEW}


@pytest.mark.asyncio
async def test_spam_removal_defaults_to_filter_account(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_REMOVALS=WEBHOOK, REMOVE_MESSAGE_SPAM="Spam filtered")
    platform.add(make_item(is_spam=True))

    await handle_spam_removal({"target_id": "t3_abc", "target_state": "SPAM"}, ctx, None)
    await handle_spam_removal({"target_id": "t3_abc", "target_state": "SPAM"}, ctx, None)

    gateway.send.assert_awaited_once()
    assert gateway.send.call_args.args[1]["content"] == "Spam filtered"
    assert await _states(ctx, "t3_abc") == {ChannelClass.REMOVALS: ItemState.SPAM}
    assert SPAM_FILTER_ACCOUNT == "Reddit Filter"


@pytest.mark.asyncio
async def test_spam_removal_respects_ignored_authors(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_REMOVALS=WEBHOOK, REMOVAL_IGNORE_AUTHOR="Someone")
    platform.add(make_item(is_spam=True))

    await handle_spam_removal({"target_id": "t3_abc"}, ctx, None)

    gateway.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_report_notification_created_once(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_REPORTS=WEBHOOK, REPORT_MESSAGE="Reported")
    platform.add(make_item(num_reports=2, user_report_reasons=["Spam"]))

    await handle_report({"id": "t3_abc"}, ctx, None)
    await handle_report({"id": "t3_abc"}, ctx, None)

    gateway.send.assert_awaited_once()
    assert gateway.edit.await_count == 1
    assert await _states(ctx, "t3_abc") == {ChannelClass.REPORTS: ItemState.UNHANDLED_REPORT}


@pytest.mark.asyncio
async def test_report_with_zero_count_does_nothing(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_REPORTS=WEBHOOK)
    platform.add(make_item())

    await handle_report({"id": "t3_abc"}, ctx, None)

    gateway.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_deletion_marks_notifications_deleted(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_NEW_POSTS=WEBHOOK)
    platform.add(make_item())
    await handle_new_post({"id": "t3_abc"}, ctx, None)

    platform.add(make_item(removed_by_category="deleted"))
    await handle_deletion({"type": "PostDelete", "post_id": "t3_abc"}, ctx, None)

    assert await _states(ctx, "t3_abc") == {ChannelClass.NEW_POSTS: ItemState.DELETED}


@pytest.mark.asyncio
async def test_update_refreshes_author_stats_and_rerenders(
    ctx, gateway, platform, fake_redis, make_item
):
    fake_redis.seed_settings(WEBHOOK_NEW_POSTS=WEBHOOK)
    platform.author_stats["someone"] = AuthorStats(author_name="someone", flair_text="Old")
    platform.add(make_item())
    await handle_new_post({"id": "t3_abc"}, ctx, None)

    platform.author_stats["someone"] = AuthorStats(author_name="someone", flair_text="New")
    await handle_update({"post": {"id": "t3_abc"}}, ctx, None)

    gateway.edit.assert_awaited_once()
    stats = await ctx.resolver.author_stats("someone", "testsub")
    assert stats.flair_text == "New"
    assert await _states(ctx, "t3_abc") == {ChannelClass.NEW_POSTS: ItemState.LIVE}


@pytest.mark.asyncio
async def test_mod_queue_listing_needs_snapshot(ctx, gateway, platform, fake_redis, make_item):
    fake_redis.seed_settings(WEBHOOK_MOD_QUEUE=QUEUE_WEBHOOK)
    platform.add(make_item(num_reports=1))

    await handle_mod_queue({"id": "t3_abc"}, ctx, None)
    gateway.send.assert_not_awaited()

    ctx.mod_queue_ids = {"t3_abc"}
    await handle_mod_queue({"id": "t3_abc"}, ctx, None)
    await handle_mod_queue({"id": "t3_abc"}, ctx, None)

    gateway.send.assert_awaited_once()
    assert await _states(ctx, "t3_abc") == {ChannelClass.MOD_QUEUE: ItemState.UNHANDLED_REPORT}


# ---------------------------------------------------------------------------
# Moderator oversight
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mod_log_sends_configured_actions(ctx, gateway, fake_redis):
    fake_redis.seed_settings(WEBHOOK_MODLOG=WEBHOOK, MODLOG_ACTIONS='["banuser"]')
    ban = {
        "id": "ModAction_9",
        "action": "banuser",
        "moderator": {"name": "ModAlice"},
        "target_user": {"id": "t2_x", "name": "troll"},
    }

    await handle_mod_log(ban, ctx, None)
    await handle_mod_log({**ban, "action": "approvelink"}, ctx, None)

    gateway.send.assert_awaited_once()
    embed = gateway.send.call_args.args[1]["embeds"][0]
    assert embed["title"] == "Mod Action: banuser"
    assert await _states(ctx, "ModAction_9") == {ChannelClass.MOD_LOG: ItemState.LIVE}


@pytest.mark.asyncio
async def test_mod_abuse_warns_once_per_cooldown(ctx, gateway, fake_redis):
    fake_redis.seed_settings(
        WEBHOOK_MOD_ABUSE=WEBHOOK,
        MOD_ABUSE_THRESHOLD="3",
        MOD_ABUSE_ACTIONS='["removelink"]',
    )

    for index in range(5):
        event = {
            "action": "removelink",
            "moderator": {"name": "ModAlice"},
            "target_post": {"id": f"t3_{index}"},
        }
        await handle_mod_abuse(event, ctx, None)

    gateway.send.assert_awaited_once()
    assert gateway.send.call_args.args[1]["embeds"][0]["title"] == "High Activity Detected"


@pytest.mark.asyncio
async def test_mod_abuse_ignores_platform_accounts(ctx, gateway, fake_redis):
    fake_redis.seed_settings(
        WEBHOOK_MOD_ABUSE=WEBHOOK, MOD_ABUSE_THRESHOLD="1", MOD_ABUSE_ACTIONS='["removelink"]'
    )

    await handle_mod_abuse({"action": "removelink", "moderator_name": "AutoModerator"}, ctx, None)

    gateway.send.assert_not_awaited()
    assert fake_redis.zsets == {}


# ---------------------------------------------------------------------------
# Private conversations
# ---------------------------------------------------------------------------

START = datetime(2024, 3, 1, 12, tzinfo=UTC)


def _message(message_id, minutes, moderator=False, author="member"):
    return ConversationMessage(
        id=message_id,
        author_name="ModAlice" if moderator else author,
        participating_as="moderator" if moderator else "participant_user",
        body_markdown=f"message {message_id}",
        date=START + timedelta(minutes=minutes),
    )


def test_conversation_state_machine():
    assert next_conversation_state(None, False) == (ItemState.NEW_MODMAIL, True)


@pytest.mark.asyncio
async def test_conversation_lifecycle(ctx, gateway, platform, fake_redis):
    fake_redis.seed_settings(WEBHOOK_MODMAIL=WEBHOOK)
    event = {"conversation_id": "ModmailConversation_abc"}
    conversation = Conversation(id="abc", subject="Appeal", messages=[_message("1", 0)])
    platform.conversations["abc"] = conversation

    await handle_mod_mail(event, ctx, None)
    assert await ctx.store.active_conversation_ids() == ["abc"]

    conversation.messages.append(_message("2", 5, moderator=True))
    await handle_mod_mail(event, ctx, None)
    # Same moderator reply seen again
    await handle_mod_mail(event, ctx, None)

    conversation.messages.append(_message("3", 10))
    await handle_mod_mail(event, ctx, None)

    links = await ctx.store.find_links("abc")
    assert [link.current_state for link in links] == [
        ItemState.ANSWERED_MODMAIL,
        ItemState.NEW_REPLY_MODMAIL,
    ]
    assert gateway.send.await_count == 2
    assert gateway.edit.await_count == 1


@pytest.mark.asyncio
async def test_conversation_opened_by_moderator_is_ignored(ctx, gateway, platform, fake_redis):
    fake_redis.seed_settings(WEBHOOK_MODMAIL=WEBHOOK)
    platform.conversations["abc"] = Conversation(id="abc", messages=[_message("1", 0, moderator=True)])

    await handle_mod_mail({"conversation_id": "abc"}, ctx, None)

    gateway.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_conversation_ignored_author(ctx, gateway, platform, fake_redis):
    fake_redis.seed_settings(WEBHOOK_MODMAIL=WEBHOOK, MODMAIL_AUTHOR_IGNORED="member")
    platform.conversations["abc"] = Conversation(id="abc", messages=[_message("1", 0)])

    await handle_mod_mail({"conversation_id": "abc"}, ctx, None)

    gateway.send.assert_not_awaited()
