import httpx
import pytest
import pytest_asyncio

from modbridge.services.notification_gateway import (
    SendFailed,
    Sent,
    WebhookNotificationGateway,
    parse_webhook_url,
)

WEBHOOK = "https://discord.com/api/webhooks/123/tok"
MESSAGE_URL = "https://discord.com/api/webhooks/123/tok/messages/999"


@pytest_asyncio.fixture
async def gateway():
    client = WebhookNotificationGateway(api_base="https://discord.com/api/webhooks", timeout=5)
    yield client
    await client.close()


def test_parse_webhook_url():
    assert parse_webhook_url(WEBHOOK) == ("123", "tok")
    assert parse_webhook_url(WEBHOOK + "?wait=true") == ("123", "tok")
    assert parse_webhook_url("nope") is None


@pytest.mark.asyncio
async def test_send_returns_message_id(gateway, httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{WEBHOOK}?wait=true", json={"id": "999"})

    result = await gateway.send(WEBHOOK, {"content": "hi"})

    assert result == Sent("999")


@pytest.mark.asyncio
async def test_send_non_success_is_send_failed(gateway, httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{WEBHOOK}?wait=true", status_code=429)

    result = await gateway.send(WEBHOOK, {"content": "hi"})

    assert isinstance(result, SendFailed)
    assert result.status_code == 429


@pytest.mark.asyncio
async def test_send_without_id_is_send_failed(gateway, httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{WEBHOOK}?wait=true", json={})

    assert isinstance(await gateway.send(WEBHOOK, {}), SendFailed)


@pytest.mark.asyncio
async def test_send_transport_error_is_caught(gateway, httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    result = await gateway.send(WEBHOOK, {})

    assert isinstance(result, SendFailed)
    assert "connection refused" in result.reason


@pytest.mark.asyncio
async def test_edit_patches_message(gateway, httpx_mock):
    httpx_mock.add_response(method="PATCH", url=MESSAGE_URL, json={"id": "999"})

    assert await gateway.edit(WEBHOOK, "999", {"embeds": []}) is True


@pytest.mark.asyncio
async def test_edit_failure_returns_false(gateway, httpx_mock):
    httpx_mock.add_response(method="PATCH", url=MESSAGE_URL, status_code=400)

    assert await gateway.edit(WEBHOOK, "999", {"embeds": []}) is False


@pytest.mark.asyncio
async def test_delete_treats_missing_message_as_deleted(gateway, httpx_mock):
    httpx_mock.add_response(method="DELETE", url=MESSAGE_URL, status_code=404)

    assert await gateway.delete(WEBHOOK, "999") is True


@pytest.mark.asyncio
async def test_delete_server_error_returns_false(gateway, httpx_mock):
    httpx_mock.add_response(method="DELETE", url=MESSAGE_URL, status_code=500)

    assert await gateway.delete(WEBHOOK, "999") is False


@pytest.mark.asyncio
async def test_fetch_returns_message_json(gateway, httpx_mock):
    httpx_mock.add_response(method="GET", url=MESSAGE_URL, json={"id": "999", "embeds": []})

    assert await gateway.fetch(WEBHOOK, "999") == {"id": "999", "embeds": []}


@pytest.mark.asyncio
async def test_invalid_endpoint_never_calls_out(gateway):
    assert await gateway.edit("not-a-webhook", "999", {}) is False
