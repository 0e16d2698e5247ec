"""
Notification Gateway - thin client for webhook-style destination messages.

Every failure is caught here and turned into a log line plus a result value;
nothing in this module raises to its callers. Callers must not record a link
for a SendFailed result.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from modbridge.config import settings
from modbridge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Sent:
    message_id: str


@dataclass(frozen=True, slots=True)
class SendFailed:
    reason: str
    status_code: int | None = None


SendResult = Sent | SendFailed


class NotificationGateway(Protocol):
    async def send(self, endpoint: str, payload: dict[str, Any]) -> SendResult: ...

    async def edit(self, endpoint: str, message_id: str, payload: dict[str, Any]) -> bool: ...

    async def delete(self, endpoint: str, message_id: str) -> bool: ...

    async def fetch(self, endpoint: str, message_id: str) -> dict[str, Any] | None: ...


def parse_webhook_url(webhook_url: str) -> tuple[str, str] | None:
    """Split ".../webhooks/{id}/{token}" into (id, token)."""
    parts = [part for part in webhook_url.split("?")[0].split("/") if part]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]


class WebhookNotificationGateway:
    """
    Webhook client for the destination messaging platform.

    send creates a message and returns its id, edit/delete/fetch address an
    existing message through the same webhook credentials.
    """

    def __init__(self, api_base: str | None = None, timeout: float | None = None):
        self.api_base = (api_base or settings.WEBHOOK_API_BASE).rstrip("/")
        self._client = self._create_client(timeout or settings.WEBHOOK_REQUEST_TIMEOUT)

    def _create_client(self, timeout: float) -> httpx.AsyncClient:
        """Create async HTTP client for webhook calls."""
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=httpx.Timeout(timeout), limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _message_url(self, endpoint: str, message_id: str) -> str | None:
        details = parse_webhook_url(endpoint)
        if not details:
            logger.error("Invalid webhook URL", endpoint_preview=endpoint[:40])
            return None
        webhook_id, webhook_token = details
        return f"{self.api_base}/{webhook_id}/{webhook_token}/messages/{message_id}"

    async def send(self, endpoint: str, payload: dict[str, Any]) -> SendResult:
        try:
            response = await self._client.post(
                endpoint,
                params={"wait": "true"},
                json=payload,
                headers={"Content-Type": "application/json"},
            )

            if not response.is_success:
                logger.error(
                    "Webhook send failed",
                    status_code=response.status_code,
                    response_text=response.text[:200] if response.text else "",
                )
                return SendFailed(
                    f"Destination API error: {response.status_code}", response.status_code
                )

            message_id = response.json().get("id")
            if not message_id:
                logger.error("Webhook send returned no message id")
                return SendFailed("Missing message id in response", response.status_code)

            logger.info("Webhook message sent", message_id=message_id)
            return Sent(str(message_id))

        except (httpx.HTTPError, ValueError) as e:
            logger.error("Exception during webhook send", error=str(e), error_type=type(e).__name__)
            return SendFailed(str(e))

    async def edit(self, endpoint: str, message_id: str, payload: dict[str, Any]) -> bool:
        url = self._message_url(endpoint, message_id)
        if not url:
            return False

        try:
            response = await self._client.patch(url, json=payload)
            if not response.is_success:
                logger.error(
                    "Webhook edit failed",
                    message_id=message_id,
                    status_code=response.status_code,
                    response_text=response.text[:200] if response.text else "",
                )
                return False

            logger.info("Webhook message updated", message_id=message_id)
            return True

        except httpx.HTTPError as e:
            logger.error("Exception during webhook edit", message_id=message_id, error=str(e))
            return False

    async def delete(self, endpoint: str, message_id: str) -> bool:
        """Delete a message; a message that is already gone counts as deleted."""
        url = self._message_url(endpoint, message_id)
        if not url:
            return False

        try:
            response = await self._client.delete(url)
            if response.is_success or response.status_code == 404:
                logger.info("Webhook message deleted", message_id=message_id)
                return True

            logger.error(
                "Webhook delete failed",
                message_id=message_id,
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            return False

        except httpx.HTTPError as e:
            logger.error("Exception during webhook delete", message_id=message_id, error=str(e))
            return False

    async def fetch(self, endpoint: str, message_id: str) -> dict[str, Any] | None:
        url = self._message_url(endpoint, message_id)
        if not url:
            return None

        try:
            response = await self._client.get(url)
            if not response.is_success:
                logger.warning(
                    "Webhook fetch failed", message_id=message_id, status_code=response.status_code
                )
                return None
            return response.json()

        except (httpx.HTTPError, ValueError) as e:
            logger.error("Exception during webhook fetch", message_id=message_id, error=str(e))
            return None
