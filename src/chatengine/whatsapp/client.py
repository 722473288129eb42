"""Outbound messaging through the WhatsApp Cloud (Graph) API."""

import logging
from collections import deque
from typing import Any

import httpx

from chatengine.whatsapp.messages import OutboundMessage, read_receipt_payload

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v20.0"
DEFAULT_TIMEOUT = 15.0  # seconds
DEFAULT_HISTORY = 100


class WhatsAppClientError(Exception):
    """Exception raised when a Graph API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class WhatsAppClient:
    """Async client for ``POST /{version}/{phone_number_id}/messages``."""

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
        api_url: str = DEFAULT_API_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the WhatsApp client.

        Args:
            phone_number_id: Business phone number id messages are sent from.
            access_token: Graph API bearer token.
            http_client: Optional shared HTTP client. If not provided,
                a new client is created and closed with ``close``.
            api_url: Graph API base URL.
            api_version: Graph API version segment.
            timeout: Request timeout in seconds.
        """
        self._url = f"{api_url.rstrip('/')}/{api_version}/{phone_number_id}/messages"
        self._access_token = access_token
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._timeout = timeout

    @property
    def messages_url(self) -> str:
        """Get the endpoint messages are posted to."""
        return self._url

    async def send(self, to: str, message: OutboundMessage) -> None:
        """Send one message.

        Raises:
            WhatsAppClientError: If the request fails or is rejected.
        """
        await self._post(message.to_payload(to))
        logger.debug("Sent %s message to %s", message.kind, to)

    async def mark_read(self, message_id: str) -> None:
        """Send a read receipt for an inbound message.

        Raises:
            WhatsAppClientError: If the request fails or is rejected.
        """
        await self._post(read_receipt_payload(message_id))

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._http_client.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as e:
            logger.error("WhatsApp request timed out: %s", e)
            raise WhatsAppClientError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error("WhatsApp request failed: %s", e)
            raise WhatsAppClientError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "WhatsApp API returned error: status=%d, body=%s",
                response.status_code,
                response.text[:200],
            )
            raise WhatsAppClientError(
                f"Graph API returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json() if response.content else {}


class LoggingMessenger:
    """Messenger that logs outbound messages instead of sending them.

    Used when no access token is configured. The most recent messages are
    kept in ``sent`` and ``read`` for inspection.

    Args:
        history: How many sent messages and read receipts to keep.
    """

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        self.sent: deque[tuple[str, OutboundMessage]] = deque(maxlen=history)
        self.read: deque[str] = deque(maxlen=history)

    async def send(self, to: str, message: OutboundMessage) -> None:
        self.sent.append((to, message))
        logger.info("Outbound %s message to %s", message.kind, to)

    async def mark_read(self, message_id: str) -> None:
        self.read.append(message_id)

    async def close(self) -> None:
        pass
