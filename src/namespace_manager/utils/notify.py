"""
Tenant notification delivery.

The monitor only needs ``send(channel, address, subject, body)``. Delivery is
fire-and-forget from the monitor's point of view: errors surface as
NotificationError and are never retried.
"""

import logging
from typing import Any, Protocol

import httpx

from ..errors import NotificationError
from ..models.namespace import ContactMethod

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(
        self, channel: ContactMethod, address: str, subject: str, body: str
    ) -> None: ...


class NotifyServiceClient:
    """
    Client for an HTTP notification service.

    Each contact method maps onto one endpoint:
    - email: ``POST email`` with address, subject and content
    - chat: ``POST matrix`` with the room id and a rendered body
    - routed-message: ``POST pulse`` with a routing key and the message
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "NotifyServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _request_for(
        channel: ContactMethod, address: str, subject: str, body: str
    ) -> tuple[str, dict[str, Any]]:
        match channel:
            case ContactMethod.EMAIL:
                return "email", {
                    "address": address,
                    "subject": subject,
                    "content": body,
                }
            case ContactMethod.CHAT:
                return "matrix", {"roomId": address, "body": f"{subject}\n\n{body}"}
            case ContactMethod.ROUTED_MESSAGE:
                return "pulse", {
                    "routingKey": address,
                    "message": {"subject": subject, "content": body},
                }
        raise NotificationError(f"Unsupported contact method '{channel}'")

    async def send(
        self, channel: ContactMethod, address: str, subject: str, body: str
    ) -> None:
        """
        Deliver one notification.

        Raises:
            NotificationError: If the service rejects or cannot be reached
        """
        endpoint, payload = self._request_for(channel, address, subject, body)
        try:
            response = await self._client.post(endpoint, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Failed to send {channel} notification",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Failed to send {channel} notification: {e}"
            ) from e

        logger.info(f"Sent {channel} notification to {address}: {subject}")


class NullNotifier:
    """Notifier used when no notification service is configured."""

    async def send(
        self, channel: ContactMethod, address: str, subject: str, body: str
    ) -> None:
        logger.info(
            f"Notification service not configured; dropping {channel} "
            f"notification to {address}: {subject}"
        )

    async def close(self) -> None:
        return None
