"""
RabbitMQ management API client.

This module provides a thin async interface to the RabbitMQ management HTTP
API for the operations the namespace manager needs: users, permissions,
queues, exchanges and connections. It holds no namespace logic of its own.

The client handles:
- Basic authentication with the management credentials
- Path segment encoding (vhost "/" must travel as "%2F")
- Mapping of HTTP failures onto BrokerAPIError with the status code
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import BrokerAPIError
from ..models.broker import ConnectionInfo, ExchangeInfo, QueueInfo

logger = logging.getLogger(__name__)


def _encode(segment: str) -> str:
    return quote(segment, safe="")


class RabbitManagementClient:
    """
    High-level client for RabbitMQ management API operations.

    Use as an async context manager, or call ``close()`` when done.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the management client.

        Args:
            base_url: Base URL of the management API, usually ``<dashboard>/api/``
            username: Management username
            password: Management password
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.username = username
        self.password = password
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized RabbitMQ management client for {self.base_url}")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.username, self.password),
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RabbitManagementClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Make an authenticated request to the management API.

        Raises:
            BrokerAPIError: On non-2xx responses or transport failures
        """
        client = self._get_client()
        try:
            response = await client.request(
                method, endpoint, json=json, params=params, headers=headers
            )
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            response_body = e.response.text or "<no content>"
            # 404s are routine when deleting things that are already gone
            log = logger.debug if status_code == 404 else logger.error
            log(
                f"Request failed: {method} {endpoint} - HTTP {status_code}",
                extra={"http_status": status_code},
            )
            raise BrokerAPIError(
                f"{method} {endpoint} failed",
                status_code=status_code,
                response_body=response_body,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Request failed: {method} {endpoint} - {e}")
            raise BrokerAPIError(f"{method} {endpoint} failed: {e}") from e

    # User management

    async def create_or_update_user(
        self, name: str, password: str | None, tags: list[str]
    ) -> None:
        """
        Create a user, or overwrite an existing user's credential and tags.

        Args:
            name: Username
            password: Plaintext password, or None for a user that cannot log in
            tags: RabbitMQ user tags
        """
        body: dict[str, Any] = {"tags": ",".join(tags)}
        if password is None:
            # An empty hash disables password logins for the user
            body["password_hash"] = ""
        else:
            body["password"] = password

        await self._make_request("PUT", f"users/{_encode(name)}", json=body)
        logger.debug(f"Set credentials for user '{name}' (locked={password is None})")

    async def delete_user(self, name: str) -> None:
        await self._make_request("DELETE", f"users/{_encode(name)}")
        logger.debug(f"Deleted user '{name}'")

    async def set_permissions(
        self, name: str, vhost: str, configure: str, write: str, read: str
    ) -> None:
        """Set a user's configure/write/read patterns on a virtual host."""
        await self._make_request(
            "PUT",
            f"permissions/{_encode(vhost)}/{_encode(name)}",
            json={"configure": configure, "write": write, "read": read},
        )

    # Queues and exchanges

    async def list_queues(self, vhost: str) -> list[QueueInfo]:
        response = await self._make_request(
            "GET",
            f"queues/{_encode(vhost)}",
            params={"columns": "name,vhost,messages"},
        )
        return [QueueInfo.model_validate(item) for item in response.json()]

    async def delete_queue(self, name: str, vhost: str) -> None:
        await self._make_request("DELETE", f"queues/{_encode(vhost)}/{_encode(name)}")
        logger.debug(f"Deleted queue '{name}'")

    async def list_exchanges(self, vhost: str) -> list[ExchangeInfo]:
        response = await self._make_request(
            "GET", f"exchanges/{_encode(vhost)}", params={"columns": "name,vhost"}
        )
        return [ExchangeInfo.model_validate(item) for item in response.json()]

    async def delete_exchange(self, name: str, vhost: str) -> None:
        await self._make_request(
            "DELETE", f"exchanges/{_encode(vhost)}/{_encode(name)}"
        )
        logger.debug(f"Deleted exchange '{name}'")

    # Connections

    async def list_connections(self, vhost: str) -> list[ConnectionInfo]:
        response = await self._make_request(
            "GET", f"vhosts/{_encode(vhost)}/connections"
        )
        return [ConnectionInfo.model_validate(item) for item in response.json()]

    async def terminate_connection(self, name: str, reason: str) -> None:
        await self._make_request(
            "DELETE", f"connections/{_encode(name)}", headers={"X-Reason": reason}
        )
        logger.debug(f"Terminated connection '{name}': {reason}")
