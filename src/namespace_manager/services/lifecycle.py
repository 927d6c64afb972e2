"""
Credential lifecycle for namespaces.

This service implements the namespace state machine:
- claim: create a namespace, or renew an existing one idempotently
- rotate: swap the active and standby broker identities with a fresh password
- expire: delete namespaces past their lifetime along with both identities

Rotate and expire are batch jobs over the namespace store. Each due record is
processed independently with bounded concurrency, and a failure on one record
is reported in the batch result without aborting the rest.
"""

import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from namespace_manager.constants import LIST_NAMESPACES_MAX_LIMIT, PASSWORD_BYTES
from namespace_manager.errors import (
    BrokerAPIError,
    EntityAlreadyExistsError,
    StoreError,
    ValidationError,
)
from namespace_manager.models import (
    BatchResult,
    Contact,
    Namespace,
    NamespaceListResponse,
    RotationState,
    ensure_utc,
)
from namespace_manager.observability.metrics import (
    NAMESPACE_CLAIMS_TOTAL,
    NAMESPACE_EXPIRATIONS_TOTAL,
    NAMESPACE_ROTATIONS_TOTAL,
    record_failure,
)
from namespace_manager.observability.tracing import traced
from namespace_manager.settings import Settings
from namespace_manager.settings import settings as default_settings
from namespace_manager.stores import RecordStore
from namespace_manager.stores.base import Condition
from namespace_manager.utils.concurrency import run_bounded
from namespace_manager.utils.naming import render_permission, validate_namespace
from namespace_manager.utils.rabbit_admin import RabbitManagementClient

logger = logging.getLogger(__name__)


def generate_password() -> str:
    return secrets.token_urlsafe(PASSWORD_BYTES)


class NamespaceLifecycleManager:
    """
    Claims, rotates and expires namespaces.

    The namespace store's create-if-absent and conditional modify are the
    only concurrency control; no locks are taken here.
    """

    def __init__(
        self,
        namespaces: RecordStore[Namespace],
        broker: RabbitManagementClient,
        settings: Settings = default_settings,
    ):
        self.namespaces = namespaces
        self.broker = broker
        self.settings = settings

    async def _provision_identity(
        self, namespace: str, username: str, password: str | None
    ) -> None:
        """Create or update a broker identity with the namespace's permissions.

        A ``None`` password leaves the identity locked.
        """
        await self.broker.create_or_update_user(
            username, password, self.settings.tags
        )
        await self.broker.set_permissions(
            username,
            self.settings.virtual_host,
            configure=render_permission(
                self.settings.user_configure_permission, namespace
            ),
            write=render_permission(self.settings.user_write_permission, namespace),
            read=render_permission(self.settings.user_read_permission, namespace),
        )

    @traced("namespace.claim")
    async def claim(
        self,
        name: str,
        contact: Contact | None = None,
        expires: datetime | None = None,
        now: datetime | None = None,
    ) -> Namespace:
        """
        Create a namespace, or renew it if it already exists.

        Args:
            name: Namespace name
            contact: Where to send queue notifications, or None
            expires: When the namespace should be torn down; defaults to
                ``now + claim_lifetime``. Naive values are taken as UTC
            now: Current time, mainly for tests

        Returns:
            The stored namespace record, including the active password

        Raises:
            InvalidNamespaceError: If the name is invalid; nothing is touched
        """
        validate_namespace(name, self.settings.namespace_prefix)
        now = ensure_utc(now) if now else datetime.now(UTC)
        if expires is None:
            expires = now + self.settings.claim_lifetime
        else:
            expires = ensure_utc(expires)

        record = Namespace(
            namespace=name,
            password=generate_password(),
            created=now,
            expires=expires,
            rotation_state=RotationState.A,
            next_rotation=now + self.settings.rotation_interval,
            contact=contact,
        )
        try:
            created = await self.namespaces.create(record)
        except EntityAlreadyExistsError:
            return await self._reclaim(name, contact, expires)

        identities = created.identities(self.settings)
        try:
            await self._provision_identity(
                name, identities.active.username, created.password
            )
            await self._provision_identity(name, identities.standby.username, None)
        except Exception:
            # Leave no record behind whose identities were never provisioned
            logger.error(
                f"Provisioning broker identities for namespace {name} failed; "
                "removing the new record",
                extra={"namespace": name, "operation": "claim"},
            )
            await self.namespaces.remove(name)
            raise

        NAMESPACE_CLAIMS_TOTAL.labels(result="created").inc()
        logger.info(
            f"Created namespace {name}, expires {expires.isoformat()}",
            extra={"namespace": name, "operation": "claim"},
        )
        return created

    async def _reclaim(
        self, name: str, contact: Contact | None, expires: datetime
    ) -> Namespace:
        existing = await self.namespaces.load(name)
        if existing is None:
            raise StoreError(
                f"Namespace '{name}' disappeared while being claimed",
                user_action="Retry the claim",
            )

        if existing.expires == expires and existing.contact == contact:
            NAMESPACE_CLAIMS_TOTAL.labels(result="reclaimed").inc()
            logger.debug(f"Namespace {name} re-claimed without changes")
            return existing

        def _merge(entity: Namespace) -> None:
            entity.expires = expires
            entity.contact = contact

        updated = await self.namespaces.modify(name, _merge)
        NAMESPACE_CLAIMS_TOTAL.labels(result="updated").inc()
        logger.info(
            f"Updated namespace {name} on re-claim, expires {expires.isoformat()}",
            extra={"namespace": name, "operation": "claim"},
        )
        return updated

    async def _process_due(
        self,
        operation: str,
        condition: Condition,
        worker: Callable[[Namespace], Awaitable[None]],
    ) -> BatchResult:
        """Drain the scan for ``condition``, running ``worker`` on each page."""
        result = BatchResult()
        async for page in self.namespaces.pages(
            condition, self.settings.scan_page_size
        ):
            done, failures = await run_bounded(
                page,
                worker,
                self.settings.max_concurrency,
                key=lambda ns: ns.key,
            )
            result.count += len(done)
            for key, error in failures.items():
                logger.error(
                    f"Failed to {operation} namespace {key}: {error}",
                    exc_info=error,
                    extra={
                        "namespace": key,
                        "operation": operation,
                        "error_type": type(error).__name__,
                    },
                )
                record_failure(operation, error)
            result.failures.update(failures)
        return result

    @traced("namespace.rotate")
    async def rotate(self, now: datetime | None = None) -> BatchResult:
        """
        Rotate every namespace whose ``next_rotation`` has passed.

        The standby identity becomes active with a new password. The
        previously active identity keeps its password until its own next
        rotation, so connected clients have a grace period to reconnect.
        """
        now = ensure_utc(now) if now else datetime.now(UTC)
        next_rotation = now + self.settings.rotation_interval

        async def _rotate(ns: Namespace) -> None:
            password = generate_password()
            new_state = ns.rotation_state.other
            await self.broker.create_or_update_user(
                ns.username(new_state, self.settings), password, self.settings.tags
            )

            def _apply(entity: Namespace) -> None:
                # Another run already rotated this record
                if entity.rotation_state is not ns.rotation_state:
                    return
                entity.password = password
                entity.rotation_state = new_state
                entity.next_rotation = next_rotation

            stored = await self.namespaces.modify(ns.key, _apply)
            if stored.password != password:
                # Put back the password the winning run stored
                await self.broker.create_or_update_user(
                    ns.username(stored.rotation_state, self.settings),
                    stored.password,
                    self.settings.tags,
                )
                logger.warning(
                    f"Namespace {ns.namespace} was rotated concurrently; "
                    f"kept identity {stored.rotation_state}",
                    extra={"namespace": ns.namespace, "operation": "rotate"},
                )
                return
            NAMESPACE_ROTATIONS_TOTAL.inc()
            logger.info(
                f"Rotated namespace {ns.namespace} to identity {new_state}",
                extra={"namespace": ns.namespace, "operation": "rotate"},
            )

        result = await self._process_due(
            "rotate", lambda ns: ns.next_rotation < now, _rotate
        )
        logger.info(f"Rotated {result.count} namespaces")
        return result

    @traced("namespace.expire")
    async def expire(self, now: datetime | None = None) -> BatchResult:
        """
        Delete every namespace whose ``expires`` has passed.

        Both broker identities are removed before the record. Open
        connections are left for the monitor to terminate.
        """
        now = ensure_utc(now) if now else datetime.now(UTC)

        async def _expire(ns: Namespace) -> None:
            for slot in RotationState:
                username = ns.username(slot, self.settings)
                try:
                    await self.broker.delete_user(username)
                except BrokerAPIError as e:
                    if not e.is_not_found:
                        raise
                    logger.debug(f"Broker user {username} already gone")

            await self.namespaces.remove(ns.key)
            NAMESPACE_EXPIRATIONS_TOTAL.inc()
            logger.info(
                f"Expired namespace {ns.namespace}",
                extra={"namespace": ns.namespace, "operation": "expire"},
            )

        result = await self._process_due(
            "expire", lambda ns: ns.expires < now, _expire
        )
        logger.info(f"Expired {result.count} namespaces")
        return result

    async def get(self, name: str) -> Namespace | None:
        validate_namespace(name, self.settings.namespace_prefix)
        return await self.namespaces.load(name)

    async def list(
        self,
        limit: int = LIST_NAMESPACES_MAX_LIMIT,
        continuation: str | None = None,
    ) -> NamespaceListResponse:
        """
        Return one page of namespaces without their passwords.

        Raises:
            ValidationError: If ``limit`` is not positive
        """
        if limit < 1:
            raise ValidationError(
                f"limit must be positive, got {limit}",
                field="limit",
            )
        limit = min(limit, LIST_NAMESPACES_MAX_LIMIT)
        page = await self.namespaces.scan(None, limit, continuation)
        return NamespaceListResponse(
            namespaces=[ns.to_public(self.settings) for ns in page.entries],
            continuation_token=page.continuation,
        )
