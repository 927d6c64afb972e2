"""
Reconciliation sweep between the broker and the namespace registry.

One sweep runs four passes against the full set of live namespaces:

1. Connections: terminate tenant connections whose namespace is gone or that
   have been open longer than the configured maximum lifetime.
2. Queues: delete orphaned tenant queues, classify the rest by depth, notify
   on state transitions and delete queues past the delete threshold.
3. Exchanges: delete orphaned tenant exchanges.
4. Resource states: collect queue state records past the retention horizon.

The connection pass completes before the others start, so publishers of an
expired namespace are cut before their queues are evaluated. Ownership of
every resource is inferred from its name; anything outside the tenant naming
scheme is never touched.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from namespace_manager.constants import (
    REASON_CONNECTION_TOO_OLD,
    REASON_NAMESPACE_EXPIRED,
)
from namespace_manager.errors import (
    BrokerAPIError,
    EntityAlreadyExistsError,
    NotificationError,
)
from namespace_manager.models import (
    ConnectionInfo,
    MonitorResult,
    Namespace,
    QueueInfo,
    QueueState,
    ResourceState,
    ensure_utc,
)
from namespace_manager.observability.metrics import (
    ACTIVE_NAMESPACES,
    CONNECTIONS_TERMINATED_TOTAL,
    NOTIFICATIONS_TOTAL,
    QUEUE_STATE_TRANSITIONS_TOTAL,
    RESOURCE_STATES_COLLECTED_TOTAL,
    RESOURCES_DELETED_TOTAL,
    record_failure,
)
from namespace_manager.observability.tracing import traced
from namespace_manager.settings import Settings
from namespace_manager.settings import settings as default_settings
from namespace_manager.stores import RecordStore
from namespace_manager.utils.concurrency import run_bounded
from namespace_manager.utils.naming import (
    namespace_from_resource,
    namespace_from_username,
)
from namespace_manager.utils.notify import Notifier
from namespace_manager.utils.rabbit_admin import RabbitManagementClient

logger = logging.getLogger(__name__)


@dataclass
class QueueAlert:
    """Classification of a queue and the message describing it."""

    state: QueueState
    subject: str
    body: str


def classify_queue(
    queue: QueueInfo, alert_threshold: int, delete_threshold: int
) -> QueueAlert:
    """
    Classify a queue by depth and build its notification text.

    ``messages <= alert_threshold`` is normal, up to ``delete_threshold`` is a
    warning, and anything above is danger (the queue gets deleted).
    """
    if queue.messages > delete_threshold:
        return QueueAlert(
            state=QueueState.DANGER,
            subject=f"{queue.name} has been deleted!",
            body=(
                f"The number of messages queued in `{queue.name}` exceeded "
                f"{delete_threshold}.\n"
                f"At the time of deletion, there were {queue.messages} messages "
                "in the queue."
            ),
        )
    if queue.messages > alert_threshold:
        return QueueAlert(
            state=QueueState.WARNING,
            subject=f"{queue.name} is in danger of being deleted!",
            body=(
                f"The number of messages queued in `{queue.name}` is now above "
                f"{alert_threshold}.\n"
                f"Currently there are {queue.messages} messages in the queue. "
                f"If this number goes above {delete_threshold}, the queue will "
                "be deleted and all of the messages will be lost.\n\n"
                "A common cause of this situation is that your service has crashed."
            ),
        )
    return QueueAlert(
        state=QueueState.NORMAL,
        subject=f"{queue.name} has returned to a safe state",
        body=(
            f"The number of messages queued in `{queue.name}` is now below "
            f"{alert_threshold}.\n"
            "No further action is necessary on your part, although you may want "
            "to investigate why this happened in the first place."
        ),
    )


class BrokerMonitor:
    """
    Reconciles live broker resources against the namespace store.

    With ``settings.dry_run`` every decision is made and logged and queue
    states are still tracked, but nothing is deleted, terminated, collected
    or sent.
    """

    def __init__(
        self,
        namespaces: RecordStore[Namespace],
        resource_states: RecordStore[ResourceState],
        broker: RabbitManagementClient,
        notifier: Notifier,
        settings: Settings = default_settings,
    ):
        self.namespaces = namespaces
        self.resource_states = resource_states
        self.broker = broker
        self.notifier = notifier
        self.settings = settings

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run

    @traced("monitor.run")
    async def run(self, now: datetime | None = None) -> MonitorResult:
        """
        Run one reconciliation sweep.

        A failure to load the namespaces aborts the sweep, since an empty
        registry would make every tenant resource look orphaned. Failures
        of a single pass or resource are recorded in the result.
        """
        now = ensure_utc(now) if now else datetime.now(UTC)
        result = MonitorResult()

        active = {
            ns.namespace: ns
            async for ns in self.namespaces.iterate(
                lambda ns: ns.expires >= now, self.settings.scan_page_size
            )
        }
        result.namespaces = len(active)
        ACTIVE_NAMESPACES.set(len(active))
        if self.dry_run:
            logger.info("Monitor running in dry-run mode, no changes will be made")

        await self._run_pass(
            "connections", self._handle_connections(active, now, result), result
        )
        await asyncio.gather(
            self._run_pass("queues", self._handle_queues(active, now, result), result),
            self._run_pass("exchanges", self._handle_exchanges(active, result), result),
            self._run_pass(
                "resource-states", self._collect_resource_states(now, result), result
            ),
        )

        logger.info(
            f"Monitor sweep finished: {result.connections_terminated} connections "
            f"terminated, {result.queues_deleted} queues and "
            f"{result.exchanges_deleted} exchanges deleted, "
            f"{result.notifications_sent} notifications sent, "
            f"{result.states_collected} states collected, "
            f"{len(result.failures)} failures",
            extra={"count": result.namespaces, "failures": len(result.failures)},
        )
        return result

    async def _run_pass(self, name: str, sweep, result: MonitorResult) -> None:
        try:
            await sweep
        except Exception as e:
            logger.error(
                f"Monitor pass '{name}' failed: {e}",
                exc_info=True,
                extra={"operation": f"monitor_{name}", "error_type": type(e).__name__},
            )
            record_failure(f"monitor_{name}", e)
            result.failures[f"pass:{name}"] = e

    def _record_failures(
        self, operation: str, failures: dict[str, BaseException], result: MonitorResult
    ) -> None:
        for key, error in failures.items():
            logger.error(
                f"Monitor failed on {key}: {error}",
                exc_info=error,
                extra={
                    "operation": operation,
                    "resource_name": key,
                    "error_type": type(error).__name__,
                },
            )
            record_failure(operation, error)
        result.failures.update(failures)

    # Connections

    def _termination_reason(
        self,
        connection: ConnectionInfo,
        active: dict[str, Namespace],
        cutoff: datetime,
    ) -> str | None:
        namespace = namespace_from_username(
            connection.user,
            self.settings.username_prefix,
            self.settings.namespace_prefix,
        )
        if namespace is None:
            return None

        reason = None
        if namespace not in active:
            reason = REASON_NAMESPACE_EXPIRED
        if connection.connected_at is not None and connection.connected_at < cutoff:
            reason = REASON_CONNECTION_TOO_OLD
        return reason

    async def _handle_connections(
        self, active: dict[str, Namespace], now: datetime, result: MonitorResult
    ) -> None:
        cutoff = now - self.settings.connection_max_lifetime
        connections = await self.broker.list_connections(self.settings.virtual_host)

        targets = []
        for connection in connections:
            reason = self._termination_reason(connection, active, cutoff)
            if reason is not None:
                targets.append((connection, reason))

        async def _terminate(target: tuple[ConnectionInfo, str]) -> None:
            connection, reason = target
            if self.dry_run:
                logger.info(
                    f"Dry run: would terminate connection {connection.name} "
                    f"of {connection.user}: {reason}",
                    extra={"resource_name": connection.name, "dry_run": True},
                )
                return
            try:
                await self.broker.terminate_connection(connection.name, reason)
            except BrokerAPIError as e:
                if not e.is_not_found:
                    raise
                logger.debug(f"Connection {connection.name} already closed")
                return
            result.connections_terminated += 1
            CONNECTIONS_TERMINATED_TOTAL.labels(reason=reason).inc()
            logger.info(
                f"Terminated connection {connection.name} "
                f"of {connection.user}: {reason}",
                extra={"resource_type": "connection", "resource_name": connection.name},
            )

        _, failures = await run_bounded(
            targets,
            _terminate,
            self.settings.max_concurrency,
            key=lambda target: f"connection:{target[0].name}",
        )
        self._record_failures("monitor_connections", failures, result)

    # Queues and exchanges

    async def _delete_queue(
        self, name: str, reason: str, result: MonitorResult
    ) -> None:
        if self.dry_run:
            logger.info(
                f"Dry run: would delete queue {name} ({reason})",
                extra={"resource_name": name, "dry_run": True},
            )
            return
        try:
            await self.broker.delete_queue(name, self.settings.virtual_host)
        except BrokerAPIError as e:
            if not e.is_not_found:
                raise
            logger.debug(f"Queue {name} already gone")
            return
        result.queues_deleted += 1
        RESOURCES_DELETED_TOTAL.labels(resource_type="queue", reason=reason).inc()
        logger.info(
            f"Deleted queue {name} ({reason})",
            extra={"resource_type": "queue", "resource_name": name},
        )

    async def _update_queue_state(
        self, name: str, state: QueueState, now: datetime
    ) -> bool:
        """
        Record the queue's state and report whether this sweep changed it.

        A queue seen for the first time only counts as changed when it is
        not normal.
        """
        existing = await self.resource_states.load(name)
        if existing is None:
            try:
                await self.resource_states.create(
                    ResourceState(name=name, state=state, updated=now)
                )
                return state is not QueueState.NORMAL
            except EntityAlreadyExistsError:
                logger.debug(f"State for queue {name} created concurrently")
        elif existing.state is state:
            return False

        changed = False

        def _transition(entity: ResourceState) -> None:
            nonlocal changed
            changed = entity.state is not state
            if changed:
                entity.state = state
                entity.updated = now

        await self.resource_states.modify(name, _transition)
        return changed

    async def _notify(
        self, ns: Namespace, alert: QueueAlert, queue_name: str, result: MonitorResult
    ) -> None:
        if ns.contact is None:
            NOTIFICATIONS_TOTAL.labels(method="none", result="skipped").inc()
            logger.debug(
                f"Skipped {alert.state} notification for {queue_name}: no contact"
            )
            return
        method = ns.contact.method
        if self.dry_run:
            NOTIFICATIONS_TOTAL.labels(method=method, result="skipped").inc()
            logger.info(
                f"Dry run: would send {alert.state} notification for {queue_name} "
                f"to {ns.contact.address}",
                extra={"resource_name": queue_name, "dry_run": True},
            )
            return
        try:
            await self.notifier.send(
                method, ns.contact.address, alert.subject, alert.body
            )
        except NotificationError as e:
            NOTIFICATIONS_TOTAL.labels(method=method, result="failed").inc()
            logger.warning(
                f"Failed to notify {ns.contact.address} about {queue_name}: {e}",
                extra={"namespace": ns.namespace, "resource_name": queue_name},
            )
            return
        NOTIFICATIONS_TOTAL.labels(method=method, result="sent").inc()
        result.notifications_sent += 1

    async def _handle_queues(
        self, active: dict[str, Namespace], now: datetime, result: MonitorResult
    ) -> None:
        queues = await self.broker.list_queues(self.settings.virtual_host)

        tenant_queues = []
        for queue in queues:
            namespace = namespace_from_resource(
                queue.name, self.settings.queue_prefix, self.settings.namespace_prefix
            )
            if namespace is not None:
                tenant_queues.append((queue, namespace))

        async def _check(item: tuple[QueueInfo, str]) -> None:
            queue, namespace = item
            ns = active.get(namespace)
            if ns is None:
                await self._delete_queue(queue.name, "orphaned", result)
                return

            alert = classify_queue(
                queue, self.settings.alert_threshold, self.settings.delete_threshold
            )
            if await self._update_queue_state(queue.name, alert.state, now):
                QUEUE_STATE_TRANSITIONS_TOTAL.labels(state=alert.state).inc()
                logger.info(
                    f"Queue {queue.name} is now {alert.state} "
                    f"with {queue.messages} messages",
                    extra={
                        "namespace": namespace,
                        "resource_name": queue.name,
                        "queue_state": alert.state,
                        "messages": queue.messages,
                    },
                )
                await self._notify(ns, alert, queue.name, result)

            if alert.state is QueueState.DANGER:
                await self._delete_queue(queue.name, "over_threshold", result)

        _, failures = await run_bounded(
            tenant_queues,
            _check,
            self.settings.max_concurrency,
            key=lambda item: f"queue:{item[0].name}",
        )
        self._record_failures("monitor_queues", failures, result)

    async def _handle_exchanges(
        self, active: dict[str, Namespace], result: MonitorResult
    ) -> None:
        exchanges = await self.broker.list_exchanges(self.settings.virtual_host)
        orphans = []
        for exchange in exchanges:
            namespace = namespace_from_resource(
                exchange.name,
                self.settings.exchange_prefix,
                self.settings.namespace_prefix,
            )
            if namespace is not None and namespace not in active:
                orphans.append(exchange.name)

        async def _delete(name: str) -> None:
            if self.dry_run:
                logger.info(
                    f"Dry run: would delete exchange {name} (orphaned)",
                    extra={"resource_name": name, "dry_run": True},
                )
                return
            try:
                await self.broker.delete_exchange(name, self.settings.virtual_host)
            except BrokerAPIError as e:
                if not e.is_not_found:
                    raise
                logger.debug(f"Exchange {name} already gone")
                return
            result.exchanges_deleted += 1
            RESOURCES_DELETED_TOTAL.labels(
                resource_type="exchange", reason="orphaned"
            ).inc()
            logger.info(
                f"Deleted exchange {name} (orphaned)",
                extra={"resource_type": "exchange", "resource_name": name},
            )

        _, failures = await run_bounded(
            orphans,
            _delete,
            self.settings.max_concurrency,
            key=lambda name: f"exchange:{name}",
        )
        self._record_failures("monitor_exchanges", failures, result)

    # Resource-state garbage collection

    async def _collect_resource_states(
        self, now: datetime, result: MonitorResult
    ) -> None:
        cutoff = now - self.settings.resource_state_retention

        async def _remove(state: ResourceState) -> None:
            if self.dry_run:
                logger.debug(f"Dry run: would remove stale state of queue {state.name}")
                return
            if await self.resource_states.remove(state.key):
                result.states_collected += 1
                RESOURCE_STATES_COLLECTED_TOTAL.inc()

        async for page in self.resource_states.pages(
            lambda state: state.updated < cutoff, self.settings.scan_page_size
        ):
            _, failures = await run_bounded(
                page,
                _remove,
                self.settings.max_concurrency,
                key=lambda state: f"resource-state:{state.key}",
            )
            self._record_failures("monitor_resource_states", failures, result)
