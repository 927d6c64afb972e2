"""Shared pytest fixtures for namespace manager unit tests."""

from datetime import UTC, datetime

import pytest

from namespace_manager.models import Namespace, ResourceState
from namespace_manager.services import BrokerMonitor, NamespaceLifecycleManager
from namespace_manager.settings import Settings
from namespace_manager.stores import MemoryStore
from tests.fakes import FakeBroker, RecordingNotifier

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    """Settings with small thresholds so scenarios stay readable."""
    return Settings(
        USER_TAGS="taskcluster-pulse",
        MONITOR_ALERT_THRESHOLD=5,
        MONITOR_DELETE_THRESHOLD=10,
        NAMESPACE_ROTATION_INTERVAL_SECONDS=3600,
        NAMESPACE_CLAIM_LIFETIME_SECONDS=4 * 3600,
        MONITOR_CONNECTION_MAX_LIFETIME_SECONDS=3 * 24 * 3600,
        RESOURCE_STATE_RETENTION_SECONDS=2 * 24 * 3600,
        SCAN_PAGE_SIZE=2,
        BROKER_MAX_CONCURRENCY=3,
        DRY_RUN=False,
    )


@pytest.fixture
def namespace_store() -> MemoryStore[Namespace]:
    return MemoryStore(Namespace, "namespaces")


@pytest.fixture
def state_store() -> MemoryStore[ResourceState]:
    return MemoryStore(ResourceState, "rabbit-queues")


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def manager(namespace_store, broker, settings) -> NamespaceLifecycleManager:
    return NamespaceLifecycleManager(namespace_store, broker, settings)


@pytest.fixture
def monitor(namespace_store, state_store, broker, notifier, settings) -> BrokerMonitor:
    return BrokerMonitor(namespace_store, state_store, broker, notifier, settings)
