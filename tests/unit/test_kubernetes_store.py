"""Unit tests for the ConfigMap-backed record store."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from namespace_manager.constants import STORE_LABEL_TABLE, STORE_RECORD_KEY
from namespace_manager.errors import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ModifyConflictError,
    StoreError,
)
from namespace_manager.models import QueueState, ResourceState
from namespace_manager.stores import KubernetesStore

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def _config_map(
    record: ResourceState, resource_version: str = "1"
) -> client.V1ConfigMap:
    return client.V1ConfigMap(
        metadata=client.V1ObjectMeta(
            name=f"rabbit-queues-{record.name}",
            resource_version=resource_version,
        ),
        data={STORE_RECORD_KEY: record.model_dump_json()},
    )


def _state(name: str = "queue/acme/jobs", state: QueueState = QueueState.NORMAL):
    return ResourceState(name=name, state=state, updated=NOW)


def _make_store() -> tuple[KubernetesStore, MagicMock]:
    store = KubernetesStore(ResourceState, "rabbit-queues", "pulse")
    mock_v1 = MagicMock()
    store._v1 = mock_v1
    return store, mock_v1


class TestKubernetesStoreInit:
    """Test store initialization."""

    def test_v1_property_creates_client(self):
        """Should create CoreV1Api client on first access."""
        store = KubernetesStore(ResourceState, "rabbit-queues", "pulse")

        with patch("namespace_manager.stores.kubernetes.client.CoreV1Api") as mock_v1:
            _ = store.v1
            mock_v1.assert_called_once()

    def test_config_map_names_are_dns_safe(self):
        """Should hash keys that contain slashes."""
        store, _ = _make_store()
        name = store.config_map_name("queue/acme/jobs")

        assert name.startswith("rabbit-queues-")
        assert "/" not in name
        assert name == store.config_map_name("queue/acme/jobs")
        assert name != store.config_map_name("queue/acme/other")


class TestCreateAndLoad:
    """Test create and load."""

    @pytest.mark.asyncio
    async def test_create_labels_record(self):
        store, mock_v1 = _make_store()
        record = _state()
        mock_v1.create_namespaced_config_map.return_value = _config_map(record)

        created = await store.create(record)

        assert created.etag == "1"
        body = mock_v1.create_namespaced_config_map.call_args.kwargs["body"]
        assert body["metadata"]["labels"][STORE_LABEL_TABLE] == "rabbit-queues"
        assert body["metadata"]["annotations"]["namespace-manager.io/key"] == (
            "queue/acme/jobs"
        )
        assert "etag" not in body["data"][STORE_RECORD_KEY]

    @pytest.mark.asyncio
    async def test_create_conflict(self):
        store, mock_v1 = _make_store()
        mock_v1.create_namespaced_config_map.side_effect = ApiException(status=409)

        with pytest.raises(EntityAlreadyExistsError):
            await store.create(_state())

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.side_effect = ApiException(status=404)

        assert await store.load("queue/acme/jobs") is None

    @pytest.mark.asyncio
    async def test_load_error_wrapped(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.side_effect = ApiException(status=500)

        with pytest.raises(StoreError) as exc_info:
            await store.load("queue/acme/jobs")
        assert exc_info.value.retryable


class TestModify:
    """Test conditional replace."""

    @pytest.mark.asyncio
    async def test_replace_sends_resource_version(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.return_value = _config_map(_state(), "41")
        mock_v1.replace_namespaced_config_map.return_value = _config_map(
            _state(state=QueueState.WARNING), "42"
        )

        def _mutate(entity):
            entity.state = QueueState.WARNING

        updated = await store.modify("queue/acme/jobs", _mutate)

        assert updated.state is QueueState.WARNING
        assert updated.etag == "42"
        body = mock_v1.replace_namespaced_config_map.call_args.kwargs["body"]
        assert body["metadata"]["resourceVersion"] == "41"

    @pytest.mark.asyncio
    async def test_retries_on_conflict(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.return_value = _config_map(_state())
        mock_v1.replace_namespaced_config_map.side_effect = [
            ApiException(status=409),
            _config_map(_state(state=QueueState.DANGER), "3"),
        ]

        def _mutate(entity):
            entity.state = QueueState.DANGER

        updated = await store.modify("queue/acme/jobs", _mutate)

        assert updated.state is QueueState.DANGER
        assert mock_v1.replace_namespaced_config_map.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.return_value = _config_map(_state())
        mock_v1.replace_namespaced_config_map.side_effect = ApiException(status=409)

        def _mutate(entity):
            entity.state = QueueState.DANGER

        with pytest.raises(ModifyConflictError):
            await store.modify("queue/acme/jobs", _mutate)

    @pytest.mark.asyncio
    async def test_noop_skips_replace(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.return_value = _config_map(_state())

        await store.modify("queue/acme/jobs", lambda entity: None)

        mock_v1.replace_namespaced_config_map.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_record(self):
        store, mock_v1 = _make_store()
        mock_v1.read_namespaced_config_map.side_effect = ApiException(status=404)

        with pytest.raises(EntityNotFoundError):
            await store.modify("queue/acme/jobs", lambda entity: None)


class TestScanAndRemove:
    """Test paginated scans and removal."""

    @pytest.mark.asyncio
    async def test_scan_passes_limit_and_continue(self):
        store, mock_v1 = _make_store()
        mock_v1.list_namespaced_config_map.return_value = client.V1ConfigMapList(
            items=[
                _config_map(_state("queue/a/1")),
                _config_map(_state("queue/a/2", QueueState.WARNING)),
            ],
            metadata=client.V1ListMeta(_continue="token-2"),
        )

        page = await store.scan(
            lambda state: state.state is QueueState.WARNING,
            page_size=2,
            continuation="token-1",
        )

        assert [state.name for state in page.entries] == ["queue/a/2"]
        assert page.continuation == "token-2"
        mock_v1.list_namespaced_config_map.assert_called_once_with(
            namespace="pulse",
            label_selector=f"{STORE_LABEL_TABLE}=rabbit-queues",
            limit=2,
            _continue="token-1",
        )

    @pytest.mark.asyncio
    async def test_last_page_has_no_continuation(self):
        store, mock_v1 = _make_store()
        mock_v1.list_namespaced_config_map.return_value = client.V1ConfigMapList(
            items=[], metadata=client.V1ListMeta()
        )

        page = await store.scan()

        assert page.entries == []
        assert page.continuation is None

    @pytest.mark.asyncio
    async def test_remove(self):
        store, mock_v1 = _make_store()
        assert await store.remove("queue/a/1")

        mock_v1.delete_namespaced_config_map.side_effect = ApiException(status=404)
        assert not await store.remove("queue/a/1")
