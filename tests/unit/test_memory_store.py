"""Unit tests for the in-memory record store."""

from datetime import UTC, datetime, timedelta

import pytest

from namespace_manager.errors import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ModifyConflictError,
)
from namespace_manager.models import QueueState, ResourceState
from namespace_manager.stores import MemoryStore

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def _state(name: str, state: QueueState = QueueState.NORMAL, age_hours: int = 0):
    updated = NOW - timedelta(hours=age_hours)
    return ResourceState(name=name, state=state, updated=updated)


@pytest.fixture
def store() -> MemoryStore[ResourceState]:
    return MemoryStore(ResourceState, "rabbit-queues")


class TestCreateAndLoad:
    """Test create and load."""

    @pytest.mark.asyncio
    async def test_create_assigns_etag(self, store):
        created = await store.create(_state("q1"))
        assert created.etag is not None
        assert (await store.load("q1")).etag == created.etag

    @pytest.mark.asyncio
    async def test_create_conflict(self, store):
        await store.create(_state("q1"))
        with pytest.raises(EntityAlreadyExistsError):
            await store.create(_state("q1", QueueState.DANGER))
        assert (await store.load("q1")).state is QueueState.NORMAL

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, store):
        assert await store.load("missing") is None

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        """Should not let callers mutate stored records."""
        loaded = await store.create(_state("q1"))
        loaded.state = QueueState.DANGER
        assert (await store.load("q1")).state is QueueState.NORMAL


class TestModify:
    """Test conditional modify."""

    @pytest.mark.asyncio
    async def test_applies_mutation(self, store):
        created = await store.create(_state("q1"))

        def _mutate(entity):
            entity.state = QueueState.WARNING

        updated = await store.modify("q1", _mutate)

        assert updated.state is QueueState.WARNING
        assert updated.etag != created.etag

    @pytest.mark.asyncio
    async def test_noop_mutation_keeps_etag(self, store):
        created = await store.create(_state("q1"))

        updated = await store.modify("q1", lambda entity: None)

        assert updated.etag == created.etag

    @pytest.mark.asyncio
    async def test_missing_record(self, store):
        with pytest.raises(EntityNotFoundError):
            await store.modify("missing", lambda entity: None)

    @pytest.mark.asyncio
    async def test_retries_when_record_changes_underneath(self, store):
        """Should re-run the mutator against the newest record."""
        await store.create(_state("q1"))
        seen = []

        def _mutate(entity):
            seen.append(entity.state)
            if len(seen) == 1:
                # Simulate a concurrent writer between load and write
                store._records["q1"] = store._records["q1"].model_copy(
                    update={"state": QueueState.DANGER, "etag": "other"}
                )
            entity.updated = NOW

        updated = await store.modify("q1", _mutate)

        assert seen == [QueueState.NORMAL, QueueState.DANGER]
        assert updated.state is QueueState.DANGER

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self, store):
        await store.create(_state("q1"))

        def _always_conflict(entity):
            store._records["q1"] = store._records["q1"].model_copy()
            entity.state = QueueState.WARNING

        with pytest.raises(ModifyConflictError):
            await store.modify("q1", _always_conflict)


class TestScanAndRemove:
    """Test scans and removal."""

    @pytest.mark.asyncio
    async def test_scan_pages_in_key_order(self, store):
        for name in ("c", "a", "e", "b", "d"):
            await store.create(_state(name))

        first = await store.scan(page_size=2)
        assert [s.name for s in first.entries] == ["a", "b"]
        second = await store.scan(page_size=2, continuation=first.continuation)
        assert [s.name for s in second.entries] == ["c", "d"]
        third = await store.scan(page_size=2, continuation=second.continuation)
        assert [s.name for s in third.entries] == ["e"]
        assert third.continuation is None

    @pytest.mark.asyncio
    async def test_iterate_filters_across_pages(self, store):
        for i in range(7):
            await store.create(_state(f"q{i}", age_hours=i * 10))

        stale = [
            state.name
            async for state in store.iterate(
                lambda state: state.updated < NOW - timedelta(hours=25), page_size=2
            )
        ]

        assert stale == ["q3", "q4", "q5", "q6"]

    @pytest.mark.asyncio
    async def test_remove(self, store):
        await store.create(_state("q1"))
        assert await store.remove("q1")
        assert not await store.remove("q1")
        assert "q1" not in store
