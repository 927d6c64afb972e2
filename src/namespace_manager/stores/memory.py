"""In-process record store for tests and local development."""

import logging

from ..constants import MODIFY_MAX_ATTEMPTS
from ..errors import EntityAlreadyExistsError, EntityNotFoundError, ModifyConflictError
from .base import Condition, Mutator, RecordStore, ScanPage, T

logger = logging.getLogger(__name__)


class MemoryStore(RecordStore[T]):
    """
    Dict-backed store.

    Keys are scanned in sorted order and the continuation token is the last
    key examined. Records are copied on the way in and out so callers never
    share state with the table.
    """

    def __init__(self, model: type[T], table_name: str = "memory"):
        super().__init__(model, table_name)
        self._records: dict[str, T] = {}
        self._version = 0

    def _next_etag(self) -> str:
        self._version += 1
        return str(self._version)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    async def create(self, record: T) -> T:
        if record.key in self._records:
            raise EntityAlreadyExistsError(record.key)
        stored = record.model_copy(deep=True, update={"etag": self._next_etag()})
        self._records[record.key] = stored
        return stored.model_copy(deep=True)

    async def load(self, key: str) -> T | None:
        record = self._records.get(key)
        return record.model_copy(deep=True) if record is not None else None

    async def scan(
        self,
        condition: Condition | None = None,
        page_size: int = 250,
        continuation: str | None = None,
    ) -> ScanPage[T]:
        keys = sorted(
            k for k in self._records if continuation is None or k > continuation
        )
        entries: list[T] = []
        last_key: str | None = None
        for key in keys:
            if len(entries) >= page_size:
                return ScanPage(entries=entries, continuation=last_key)
            last_key = key
            record = self._records[key]
            if condition is None or condition(record):
                entries.append(record.model_copy(deep=True))
        return ScanPage(entries=entries, continuation=None)

    async def modify(self, key: str, mutator: Mutator) -> T:
        for _ in range(MODIFY_MAX_ATTEMPTS):
            current = self._records.get(key)
            if current is None:
                raise EntityNotFoundError(key)
            working = current.model_copy(deep=True)
            mutator(working)
            if self._records.get(key) is not current:
                continue
            if working.model_dump() == current.model_dump():
                return working
            stored = working.model_copy(update={"etag": self._next_etag()})
            self._records[key] = stored
            return stored.model_copy(deep=True)
        raise ModifyConflictError(key, MODIFY_MAX_ATTEMPTS)

    async def remove(self, key: str) -> bool:
        return self._records.pop(key, None) is not None
