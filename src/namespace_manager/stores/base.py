"""
Record store contract.

A store is a key-indexed table with create-if-absent, load, conditional
modify, remove, and a filtered scan that returns pages linked by a
continuation token. The create and modify primitives are the only
concurrency control the namespace manager relies on.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

Condition = Callable[[T], bool]
Mutator = Callable[[T], None]


@dataclass
class ScanPage(Generic[T]):
    entries: list[T] = field(default_factory=list)
    continuation: str | None = None


class RecordStore(ABC, Generic[T]):
    """
    Abstract async record store.

    Records expose their primary key as ``record.key`` and carry the store's
    version marker in ``record.etag``.
    """

    def __init__(self, model: type[T], table_name: str):
        self.model = model
        self.table_name = table_name

    @abstractmethod
    async def create(self, record: T) -> T:
        """
        Insert a new record.

        Raises:
            EntityAlreadyExistsError: If a record with the same key exists
        """

    @abstractmethod
    async def load(self, key: str) -> T | None:
        """Load a record, or None if it does not exist."""

    @abstractmethod
    async def scan(
        self,
        condition: Condition | None = None,
        page_size: int = 250,
        continuation: str | None = None,
    ) -> ScanPage[T]:
        """Return one page of records matching ``condition``."""

    @abstractmethod
    async def modify(self, key: str, mutator: Mutator) -> T:
        """
        Atomically apply ``mutator`` to a record.

        The mutator receives a copy and changes it in place. When the stored
        record changed underneath, the load and mutation are retried.

        Raises:
            EntityNotFoundError: If the record does not exist
            ModifyConflictError: If the retry budget is exhausted
        """

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Remove a record; returns False if it was already gone."""

    async def pages(
        self, condition: Condition | None = None, page_size: int = 250
    ) -> AsyncIterator[list[T]]:
        """Yield every page of a scan, following continuation tokens."""
        continuation: str | None = None
        while True:
            page = await self.scan(condition, page_size, continuation)
            if page.entries:
                yield page.entries
            if not page.continuation:
                return
            continuation = page.continuation

    async def iterate(
        self, condition: Condition | None = None, page_size: int = 250
    ) -> AsyncIterator[T]:
        """Yield every record matching ``condition``, draining all pages."""
        async for entries in self.pages(condition, page_size):
            for entry in entries:
                yield entry
