"""
Bounded fan-out for per-record work.

Sweeps process independent records with at most ``limit`` in flight so that
the broker management API is never flooded, and one record's failure never
cancels the others.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
    key: Callable[[T], str] = str,
) -> tuple[list[R], dict[str, BaseException]]:
    """
    Run ``worker`` over ``items`` with bounded concurrency.

    Args:
        items: Records to process
        worker: Coroutine function applied to each record
        limit: Maximum number of workers running at once
        key: Produces the failure key for a record

    Returns:
        Tuple of (results of successful workers, failures keyed by record)
    """
    semaphore = asyncio.Semaphore(limit)
    items = list(items)

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    outcomes = await asyncio.gather(
        *(_run(item) for item in items), return_exceptions=True
    )

    results: list[R] = []
    failures: dict[str, BaseException] = {}
    for item, outcome in zip(items, outcomes, strict=True):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            failures[key(item)] = outcome
        else:
            results.append(outcome)
    return results, failures
