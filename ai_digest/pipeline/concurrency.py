"""Bounded-concurrency helpers shared by the fetcher and the batch orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_gather(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> List[Any]:
    """Run ``worker(item)`` for every item with at most ``limit`` in flight.

    Results come back in input order. Exceptions are returned in place of the
    result (``return_exceptions=True``), so one failing task never cancels its
    siblings. A free slot is taken by the next pending item as soon as any
    running task settles.
    """
    if limit < 1:
        raise ValueError(f"concurrency limit must be >= 1, got {limit}")
    sem = asyncio.Semaphore(limit)

    async def _run(item: T) -> R:
        async with sem:
            return await worker(item)

    return await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
