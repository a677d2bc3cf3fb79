"""Bounded-concurrency helpers for async transforms."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar, cast

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 5
DEFAULT_BATCH_SIZE = 10


async def map_with_concurrency(
    items: Sequence[T],
    transform: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """Apply ``transform`` to every item with at most ``concurrency`` calls in flight.

    Results come back in input order regardless of completion order. Work is
    handed out through a queue, so each item is claimed by exactly one worker.
    The first exception raised by ``transform`` cancels the remaining workers
    and propagates; no partial result list is returned.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if not items:
        return []

    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))
    results: list[R | None] = [None] * len(items)

    async def worker() -> None:
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await transform(item)

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, len(items)))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return cast(list[R], results)


async def batch_process(
    items: Sequence[T],
    transform: Callable[[T], Awaitable[R]],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[R]:
    """Run ``transform`` in sequential waves of ``batch_size`` concurrent calls."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    results: list[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(transform(item) for item in batch)))
    return results
