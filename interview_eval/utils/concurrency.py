"""
Bounded concurrency helper.

A fixed number of workers pull items from a shared iterator, so at most
``concurrency`` items are in flight and a slow item only holds its own slot.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    concurrency: int = 3,
    should_continue: Optional[Callable[[], bool]] = None,
) -> List[Optional[R]]:
    """
    Run ``worker(index, item)`` for every item with at most ``concurrency`` in flight.

    Results are returned in input order. If a worker raises, no new items are
    started and the first exception propagates; items already running are not
    interrupted. ``should_continue`` is checked before each item is started;
    skipped items leave ``None`` in their slot.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    results: List[Optional[R]] = [None] * len(items)
    pending = iter(enumerate(items))
    failed = False

    async def drain():
        nonlocal failed
        for index, item in pending:
            if failed or (should_continue is not None and not should_continue()):
                return
            try:
                results[index] = await worker(index, item)
            except Exception:
                failed = True
                raise

    workers = [drain() for _ in range(min(concurrency, len(items)))]
    if workers:
        await asyncio.gather(*workers)
    return results
