from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    inputs: Sequence[T],
    limit: int,
    task: Callable[[T], Awaitable[R]],
    *,
    on_error: Optional[Callable[[T, BaseException], None]] = None,
) -> List[Optional[R]]:
    """Run ``task`` over ``inputs`` with at most ``limit`` calls in flight.

    Results come back in input order. A task that raises yields ``None`` in its
    slot (after ``on_error`` is told about it) and never stops the run. If the
    runner itself is cancelled, every task it started is cancelled too.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    async def guarded(item: T) -> Optional[R]:
        try:
            return await task(item)
        except Exception as exc:
            if on_error is not None:
                try:
                    on_error(item, exc)
                except Exception:
                    logger.exception("on_error handler failed for %r", item)
            return None

    futures: List[asyncio.Task] = []
    executing: Set[asyncio.Task] = set()
    try:
        for item in inputs:
            fut = asyncio.ensure_future(guarded(item))
            futures.append(fut)
            executing.add(fut)
            if len(executing) >= limit:
                _done, pending = await asyncio.wait(executing, return_when=asyncio.FIRST_COMPLETED)
                executing = set(pending)

        if not futures:
            return []
        return list(await asyncio.gather(*futures))
    finally:
        for fut in futures:
            if not fut.done():
                fut.cancel()
