from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ConfirmationTimeout

T = TypeVar("T")


async def await_with_deadline(
    operation: Awaitable[T],
    timeout_seconds: float,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Optional[Callable[[], float]] = None,
    signature: Optional[str] = None,
) -> T:
    """Race ``operation`` against a ``timeout_seconds`` timer.

    If the operation settles first its result (or exception) is returned and
    the timer is cancelled. If the timer fires first the local operation task
    is cancelled and ConfirmationTimeout is raised; whatever the operation was
    waiting on remotely may still complete, its outcome is simply not observed.
    """
    loop = asyncio.get_running_loop()
    clock = clock or loop.time
    started = clock()

    op_task = asyncio.ensure_future(operation)
    timer_task = asyncio.ensure_future(sleep(timeout_seconds))
    try:
        done, _pending = await asyncio.wait({op_task, timer_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        op_task.cancel()
        timer_task.cancel()
        raise

    # a tie goes to the operation
    if op_task in done:
        timer_task.cancel()
        return op_task.result()

    op_task.cancel()
    raise ConfirmationTimeout(timeout_seconds, clock() - started, signature=signature)
