"""Exponential backoff for rate-limited RPC calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RemoteCallFailed, RetryExhausted
from .models import RetryState

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_DELAY = 0.5


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    on_retry: Optional[Callable[..., None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` and retry it only while the node reports rate limiting.

    At most ``max_retries`` attempts are made; the wait between attempts starts
    at ``initial_delay`` and doubles each time. Errors that are not classified
    as rate limiting propagate on the first occurrence.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be >= 1")
    if initial_delay < 0:
        raise ValueError("initial_delay must be >= 0")

    state = RetryState(attempt=0, delay=initial_delay)
    while True:
        try:
            return await operation()
        except RemoteCallFailed as exc:
            if not exc.rate_limited:
                raise
            attempts_made = state.attempt + 1
            if attempts_made >= max_retries:
                raise RetryExhausted(attempts_made, exc) from exc

            if on_retry is not None:
                on_retry(attempt=attempts_made, delay_seconds=state.delay, exception=exc)
            if state.delay > 0:
                await sleep(state.delay)
            state.advance()
