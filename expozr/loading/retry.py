"""
Retry executor and advisory timeouts.

``with_retry`` re-runs a coroutine factory with a (possibly growing)
delay between attempts; ``with_timeout`` races an awaitable against a
timer without cancelling it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..faults.domains import LoadTimeoutFault

logger = logging.getLogger("expozr.loading.retry")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay_ms: float = 1000,
    backoff: float = 1.0,
    *,
    sleep: Optional[Sleep] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or ``attempts`` are exhausted.

    Between attempt ``i`` and ``i + 1`` (zero-based) waits
    ``delay_ms * backoff ** i``. The last error is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        attempts: Maximum attempts (values below 1 mean 1)
        delay_ms: Base delay in milliseconds
        backoff: Multiplier applied to the delay after each failure
        sleep: Awaitable sleep taking seconds (defaults to ``asyncio.sleep``)
    """
    sleep = sleep or asyncio.sleep
    attempts = max(1, int(attempts))

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts - 1:
                raise
            wait_ms = delay_ms * (backoff ** attempt)
            logger.debug(
                "Attempt %d/%d failed (%s); retrying in %.0fms",
                attempt + 1, attempts, e, wait_ms,
            )
            if wait_ms > 0:
                await sleep(wait_ms / 1000)

    raise AssertionError("unreachable")


def _retrieve_late_result(resource: str) -> Callable[[asyncio.Future], None]:
    def callback(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("'%s' failed after its timeout elapsed: %s", resource, exc)

    return callback


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_ms: Optional[float],
    resource: str = "operation",
) -> T:
    """
    Await ``awaitable`` for at most ``timeout_ms`` milliseconds.

    On expiry raises ``LoadTimeoutFault``. The underlying task is left
    running; its eventual exception is retrieved and logged. ``None``
    or ``0`` waits indefinitely. Cancellation of the caller cancels the
    task.
    """
    if not timeout_ms or timeout_ms <= 0:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_retrieve_late_result(resource))
    raise LoadTimeoutFault(resource, timeout_ms)
