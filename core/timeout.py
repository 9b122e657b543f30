"""
core/timeout.py -- Deadline race around a single awaitable.

with_timeout() waits for an operation and a deadline together; whichever
settles first decides the outcome.

  Operation first: its result is returned, or its exception re-raised,
      unchanged. The deadline timer is cancelled.
  Deadline first:  OperationTimeoutError is raised. The operation keeps
      running in the background -- only the wait is abandoned. Its eventual
      outcome is retrieved and logged at DEBUG, never returned.
  Caller cancelled: the cancellation propagates; the operation is treated
      like a timed-out one (left running, outcome logged).

The timer is owned by asyncio.wait(), which cancels its call_later handle on
every exit path (result, error, timeout, or the caller being cancelled).

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

logger = logging.getLogger("sociosim.timeout")

DEFAULT_TIMEOUT_MS = 10000

T = TypeVar("T")


class OperationTimeoutError(TimeoutError):
    """The deadline elapsed before the wrapped operation settled."""

    def __init__(self, label: str, timeout_ms: int) -> None:
        super().__init__(f"{label} timed out after {timeout_ms}ms")
        self.label = label
        self.timeout_ms = timeout_ms


async def with_timeout(
    label: str,
    operation: Awaitable[T],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    *,
    cancel_on_timeout: bool = False,
) -> T:
    """Await operation, failing with OperationTimeoutError after timeout_ms.

    Args:
        label:             Human-readable name embedded in the timeout message.
        operation:         A coroutine, Task or Future. Coroutines are scheduled
                           immediately.
        timeout_ms:        Deadline in milliseconds.
        cancel_on_timeout: When True, the abandoned operation is also cancelled.
                           Default False: the operation runs to completion.

    Raises:
        OperationTimeoutError: The deadline elapsed first.
        Exception: Whatever the operation raised, unchanged.
    """
    task = asyncio.ensure_future(operation)
    try:
        done, _pending = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        # The caller went away; the operation is left running like a timed-out one.
        task.add_done_callback(lambda fut: log_abandoned(label, fut))
        raise
    if task in done:
        return task.result()

    task.add_done_callback(lambda fut: log_abandoned(label, fut))
    if cancel_on_timeout:
        task.cancel()
    raise OperationTimeoutError(label, timeout_ms)


def log_abandoned(label: str, fut: asyncio.Future) -> None:
    """Done-callback for an operation nobody awaits any more."""
    # Retrieving the exception also silences "exception was never retrieved".
    if fut.cancelled():
        logger.debug("%s: abandoned operation was cancelled", label)
        return
    exc = fut.exception()
    if exc is not None:
        logger.debug("%s: abandoned operation failed late: %r", label, exc)
    else:
        logger.debug("%s: abandoned operation completed late", label)
