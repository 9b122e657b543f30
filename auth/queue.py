"""
auth/queue.py -- Single ordered lane for auth-provider calls.

Every auth-provider call made by this process goes through one SerialQueue,
so at most one runs at a time, in submission order, each bounded by
with_timeout().

Chaining:
  The queue holds one reference, the tail: a future that resolves once every
  submission made so far has settled. submit() is synchronous -- it captures
  the tail, swaps in a fresh one and schedules the work -- so two submissions
  can never interleave their read-modify-write of the tail.

  Tail futures only ever receive set_result(None). A failed or timed-out
  submission therefore never poisons the chain; its error reaches its own
  caller through the returned Task and nowhere else.

Per-submission lifecycle:
  Queued -> Waiting-for-predecessor -> Running
         -> Settled-Success | Settled-Timeout | Settled-Error

Each submission is two tasks: the lane task, which owns the turn, and the
caller's task returned by submit(), which follows it through asyncio.shield().
Cancelling the caller's task before the turn comes drops the submission.
Once the operation is running, cancelling the caller only detaches it: the
lane stays held until the operation settles or its deadline elapses.

No retries and no cancellation of the underlying provider call happen here.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from core.timeout import DEFAULT_TIMEOUT_MS, log_abandoned, with_timeout

logger = logging.getLogger("sociosim.auth.queue")

T = TypeVar("T")


class _Turn:
    __slots__ = ("running",)

    def __init__(self) -> None:
        self.running = False


class SerialQueue:
    """FIFO lane running one factory at a time through with_timeout().

    Usage:
        queue = SerialQueue()
        task = queue.submit("auth.getUser", lambda: auth.get_user(jwt), 10000)
        user = await task
    """

    def __init__(self) -> None:
        # None stands for an already-resolved tail (nothing queued yet).
        self._tail: asyncio.Future | None = None

    @property
    def idle(self) -> bool:
        """True when every submission so far has settled."""
        return self._tail is None or self._tail.done()

    def submit(
        self,
        label: str,
        factory: Callable[[], Awaitable[T]],
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> asyncio.Task[T]:
        """Schedule factory() to run after every earlier submission settles.

        Must be called from a coroutine running on the event loop. The
        factory is not invoked until its turn comes.

        Returns the Task carrying the real outcome: the factory's result, the
        provider's exception, or OperationTimeoutError.
        """
        loop = asyncio.get_running_loop()
        previous = self._tail
        settled = loop.create_future()
        self._tail = settled

        turn = _Turn()
        lane = loop.create_task(self._run(previous, turn, label, factory, timeout_ms))
        # A done callback rather than try/finally: it also fires when the
        # task is cancelled before its first step.
        lane.add_done_callback(lambda _lane: _settle_after(previous, settled))

        caller = loop.create_task(_follow(lane))
        caller.add_done_callback(lambda task: _detach(task, lane, turn, label))
        return caller

    async def _run(
        self,
        previous: asyncio.Future | None,
        turn: _Turn,
        label: str,
        factory: Callable[[], Awaitable[T]],
        timeout_ms: int,
    ) -> T:
        if previous is not None and not previous.done():
            # asyncio.wait never raises the awaited future's outcome and does
            # not cancel it if this task is cancelled.
            await asyncio.wait({previous})
        turn.running = True
        logger.debug("%s: running (timeout %dms)", label, timeout_ms)
        return await with_timeout(label, factory(), timeout_ms)


async def _follow(lane: asyncio.Task[T]) -> T:
    return await asyncio.shield(lane)


def _detach(caller: asyncio.Task, lane: asyncio.Task, turn: _Turn, label: str) -> None:
    """React to the caller giving up on its submission."""
    if not caller.cancelled() or lane.done():
        return
    if turn.running:
        lane.add_done_callback(lambda fut: log_abandoned(label, fut))
    else:
        lane.cancel()


def _settle_after(previous: asyncio.Future | None, settled: asyncio.Future) -> None:
    """Resolve settled, but never before the predecessor's tail resolves.

    A submission cancelled while still waiting must not let its successor
    overtake the operation that is still running ahead of it.
    """
    if previous is None or previous.done():
        _release(settled)
    else:
        previous.add_done_callback(lambda _fut: _release(settled))


def _release(settled: asyncio.Future) -> None:
    if not settled.done():
        settled.set_result(None)


# Process-wide lane shared by every AuthService that is not handed its own.
auth_queue = SerialQueue()
