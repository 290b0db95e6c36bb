"""First-settled-or-timeout combinator used by the session bootstrap."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

T = TypeVar("T")


class LookupTimeout(TimeoutError):
    """Raised by :meth:`Settled.unwrap` when nothing settled in time."""


@dataclass(slots=True)
class Settled(Generic[T]):
    """Outcome of :func:`first_settled`.

    Exactly one of ``value``/``error`` is meaningful unless ``timed_out`` is
    set, in which case neither is.
    """

    value: T | None = None
    error: BaseException | None = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.error is None

    def unwrap(self) -> T | None:
        if self.timed_out:
            raise LookupTimeout("lookup timed out")
        if self.error is not None:
            raise self.error
        return self.value


async def first_settled(*awaitables: Awaitable[Any], timeout: float) -> Settled[Any]:
    """Return the outcome of whichever awaitable settles first.

    Parameters
    ----------
    awaitables:
        Coroutines or futures to race. Each is wrapped in a task.
    timeout:
        Upper bound in seconds. When it elapses first the result has
        ``timed_out=True``.

    Every task still pending when this returns is cancelled, including when
    the caller itself is cancelled.
    """
    if not awaitables:
        raise ValueError("first_settled needs at least one awaitable")

    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        done, _ = await asyncio.wait(tasks, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if not done:
            return Settled(timed_out=True)
        # several may finish in the same loop iteration; keep argument order
        winner = next(task for task in tasks if task in done)
        if winner.cancelled():
            return Settled(error=asyncio.CancelledError())
        error = winner.exception()
        if error is not None:
            return Settled(error=error)
        return Settled(value=winner.result())
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # retrieve exceptions of finished losers so they are not reported as never retrieved
        for task in tasks:
            if task.done() and not task.cancelled():
                task.exception()
