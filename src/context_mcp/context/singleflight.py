"""In-process duplicate-call suppression keyed by fingerprint.

Usage::

    flight = SingleFlight()
    entry, shared = await flight.do(fingerprint, lambda: compute(fingerprint))

The first caller for a key starts ``fn()`` as a task; callers arriving
while it runs await the same task.  All of them observe the same outcome,
value or exception.  A cancelled caller only abandons its own wait; when
the last waiter goes away the task is cancelled and the key forgotten.
Nothing here coordinates across processes.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable, Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclasses.dataclass
class _Call(Generic[T]):
    task: asyncio.Task[T]
    waiters: int = 0


class SingleFlight(Generic[T]):
    """Run at most one ``fn`` per key at a time within this event loop."""

    def __init__(self) -> None:
        self._calls: dict[str, _Call[T]] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` for ``key`` or join the run already in flight.

        Returns:
            ``(result, shared)`` where ``shared`` is True when this caller
            joined another caller's computation.
        """
        call = self._calls.get(key)
        shared = call is not None
        if call is None:
            call = _Call(task=asyncio.ensure_future(fn()))
            self._calls[key] = call
            call.task.add_done_callback(lambda _t, k=key, c=call: self._forget(k, c))
        else:
            log.debug("Joining in-flight computation", extra={"key": key})

        call.waiters += 1
        try:
            result = await asyncio.shield(call.task)
        except asyncio.CancelledError:
            call.waiters -= 1
            if call.waiters == 0 and not call.task.done():
                self._forget(key, call)
                call.task.cancel()
                log.debug("Abandoned in-flight computation", extra={"key": key})
            raise
        except BaseException:
            call.waiters -= 1
            raise
        call.waiters -= 1
        return result, shared

    def _forget(self, key: str, call: _Call[T]) -> None:
        if self._calls.get(key) is call:
            del self._calls[key]
