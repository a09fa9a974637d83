"""In-flight gate and generation counter shared by the sliding-window caches.

WHY: Both caches refill from slow, asynchronous sources while the 20 ms
tick keeps reading them. Two rules keep that safe: at most one refill per
cache may be outstanding, and a refill that was started before a seek
must not land in the window that replaced it.

HOW: RefillGate pairs an in-flight flag with a generation number. A
refill acquires the gate and remembers the generation it started under;
when the data arrives it is applied only if the generation is still
current. reset() bumps the generation and frees the gate, so a refill for
the new position can start at once while the old one becomes a no-op.
Background refills are asyncio tasks tracked by the gate so that close()
can cancel them.

RULES:
- try_acquire() returns None while a refill is in flight (requests are
  dropped, not queued)
- release() only frees the gate for the generation that acquired it
- After close(), nothing can be acquired and all tracked tasks are cancelled
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, Set


class RefillGate:
    """At-most-one-outstanding-refill guard with stale-completion detection."""

    def __init__(self) -> None:
        self.generation = 0
        self._in_flight = False
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def try_acquire(self) -> Optional[int]:
        if self._closed or self._in_flight:
            return None
        self._in_flight = True
        return self.generation

    def release(self, generation: int) -> None:
        if generation == self.generation:
            self._in_flight = False

    def is_current(self, generation: int) -> bool:
        return not self._closed and generation == self.generation

    def invalidate(self) -> None:
        """Forget any outstanding refill; its completion will be dropped."""
        self.generation += 1
        self._in_flight = False

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def close(self) -> None:
        self._closed = True
        self.invalidate()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
