from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import List, Optional, Tuple

from singularity.core.contracts import CancellableHandle, Task
from singularity.core.errors import ConfigurationError


class LoopScheduler:
    """
    Scheduler backed by an asyncio event loop.

    ``schedule_after`` must be called from the loop's own thread; the loop
    is looked up lazily so the scheduler can be built before it runs.
    A task that raises is reported through the loop's exception handler.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError as e:
                raise ConfigurationError(
                    "LoopScheduler needs a running asyncio loop (or an explicit loop=); "
                    "use VirtualScheduler or interval=0 for synchronous use"
                ) from e
        return self._loop

    def schedule_after(self, delay: float, task: Task) -> Optional[asyncio.TimerHandle]:
        if delay <= 0:
            task()
            return None
        return self.loop.call_later(delay, task)

    def cancel(self, handle: CancellableHandle) -> None:
        handle.cancel()


class VirtualHandle:
    __slots__ = ("due", "task", "cancelled")

    def __init__(self, due: float, task: Task):
        self.due = due
        self.task = task
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """
    Deterministic scheduler driven by ``advance()``.

    Time only moves when the owner advances it; due tasks fire in
    (due time, scheduling order). An exception from a task propagates out
    of ``advance``; tasks not yet fired stay queued.
    """

    def __init__(self, start: float = 0.0):
        self.now = float(start)
        self._heap: List[Tuple[float, int, VirtualHandle]] = []
        self._seq = itertools.count()

    def schedule_after(self, delay: float, task: Task) -> Optional[VirtualHandle]:
        if delay <= 0:
            task()
            return None
        handle = VirtualHandle(self.now + delay, task)
        heapq.heappush(self._heap, (handle.due, next(self._seq), handle))
        return handle

    def cancel(self, handle: CancellableHandle) -> None:
        handle.cancel()

    def pending(self) -> int:
        return sum(1 for _, _, h in self._heap if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward and run everything that became due. Returns tasks fired."""
        if seconds < 0:
            raise ValueError("cannot advance a clock backwards")
        until = self.now + seconds
        fired = 0
        while self._heap and self._heap[0][0] <= until:
            due, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self.now = due
            fired += 1
            handle.task()
        self.now = until
        return fired

    def flush(self) -> int:
        """Run every pending task, however far in the future."""
        fired = 0
        while self._heap:
            due, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self.now = max(self.now, due)
            fired += 1
            handle.task()
        return fired
