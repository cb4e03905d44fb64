"""
Cancellable timers for the onboarding wizard.

Every deferred action in the wizard (lookup debounce, verification countdown
ticks, per-page scrape delays, the integration check) goes through a
Scheduler instead of calling the event loop directly:

- AsyncioScheduler: real timers on the running asyncio loop
- VirtualClock: manual time for tests and scripted walkthroughs

Usage:
    clock = VirtualClock()
    handle = clock.call_later(0.5, fire)
    clock.advance(0.4)   # nothing yet
    handle.cancel()      # fire() never runs
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from collections.abc import Callable


class TimerHandle:
    """Handle for one scheduled callback. Cancelling twice is harmless."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._on_cancel: Callable[[], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        """True while the callback is still due to run."""
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def _run(self) -> None:
        if not self.active:
            return
        self._fired = True
        self._callback()


class Scheduler(ABC):
    """Source of time and deferred callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds."""
        ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay seconds."""
        ...

    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a handle if there is one."""
        if handle is not None:
            handle.cancel()


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by the asyncio event loop.

    The loop is looked up on first use so the scheduler can be built
    outside a coroutine and used later from inside one.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        if self._loop is None:
            return time.monotonic()
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._get_loop()
        handle = TimerHandle(loop.time() + delay, callback)
        inner = loop.call_later(max(delay, 0.0), handle._run)
        handle._on_cancel = inner.cancel
        return handle


class VirtualClock(Scheduler):
    """
    Manually advanced clock.

    Callbacks fire in (due time, scheduling order). Callbacks scheduled while
    advancing fire in the same advance() call if they fall due before its end.
    """

    def __init__(self, start: float = 0.0):
        self._time = start
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._time

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._time + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of timers still waiting to fire."""
        return sum(1 for _, _, handle in self._queue if handle.active)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that falls due."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        target = self._time + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._time = when
            handle._run()
        self._time = target

    def run_all(self, limit: float = 3600.0) -> None:
        """Advance until no timers remain (bounded by limit seconds)."""
        deadline = self._time + limit
        while self.pending and self._time < deadline:
            next_when = min(h.when for _, _, h in self._queue if h.active)
            self.advance(max(next_when - self._time, 0.0))
