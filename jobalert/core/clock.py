"""Injectable time source — wall clock, monotonic clock, sleeps and timers.

Every component that reasons about time takes a :class:`Clock` so tests can
drive time explicitly with :class:`ManualClock` instead of really sleeping.
"""

from __future__ import annotations

import abc
import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None: ...


class Clock(abc.ABC):
    """Base class for time sources."""

    @abc.abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time (timezone-aware, UTC)."""

    @abc.abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, for measuring intervals."""

    @abc.abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for *seconds*."""

    @abc.abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* once after *delay* seconds."""


class SystemClock(Clock):
    """Real time, backed by the running asyncio event loop."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay, 0.0), callback)


class _ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """Deterministic clock for tests.

    Time only moves when :meth:`advance` is awaited or when a task calls
    :meth:`sleep`, which advances the clock by the requested amount and
    records it in :attr:`sleeps`.  Timers that come due while time moves
    fire in due order.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._elapsed = 0.0
        self._seq = itertools.count()
        self._timers: list[tuple[float, int, _ManualTimer]] = []
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._move(seconds)
        await asyncio.sleep(0)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self._elapsed + max(delay, 0.0), callback)
        heapq.heappush(self._timers, (timer.due, next(self._seq), timer))
        return timer

    async def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers, then let tasks run."""
        self._move(seconds)
        await asyncio.sleep(0)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled)

    def _move(self, seconds: float) -> None:
        target = self._elapsed + max(seconds, 0.0)
        while self._timers and self._timers[0][0] <= target:
            _, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._elapsed = timer.due
            timer.callback()
        self._elapsed = target
