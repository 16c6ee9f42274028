"""
Timer primitives for the autosave pipeline.

All durations are milliseconds. Production code runs on the asyncio event
loop; tests drive the same components with a manual clock.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Clock plus one-shot timers."""

    def now_ms(self) -> float:
        ...

    def wall_ms(self) -> float:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopScheduler:
    """
    Scheduler backed by the running asyncio loop.

    `now_ms` follows the loop's monotonic clock and drives every interval.
    `wall_ms` is only for timestamps shown to people.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return self._get_loop().time() * 1000

    def wall_ms(self) -> float:
        return time.time() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._get_loop()
        return loop.call_later(max(delay_ms, 0) / 1000, callback)


class Debouncer:
    """
    Trailing-edge debounce: `action` runs once `delay_ms` after the latest
    `trigger()`. Each trigger supersedes the pending one.
    """

    def __init__(
        self, scheduler: Scheduler, delay_ms: float, action: Callable[[], None]
    ):
        self._scheduler = scheduler
        self.delay_ms = delay_ms
        self._action = action
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(self.delay_ms, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._action()


class SaveThrottle:
    """Minimum spacing between successful saves."""

    def __init__(self, interval_ms: float = 2000):
        self.interval_ms = interval_ms
        self.last_save_ms: Optional[float] = None

    def allows(self, now_ms: float) -> bool:
        if self.last_save_ms is None:
            return True
        return now_ms - self.last_save_ms >= self.interval_ms

    def record(self, now_ms: float) -> None:
        self.last_save_ms = now_ms
