from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on the running asyncio loop; wall-clock time."""

    def time(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(max(0.0, delay), callback)


_background_tasks: set[asyncio.Task] = set()


def fire_and_forget(coro: Awaitable[Any], description: str) -> asyncio.Task:
    """Run a best-effort call on the running loop. Failures are logged, never raised."""

    async def runner() -> None:
        try:
            await coro
        except Exception as ex:
            logger.warning(f"{description} failed: {ex}")

    task = asyncio.get_running_loop().create_task(runner())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


class _DeadHandle:
    def cancel(self) -> None:
        return


class _GroupTimer:
    def __init__(self, group: TimerGroup, callback: Callable[[], None]):
        self._group = group
        self._callback = callback
        self._inner: TimerHandle | None = None
        self._done = False

    def cancel(self) -> None:
        if self._done:
            return
        self._done = True
        if self._inner is not None:
            self._inner.cancel()
        self._group._discard(self)

    def _fire(self) -> None:
        if self._done:
            return
        self._done = True
        self._group._discard(self)
        try:
            self._callback()
        except Exception as ex:
            logger.error(f"Timer callback failed in {self._group.name}: {ex}")


class TimerGroup:
    """A set of timers with a shared lifetime.

    ``cancel_all`` is idempotent; once it has run no pending callback fires
    and new timers are refused.
    """

    def __init__(self, scheduler: Scheduler, *, name: str = "timers"):
        self._scheduler = scheduler
        self.name = name
        self._timers: set[_GroupTimer] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._timers)

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        if self._closed:
            logger.debug(f"Ignoring timer scheduled on closed group {self.name}")
            return _DeadHandle()
        timer = _GroupTimer(self, callback)
        self._timers.add(timer)
        timer._inner = self._scheduler.call_later(delay, timer._fire)
        return timer

    def cancel_all(self) -> None:
        self._closed = True
        for timer in list(self._timers):
            timer.cancel()
        self._timers.clear()

    def _discard(self, timer: _GroupTimer) -> None:
        self._timers.discard(timer)
