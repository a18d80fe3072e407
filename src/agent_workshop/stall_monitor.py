"""Detect when an active session's event stream goes silent.

A silent stream usually means the agent is blocked waiting for input
(a permission prompt, a question) rather than working.
"""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from agent_workshop.scheduling import Scheduler, TimerHandle

STALL_THRESHOLD_SECONDS = 15.0
POLL_INTERVAL_SECONDS = 3.0


def is_stalled(
    last_event_at: float,
    is_active: bool,
    now: float,
    threshold_seconds: float = STALL_THRESHOLD_SECONDS,
) -> bool:
    # last_event_at == 0 means nothing has been observed yet, which is not staleness
    return is_active and last_event_at > 0 and (now - last_event_at) >= threshold_seconds


class StallMonitor:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        threshold_seconds: float = STALL_THRESHOLD_SECONDS,
        on_change: Callable[[bool], None] | None = None,
    ):
        self._scheduler = scheduler
        self._poll_interval_seconds = poll_interval_seconds
        self._threshold_seconds = threshold_seconds
        self._on_change = on_change
        self._last_event_at = 0.0
        self._is_active = False
        self._stalled = False
        self._handle: TimerHandle | None = None
        self._generation = 0

    @property
    def stalled(self) -> bool:
        return self._stalled

    @property
    def is_polling(self) -> bool:
        return self._handle is not None

    def update(self, last_event_at: float, is_active: bool) -> None:
        self._last_event_at = last_event_at
        self._is_active = is_active
        if not is_active:
            self._stop_polling()
            self._set_stalled(False)
            return
        if self._handle is None:
            self._schedule_poll()

    def close(self) -> None:
        self._is_active = False
        self._stop_polling()
        self._set_stalled(False)

    def _schedule_poll(self) -> None:
        generation = self._generation
        self._handle = self._scheduler.call_later(self._poll_interval_seconds, lambda: self._poll(generation))

    def _stop_polling(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _poll(self, generation: int) -> None:
        if generation != self._generation or not self._is_active:
            return
        self._set_stalled(
            is_stalled(
                self._last_event_at,
                self._is_active,
                self._scheduler.time(),
                self._threshold_seconds,
            )
        )
        self._schedule_poll()

    def _set_stalled(self, value: bool) -> None:
        if value == self._stalled:
            return
        self._stalled = value
        if value:
            logger.warning(
                f"No agent events for {self._threshold_seconds:.0f}s; session may be waiting for input"
            )
        if self._on_change is not None:
            try:
                self._on_change(value)
            except Exception as ex:
                logger.error(f"Stall change listener failed: {ex}")
