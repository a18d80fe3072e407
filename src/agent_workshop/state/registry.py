from __future__ import annotations

from loguru import logger

from agent_workshop.models import SessionSnapshot
from agent_workshop.scheduling import Scheduler, TimerGroup
from agent_workshop.state.machine import SessionStateMachine


class SessionRegistry:
    """Working memory: the state machines of sessions the user can still see."""

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._machines: dict[str, SessionStateMachine] = {}
        self._clear_timers = TimerGroup(scheduler, name="session clear")
        self._active_session_id: str | None = None

    @property
    def active_session_id(self) -> str | None:
        return self._active_session_id

    @property
    def active(self) -> SessionStateMachine | None:
        if self._active_session_id is None:
            return None
        return self._machines.get(self._active_session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._machines

    def __len__(self) -> int:
        return len(self._machines)

    def get(self, session_id: str) -> SessionStateMachine | None:
        return self._machines.get(session_id)

    def register(self, machine: SessionStateMachine, *, activate: bool = True) -> None:
        if machine.session_id in self._machines:
            raise ValueError(f"Session already registered: {machine.session_id}")
        self._machines[machine.session_id] = machine
        if activate:
            self._active_session_id = machine.session_id

    def snapshot(self) -> SessionSnapshot | None:
        machine = self.active
        return machine.snapshot() if machine is not None else None

    def clear(self, session_id: str) -> bool:
        machine = self._machines.pop(session_id, None)
        if machine is None:
            return False
        machine.dispose()
        if self._active_session_id == session_id:
            self._active_session_id = None
        logger.debug(f"Cleared session {session_id} from working memory")
        return True

    def clear_later(self, session_id: str, delay_seconds: float) -> None:
        self._clear_timers.schedule(delay_seconds, lambda: self.clear(session_id))

    def close(self) -> None:
        self._clear_timers.cancel_all()
        for session_id in list(self._machines):
            self.clear(session_id)
