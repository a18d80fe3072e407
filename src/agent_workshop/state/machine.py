from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import replace
from typing import Any
from uuid import uuid4

from agent_workshop.exceptions import StateTransitionError
from agent_workshop.logging_config import session_logger
from agent_workshop.models import (
    AGENT_STATUSES,
    TERMINAL_AGENT_STATUSES,
    TERMINAL_SESSION_STATUSES,
    Agent,
    AgentEvent,
    AgentStatus,
    EventType,
    Session,
    SessionSnapshot,
    SessionStatus,
)
from agent_workshop.personality import status_message
from agent_workshop.scheduling import Scheduler, TimerGroup

SnapshotListener = Callable[[SessionSnapshot], None]


class SessionStateMachine:
    """Canonical state of one session: the session record, its agents and its events.

    Session status only moves ``active -> completed | cancelled``. Agent
    status moves forward from ``spawning`` and stops at ``done`` / ``error``;
    re-applying the current status is a no-op.
    """

    def __init__(self, session: Session, scheduler: Scheduler, *, rng: random.Random | None = None):
        self._session = session
        self._scheduler = scheduler
        self._rng = rng
        self._agents: dict[str, Agent] = {}
        self._events: list[AgentEvent] = []
        self._listeners: list[SnapshotListener] = []
        self._last_event_at = 0.0
        self._alive = True
        self._log = session_logger(session.id)
        self.timers = TimerGroup(scheduler, name=f"session {session.id}")

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def session(self) -> Session:
        return self._session

    @property
    def agents(self) -> tuple[Agent, ...]:
        return tuple(self._agents.values())

    @property
    def events(self) -> tuple[AgentEvent, ...]:
        return tuple(self._events)

    @property
    def last_event_at(self) -> float:
        return self._last_event_at

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def is_active(self) -> bool:
        return self._alive and self._session.status == "active"

    @property
    def root_agent(self) -> Agent | None:
        return next((a for a in self._agents.values() if a.parent_agent_id is None), None)

    def now(self) -> float:
        return self._scheduler.time()

    def get_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session=self._session,
            agents=self.agents,
            events=self.events,
            last_event_at=self._last_event_at,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- agents --

    def add_agent(self, agent: Agent) -> Agent:
        self._require_alive()
        if agent.session_id != self._session.id:
            raise StateTransitionError(f"Agent {agent.id} belongs to session {agent.session_id}")
        if agent.id in self._agents:
            raise StateTransitionError(f"Agent already exists: {agent.id}")
        if agent.parent_agent_id is not None and agent.parent_agent_id not in self._agents:
            raise StateTransitionError(f"Unknown parent agent {agent.parent_agent_id} for {agent.id}")
        self._agents[agent.id] = agent
        self._log.debug(f"Agent {agent.name} ({agent.role}) joined session {self._session.id}")
        self._notify()
        return agent

    def transition_agent(self, agent_id: str, status: AgentStatus) -> bool:
        """Move one agent to ``status``. Returns False when nothing changed."""
        self._require_alive()
        changed = self._apply_agent_status(agent_id, status)
        if changed:
            self._notify()
        return changed

    def transition_all_agents(self, status: AgentStatus) -> int:
        self._require_alive()
        changed = sum(1 for agent_id in list(self._agents) if self._apply_agent_status(agent_id, status))
        if changed:
            self._notify()
        return changed

    def _apply_agent_status(self, agent_id: str, status: AgentStatus) -> bool:
        if status not in AGENT_STATUSES:
            raise StateTransitionError(f"Unknown agent status: {status!r}")
        agent = self._agents.get(agent_id)
        if agent is None:
            raise StateTransitionError(f"Unknown agent: {agent_id}")
        if agent.status == status:
            return False
        if agent.status in TERMINAL_AGENT_STATUSES:
            self._log.debug(f"Ignoring {agent.status} -> {status} for finished agent {agent.name}")
            return False
        if status == "spawning":
            raise StateTransitionError(f"Agent {agent.name} cannot return to spawning")

        finished_at = agent.finished_at
        if status in TERMINAL_AGENT_STATUSES and finished_at is None:
            finished_at = self._scheduler.time()
        self._agents[agent_id] = replace(agent, status=status, finished_at=finished_at)
        return True

    # -- events --

    def append_event(
        self,
        agent_id: str,
        event_type: EventType,
        payload: dict[str, Any] | None = None,
    ) -> AgentEvent:
        self._require_alive()
        agent = self._agents.get(agent_id)
        if agent is None:
            raise StateTransitionError(f"Event for unknown agent {agent_id} in session {self._session.id}")
        payload = dict(payload or {})
        event = AgentEvent(
            id=str(uuid4()),
            timestamp=self._scheduler.time(),
            agent_id=agent.id,
            agent_name=agent.name,
            runtime=agent.runtime,
            type=event_type,
            payload=payload,
            funny_status=status_message(agent.name, agent.status, self._rng),
        )
        self._events.append(event)
        if event_type == "tool_call":
            tool = payload.get("tool") or payload.get("name")
            if isinstance(tool, str) and tool and tool not in agent.tools_used:
                self._agents[agent.id] = replace(agent, tools_used=agent.tools_used + (tool,))
        self._notify()
        return event

    def touch(self) -> None:
        """Record that the backend just delivered something for this session."""
        self._require_alive()
        self._last_event_at = self._scheduler.time()
        self._notify()

    # -- session --

    def set_external_session_id(self, external_session_id: str) -> None:
        self._require_alive()
        if self._session.external_session_id == external_session_id:
            return
        self._session = replace(self._session, external_session_id=external_session_id)
        self._notify()

    def complete(self) -> bool:
        return self._end("completed")

    def cancel(self) -> bool:
        return self._end("cancelled")

    def _end(self, status: SessionStatus) -> bool:
        if status not in TERMINAL_SESSION_STATUSES:
            raise StateTransitionError(f"Session cannot end as {status!r}")
        if not self.is_active:
            self._log.debug(f"Session {self._session.id} is already {self._session.status}; ignoring {status}")
            return False
        self.timers.cancel_all()
        self._session = replace(self._session, status=status)
        self._log.info(f"Session {self._session.id} {status}")
        self._notify()
        return True

    def dispose(self) -> None:
        if not self._alive:
            return
        self._alive = False
        self.timers.cancel_all()
        self._listeners.clear()

    def _require_alive(self) -> None:
        if not self._alive:
            raise StateTransitionError(f"Session {self._session.id} has been cleared")

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as ex:
                self._log.error(f"Session listener failed for {self._session.id}: {ex}")
