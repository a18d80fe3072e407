"""Route backend events for one session into its state machine.

A router lives exactly as long as its session is active. It subscribes when
started and unsubscribes when the session completes or is cancelled, when
it is closed, or when the orchestrator activates a different session. A
``closed`` flag is checked in every handler so a delivery that races the
teardown is dropped.
"""

from __future__ import annotations

import random
from typing import Any

from agent_workshop.app_config import Preferences
from agent_workshop.backend import (
    AGENT_EVENT,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    SESSION_EXTERNAL_ID,
    AgentBackend,
    EventChannel,
    EventHandler,
    Unsubscribe,
)
from agent_workshop.logging_config import session_logger
from agent_workshop.models import DEFAULT_ROLE_NAME, Agent
from agent_workshop.personality import generate_personality
from agent_workshop.protocol import event_status, record_kind_status, translate
from agent_workshop.scheduling import fire_and_forget
from agent_workshop.state import SessionRegistry, SessionStateMachine

RAMP_UP_SECONDS = 1.5
CANCEL_CLEAR_DELAY_SECONDS = 3.0
SUBAGENT_TOOLS = frozenset({"Agent", "Task"})


class EventRouter:
    def __init__(
        self,
        *,
        channel: EventChannel,
        machine: SessionStateMachine,
        registry: SessionRegistry,
        backend: AgentBackend,
        preferences: Preferences,
        rng: random.Random | None = None,
    ):
        self._channel = channel
        self._machine = machine
        self._registry = registry
        self._backend = backend
        self._preferences = preferences
        self._rng = rng
        self._unsubscribers: list[Unsubscribe] = []
        self._closed = False
        self._log = session_logger(machine.session_id)

    @property
    def session_id(self) -> str:
        return self._machine.session_id

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        handlers: dict[str, EventHandler] = {
            AGENT_EVENT: self._on_agent_event,
            SESSION_COMPLETED: self._on_session_completed,
            SESSION_CANCELLED: self._on_session_cancelled,
            SESSION_EXTERNAL_ID: self._on_external_id,
        }
        for event_name, handler in handlers.items():
            if self._closed:
                return
            try:
                unsubscribe = await self._channel.subscribe(event_name, self._guarded(handler))
            except Exception as ex:
                self._log.error(f"Failed to subscribe to {event_name} for session {self.session_id}: {ex}")
                continue
            if self._closed:
                # closed while the subscription was being set up
                unsubscribe()
                return
            self._unsubscribers.append(unsubscribe)
        self._log.debug(f"Router for session {self.session_id} listening on {len(self._unsubscribers)} channel(s)")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            try:
                unsubscribe()
            except Exception as ex:
                self._log.warning(f"Unsubscribe failed for session {self.session_id}: {ex}")

    def _guarded(self, handler: EventHandler) -> EventHandler:
        def deliver(data: dict[str, Any]) -> None:
            if self._closed or not isinstance(data, dict):
                return
            if data.get("session_id") != self.session_id:
                return
            handler(data)

        return deliver

    # -- handlers --

    def _on_agent_event(self, data: dict[str, Any]) -> None:
        record_kind = str(data.get("event_type", ""))
        try:
            self._apply_record(record_kind, data.get("payload"))
        except Exception as ex:
            self._log.error(f"Skipping {record_kind!r} record for session {self.session_id}: {ex}")

    def _apply_record(self, record_kind: str, raw_payload: object) -> None:
        machine = self._machine
        if not machine.is_active:
            return
        target = machine.root_agent
        if target is None:
            self._log.warning(f"No agent to attribute {record_kind!r} record to in session {self.session_id}")
            return

        machine.touch()
        parsed = translate(record_kind, raw_payload)
        for entry in parsed:
            machine.append_event(target.id, entry.type, entry.payload)
            status = event_status(entry.type)
            if status is not None:
                machine.transition_agent(target.id, status)
            if entry.type == "tool_call" and entry.payload.get("tool") in SUBAGENT_TOOLS:
                self._spawn_subagent(target, entry.payload.get("input"))

        if not parsed:
            status = record_kind_status(record_kind)
            if status is not None:
                machine.transition_agent(target.id, status)

    def _spawn_subagent(self, parent: Agent, tool_input: object) -> None:
        details = tool_input if isinstance(tool_input, dict) else {}
        subagent_type = str(details.get("subagent_type") or "Agent")
        role = DEFAULT_ROLE_NAME if subagent_type == "Agent" else subagent_type
        machine = self._machine
        personality = generate_personality((a.name for a in machine.agents), self._rng)
        agent = machine.add_agent(
            Agent(
                id=f"agent-{self.session_id}-sub-{len(machine.agents)}",
                session_id=self.session_id,
                name=personality.name,
                role=role,
                avatar=personality.avatar,
                color=personality.color,
                quirk=personality.quirk,
                runtime=parent.runtime,
                spawned_at=machine.now(),
                parent_agent_id=parent.id,
            )
        )
        machine.append_event(agent.id, "spawn", {"role": role, "description": str(details.get("description") or "")})
        self._log.info(f"Sub-agent {agent.name} ({role}) spawned by {parent.name}")
        schedule_ramp_up(machine, agent.id, RAMP_UP_SECONDS)

    def _on_session_completed(self, data: dict[str, Any]) -> None:
        machine = self._machine
        if not machine.is_active:
            return
        root = machine.root_agent
        machine.transition_all_agents("done")
        if root is not None:
            lead_name = root.name
            payload: dict[str, Any] = {
                "status": "completed",
                "message": f'ALL DONE! {lead_name}: "The work is finished."',
            }
            if data.get("needs_input"):
                payload["needs_input"] = True
                payload["last_result"] = data.get("last_result")
            machine.append_event(root.id, "task_update", payload)

        if self._preferences.auto_learn:
            fire_and_forget(
                self._backend.extract_session_memories(self.session_id),
                f"Memory extraction for session {self.session_id}",
            )

        machine.complete()
        self.close()
        self._registry.clear_later(self.session_id, 0.0)

    def _on_session_cancelled(self, data: dict[str, Any]) -> None:
        machine = self._machine
        if not machine.is_active:
            return
        machine.transition_all_agents("done")
        machine.cancel()
        self.close()
        self._registry.clear_later(self.session_id, CANCEL_CLEAR_DELAY_SECONDS)

    def _on_external_id(self, data: dict[str, Any]) -> None:
        external_id = str(data.get("external_session_id") or "").strip()
        if external_id and self._machine.alive:
            self._machine.set_external_session_id(external_id)


def schedule_ramp_up(machine: SessionStateMachine, agent_id: str, delay_seconds: float) -> None:
    """Move a freshly spawned agent to ``working`` after ``delay_seconds``."""

    def ramp_up() -> None:
        if not machine.is_active or machine.get_agent(agent_id) is None:
            return
        machine.transition_agent(agent_id, "working")

    machine.timers.schedule(delay_seconds, ramp_up)

