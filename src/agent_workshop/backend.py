from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from agent_workshop.models import AppliedOptions, TaskPlan

AGENT_EVENT = "agent:event"
SESSION_COMPLETED = "session:completed"
SESSION_CANCELLED = "session:cancelled"
SESSION_EXTERNAL_ID = "session:external_id"

EventHandler = Callable[[dict[str, Any]], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class AgentBackend(Protocol):
    async def start_solo(
        self, project_id: str, task: str, runtime: str, options: AppliedOptions | None = None
    ) -> str:
        """Spawn a single agent process. Returns the new session id."""
        ...

    async def stop_solo(self, session_id: str) -> None: ...

    async def start_team(
        self, project_id: str, task_label: str, plan: TaskPlan, options: AppliedOptions | None = None
    ) -> str:
        """Spawn a coordinated team for ``plan``. Returns the new session id."""
        ...

    async def stop_team(self, session_id: str) -> None: ...

    async def analyze_task(self, task: str, project_id: str) -> TaskPlan: ...

    async def build_project_context(self, project_id: str) -> str: ...

    async def extract_session_memories(self, session_id: str) -> None: ...


@runtime_checkable
class EventChannel(Protocol):
    async def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe: ...


class LocalEventChannel:
    """In-process event channel. Delivery is synchronous and in publish order."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    async def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe:
        handlers = self._handlers.setdefault(event_name, [])
        handlers.append(handler)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(payload)
                delivered += 1
            except Exception as ex:
                logger.error(f"Handler for {event_name} failed: {ex}")
        return delivered
