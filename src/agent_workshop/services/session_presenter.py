from __future__ import annotations

from agent_workshop.models import Agent, AgentEvent, SessionSnapshot, TaskPlan


class SessionPresenter:
    """Turns session snapshots into terminal lines.

    Keeps a cursor into the event log so each event is printed once even
    though every snapshot carries the full history.
    """

    def __init__(self, *, line_prefix: str, short_id_len: int = 8, max_text_len: int = 120):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._max_text_len = max_text_len
        self._session_id: str | None = None
        self._printed_events = 0

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def new_event_lines(self, snapshot: SessionSnapshot) -> list[str]:
        if snapshot.session.id != self._session_id:
            self._session_id = snapshot.session.id
            self._printed_events = 0
        fresh = snapshot.events[self._printed_events :]
        self._printed_events = len(snapshot.events)
        return [self.format_event(event) for event in fresh]

    def format_event(self, event: AgentEvent) -> str:
        payload = event.payload
        if event.type == "spawn":
            detail = f"joined as {payload.get('role', '?')}"
        elif event.type == "tool_call":
            detail = f"uses {payload.get('tool', '?')}"
        elif event.type == "tool_result":
            marker = "failed" if payload.get("is_error") else "result"
            detail = f"{marker}: {self._clip(str(payload.get('result', '')))}"
        elif event.type == "task_update":
            detail = str(payload.get("message") or payload.get("status", ""))
        elif event.type == "output" and payload.get("is_final"):
            cost = payload.get("cost")
            detail = "finished" if cost is None else f"finished (cost ${float(cost):.4f})"
        else:
            detail = self._clip(str(payload.get("text", "")))
        return f"{self._line_prefix}[{event.agent_name}] {event.type}: {detail}"

    def format_status_lines(self, snapshot: SessionSnapshot | None, *, stalled: bool = False) -> list[str]:
        if snapshot is None:
            return [f"{self._line_prefix}No session."]
        session = snapshot.session
        lines = [
            f"{self._line_prefix}Session [{self.short_id(session.id)}] {session.status}: {session.task}",
        ]
        if stalled:
            lines.append(f"{self._line_prefix}- No activity for a while; the agents may be stuck.")
        for agent in snapshot.agents:
            lines.append(self.format_agent(agent))
        return lines

    def format_agent(self, agent: Agent) -> str:
        indent = "  " if agent.is_root else "    "
        tools = f" tools={','.join(agent.tools_used)}" if agent.tools_used else ""
        return f"{self._line_prefix}{indent}{agent.avatar} {agent.name} ({agent.role}) {agent.status}{tools}"

    def format_plan_lines(self, plan: TaskPlan) -> list[str]:
        lines = [f"{self._line_prefix}Proposed team ({len(plan.roles) or 1} agent(s)):"]
        for role in plan.roles:
            focus = f" - {role.focus}" if role.focus else ""
            lines.append(f"{self._line_prefix}- {role.name}{focus}")
        for node in plan.task_graph:
            after = f" (after {', '.join(node.depends_on)})" if node.depends_on else ""
            lines.append(f"{self._line_prefix}  * {node.label}{after}")
        if plan.estimated_duration:
            lines.append(f"{self._line_prefix}Estimated duration: {plan.estimated_duration}")
        lines.append(f"{self._line_prefix}/approve to deploy, /decline to discard.")
        return lines

    def _clip(self, text: str) -> str:
        text = " ".join(text.split())
        if len(text) <= self._max_text_len:
            return text
        return text[: self._max_text_len - 3] + "..."
