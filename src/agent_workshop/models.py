from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SessionStatus = Literal["active", "completed", "cancelled"]
AgentStatus = Literal["spawning", "thinking", "working", "waiting", "chatting", "sleeping", "done", "error"]
EventType = Literal["spawn", "thinking", "tool_call", "tool_result", "output", "chat", "task_update", "file_change"]
Complexity = Literal["solo", "team"]

AGENT_STATUSES: frozenset[str] = frozenset(
    {"spawning", "thinking", "working", "waiting", "chatting", "sleeping", "done", "error"}
)
TERMINAL_AGENT_STATUSES: frozenset[str] = frozenset({"done", "error"})
TERMINAL_SESSION_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})

DEFAULT_ROLE_NAME = "Worker"


@dataclass(frozen=True)
class AppliedOptions:
    agent: str | None = None
    model: str | None = None
    permission_mode: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"agent": self.agent, "model": self.model, "permissionMode": self.permission_mode}
        return {k: v for k, v in data.items() if v}


@dataclass(frozen=True)
class PlanRole:
    name: str
    focus: str = ""
    runtime: str | None = None


@dataclass(frozen=True)
class TaskNode:
    id: str
    label: str
    assignee: str = ""
    depends_on: tuple[str, ...] = ()
    status: str = "pending"


@dataclass(frozen=True)
class TaskPlan:
    complexity: Complexity
    roles: tuple[PlanRole, ...] = ()
    task_graph: tuple[TaskNode, ...] = ()
    agent_count: int = 1
    runtime_recommendation: str | None = None
    estimated_duration: str | None = None

    @property
    def is_team(self) -> bool:
        return self.complexity == "team"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskPlan:
        """Build a plan from the planner's camelCase JSON, tolerating missing fields."""
        complexity = str(data.get("complexity", "solo")).strip().lower()
        if complexity not in ("solo", "team"):
            complexity = "solo"
        roles = tuple(
            PlanRole(
                name=str(r.get("name") or DEFAULT_ROLE_NAME),
                focus=str(r.get("focus") or ""),
                runtime=r.get("runtime") or None,
            )
            for r in data.get("roles") or []
            if isinstance(r, dict)
        )
        nodes = tuple(
            TaskNode(
                id=str(n.get("id") or f"task-{i}"),
                label=str(n.get("label") or ""),
                assignee=str(n.get("assignee") or ""),
                depends_on=tuple(str(d) for d in n.get("dependsOn") or []),
                status=str(n.get("status") or "pending"),
            )
            for i, n in enumerate(data.get("taskGraph") or [])
            if isinstance(n, dict)
        )
        return cls(
            complexity=complexity,  # type: ignore[arg-type]
            roles=roles,
            task_graph=nodes,
            agent_count=int(data.get("agentCount") or max(1, len(roles))),
            runtime_recommendation=data.get("runtimeRecommendation"),
            estimated_duration=data.get("estimatedDuration"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "complexity": self.complexity,
            "agentCount": self.agent_count,
            "roles": [
                {"name": r.name, "focus": r.focus, **({"runtime": r.runtime} if r.runtime else {})}
                for r in self.roles
            ],
            "taskGraph": [
                {
                    "id": n.id,
                    "label": n.label,
                    "assignee": n.assignee,
                    "dependsOn": list(n.depends_on),
                    "status": n.status,
                }
                for n in self.task_graph
            ],
            "runtimeRecommendation": self.runtime_recommendation,
            "estimatedDuration": self.estimated_duration,
        }


@dataclass(frozen=True)
class Session:
    id: str
    project_id: str
    task: str
    runtime: str
    started_at: float
    status: SessionStatus = "active"
    plan: TaskPlan | None = None
    applied_options: AppliedOptions | None = None
    external_session_id: str | None = None


@dataclass(frozen=True)
class Agent:
    id: str
    session_id: str
    name: str
    role: str
    avatar: str
    color: str
    quirk: str
    runtime: str
    spawned_at: float
    status: AgentStatus = "spawning"
    finished_at: float | None = None
    parent_agent_id: str | None = None
    tools_used: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.parent_agent_id is None


@dataclass(frozen=True)
class AgentEvent:
    id: str
    timestamp: float
    agent_id: str
    agent_name: str
    runtime: str
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    funny_status: str | None = None


@dataclass(frozen=True)
class SessionSnapshot:
    session: Session
    agents: tuple[Agent, ...]
    events: tuple[AgentEvent, ...]
    last_event_at: float = 0.0

    @property
    def root_agent(self) -> Agent | None:
        return next((a for a in self.agents if a.is_root), None)
