from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import replace

from loguru import logger

from agent_workshop.app_config import Preferences
from agent_workshop.backend import AgentBackend, EventChannel
from agent_workshop.event_router import RAMP_UP_SECONDS, EventRouter, schedule_ramp_up
from agent_workshop.exceptions import DeploymentError
from agent_workshop.models import (
    DEFAULT_ROLE_NAME,
    Agent,
    AppliedOptions,
    PlanRole,
    Session,
    SessionSnapshot,
    TaskPlan,
)
from agent_workshop.personality import generate_personality
from agent_workshop.scheduling import Scheduler, fire_and_forget
from agent_workshop.stall_monitor import STALL_THRESHOLD_SECONDS, StallMonitor
from agent_workshop.state import SessionRegistry, SessionStateMachine

TEAM_STAGGER_SECONDS = 0.5


class TeamOrchestrator:
    """Decide between one agent and a team, and stand the session up.

    Solo plans deploy immediately. Team plans, and solo plans while team mode
    is forced, wait in ``pending_plan`` until ``deploy_approved_plan`` is
    called. Backend failures on start, stop and analysis are logged and kept
    in ``last_error``; they never leave a half-created session behind.
    """

    def __init__(
        self,
        *,
        backend: AgentBackend,
        channel: EventChannel,
        registry: SessionRegistry,
        preferences: Preferences,
        scheduler: Scheduler,
        default_runtime: str = "claude-code",
        task_options: AppliedOptions | None = None,
        stall_threshold_seconds: float = STALL_THRESHOLD_SECONDS,
        on_snapshot: Callable[[SessionSnapshot], None] | None = None,
        on_error: Callable[[DeploymentError], None] | None = None,
        rng: random.Random | None = None,
    ):
        self._backend = backend
        self._channel = channel
        self._registry = registry
        self._preferences = preferences
        self._scheduler = scheduler
        self._default_runtime = default_runtime
        self._task_options = task_options
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._rng = rng
        self._router: EventRouter | None = None
        self._pending_plan: TaskPlan | None = None
        self._pending_task: str | None = None
        self._last_error: DeploymentError | None = None
        self._stall_monitor = StallMonitor(scheduler, threshold_seconds=stall_threshold_seconds)
        self.project_id: str | None = None

    @property
    def pending_plan(self) -> TaskPlan | None:
        return self._pending_plan

    @property
    def is_plan_preview(self) -> bool:
        return self._pending_plan is not None

    @property
    def last_error(self) -> DeploymentError | None:
        return self._last_error

    @property
    def is_stalled(self) -> bool:
        return self._stall_monitor.stalled

    @property
    def is_session_active(self) -> bool:
        machine = self._registry.active
        return machine is not None and machine.is_active

    def snapshot(self) -> SessionSnapshot | None:
        return self._registry.snapshot()

    # -- deployment --

    async def deploy(self, task: str) -> None:
        project_id = self.project_id
        if not project_id:
            logger.error("No active project selected; not deploying")
            return
        self._last_error = None
        # a new task supersedes any plan still waiting for approval
        self.decline_plan()

        fire_and_forget(
            self._backend.build_project_context(project_id),
            f"Context build for project {project_id}",
        )

        try:
            plan = await self._backend.analyze_task(task, project_id)
        except Exception as ex:
            self._fail("Task analysis", ex)
            return
        logger.info(f"Task classified as {plan.complexity} with {len(plan.roles)} role(s)")

        if not plan.is_team and self._preferences.force_team_mode:
            logger.info("Team mode is forced; holding the solo plan for approval")
            self._show_plan_preview(replace(plan, complexity="team"), task)
            return

        if plan.is_team:
            self._show_plan_preview(plan, task)
            return

        await self._deploy_solo(project_id, task, plan)

    async def deploy_approved_plan(self, plan: TaskPlan) -> None:
        project_id = self.project_id
        if not project_id:
            logger.error("No active project selected; not deploying")
            return
        self._last_error = None
        task_text = self._pending_task
        self._pending_plan = None
        self._pending_task = None

        # whatever the planner said, an approved plan runs as a team
        plan = plan if plan.is_team else replace(plan, complexity="team")
        labels = [node.label for node in plan.task_graph if node.label]
        task_label = labels[0] if labels else (task_text or "Team task")
        options = self._task_options

        try:
            session_id = await self._backend.start_team(project_id, task_label, plan, options)
        except Exception as ex:
            self._fail("Team start", ex)
            return

        machine = self._open_session(
            Session(
                id=session_id,
                project_id=project_id,
                task=", ".join(labels) or task_text or task_label,
                runtime=self._default_runtime,
                started_at=self._scheduler.time(),
                plan=plan,
                applied_options=options,
            )
        )

        roles = plan.roles or (PlanRole(name=DEFAULT_ROLE_NAME),)
        root_id = f"agent-{session_id}-0"
        used_names: list[str] = []
        for index, role in enumerate(roles):
            agent = self._spawn_agent(
                machine,
                agent_id=f"agent-{session_id}-{index}",
                role=role.name,
                runtime=role.runtime or self._default_runtime,
                parent_agent_id=None if index == 0 else root_id,
                used_names=used_names,
                spawn_payload={"role": role.name, "focus": role.focus},
            )
            used_names.append(agent.name)

        # members start one after another, in role order
        for index in range(len(roles)):
            schedule_ramp_up(
                machine,
                f"agent-{session_id}-{index}",
                RAMP_UP_SECONDS + index * TEAM_STAGGER_SECONDS,
            )
        logger.info(f"Team session {session_id} deployed with {len(roles)} agent(s)")
        await self._attach_router(machine)

    def decline_plan(self) -> None:
        self._pending_plan = None
        self._pending_task = None

    async def _deploy_solo(self, project_id: str, task: str, plan: TaskPlan) -> None:
        runtime = self._default_runtime
        options = self._task_options
        try:
            session_id = await self._backend.start_solo(project_id, task, runtime, options)
        except Exception as ex:
            self._fail("Task start", ex)
            return

        machine = self._open_session(
            Session(
                id=session_id,
                project_id=project_id,
                task=task,
                runtime=runtime,
                started_at=self._scheduler.time(),
                plan=plan,
                applied_options=options,
            )
        )
        role = plan.roles[0].name if plan.roles else DEFAULT_ROLE_NAME
        agent = self._spawn_agent(
            machine,
            agent_id=f"agent-{session_id}",
            role=role,
            runtime=runtime,
            parent_agent_id=None,
            used_names=[],
            spawn_payload={"role": role},
        )
        schedule_ramp_up(machine, agent.id, RAMP_UP_SECONDS)
        logger.info(f"Solo session {session_id} deployed with {agent.name} as {role}")
        await self._attach_router(machine)

    def _spawn_agent(
        self,
        machine: SessionStateMachine,
        *,
        agent_id: str,
        role: str,
        runtime: str,
        parent_agent_id: str | None,
        used_names: list[str],
        spawn_payload: dict,
    ) -> Agent:
        personality = generate_personality(used_names, self._rng)
        agent = machine.add_agent(
            Agent(
                id=agent_id,
                session_id=machine.session_id,
                name=personality.name,
                role=role,
                avatar=personality.avatar,
                color=personality.color,
                quirk=personality.quirk,
                runtime=runtime,
                spawned_at=machine.now(),
                parent_agent_id=parent_agent_id,
            )
        )
        machine.append_event(agent.id, "spawn", spawn_payload)
        return agent

    def _show_plan_preview(self, plan: TaskPlan, task: str) -> None:
        self._pending_plan = plan
        self._pending_task = task

    # -- session lifetime --

    def _open_session(self, session: Session) -> SessionStateMachine:
        previous = self._registry.active_session_id
        if self._router is not None:
            self._router.close()
            self._router = None
        if previous is not None:
            self._registry.clear(previous)

        machine = SessionStateMachine(session, self._scheduler, rng=self._rng)
        machine.subscribe(self._on_machine_changed)
        self._registry.register(machine)
        return machine

    async def _attach_router(self, machine: SessionStateMachine) -> None:
        router = EventRouter(
            channel=self._channel,
            machine=machine,
            registry=self._registry,
            backend=self._backend,
            preferences=self._preferences,
            rng=self._rng,
        )
        self._router = router
        await router.start()

    def _on_machine_changed(self, snapshot: SessionSnapshot) -> None:
        self._stall_monitor.update(snapshot.last_event_at, snapshot.session.status == "active")
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)

    async def stop(self) -> None:
        machine = self._registry.active
        if machine is None or not machine.is_active:
            logger.info("No running session to stop")
            return
        plan = machine.session.plan
        try:
            if plan is not None and plan.is_team:
                await self._backend.stop_team(machine.session_id)
            else:
                await self._backend.stop_solo(machine.session_id)
        except Exception as ex:
            self._fail("Task stop", ex)
            return
        logger.info(f"Stop requested for session {machine.session_id}")

    def close(self) -> None:
        if self._router is not None:
            self._router.close()
            self._router = None
        self._stall_monitor.close()
        self._registry.close()

    def _fail(self, action: str, ex: Exception) -> None:
        error = DeploymentError(action, ex)
        self._last_error = error
        logger.error(str(error))
        if self._on_error is not None:
            self._on_error(error)
