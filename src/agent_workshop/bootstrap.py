from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from agent_workshop.app_config import AppConfig, Preferences, RuntimeEnv
from agent_workshop.backend import LocalEventChannel
from agent_workshop.backend_client import HttpBackendClient, PollingEventSource, create_http_client
from agent_workshop.exceptions import DeploymentError
from agent_workshop.logging_config import setup_logging
from agent_workshop.models import AppliedOptions, SessionSnapshot
from agent_workshop.orchestrator import TeamOrchestrator
from agent_workshop.scheduling import LoopScheduler
from agent_workshop.state import SessionRegistry


@dataclass
class AppRuntime:
    orchestrator: TeamOrchestrator
    backend: HttpBackendClient
    event_source: PollingEventSource
    preferences: Preferences
    log_descriptions: list[str]

    async def close(self) -> None:
        self.orchestrator.close()
        await self.event_source.close()
        await self.backend.close()


async def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    on_snapshot: Callable[[SessionSnapshot], None] | None = None,
    on_error: Callable[[DeploymentError], None] | None = None,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    backend = HttpBackendClient(
        create_http_client(app.backend_url, env.backend_token, timeout=app.request_timeout_seconds)
    )
    channel = LocalEventChannel()
    event_source = PollingEventSource(backend, channel, poll_interval_seconds=app.poll_interval_seconds)

    scheduler = LoopScheduler()
    preferences = Preferences(auto_learn=app.auto_learn, force_team_mode=app.force_team_mode)
    options = None
    if app.agent or app.model or app.permission_mode:
        options = AppliedOptions(agent=app.agent, model=app.model, permission_mode=app.permission_mode)

    orchestrator = TeamOrchestrator(
        backend=backend,
        channel=channel,
        registry=SessionRegistry(scheduler),
        preferences=preferences,
        scheduler=scheduler,
        default_runtime=app.default_runtime,
        task_options=options,
        stall_threshold_seconds=app.stall_threshold_seconds,
        on_snapshot=on_snapshot,
        on_error=on_error,
    )
    orchestrator.project_id = app.project_id

    await event_source.start()

    return AppRuntime(
        orchestrator=orchestrator,
        backend=backend,
        event_source=event_source,
        preferences=preferences,
        log_descriptions=log_descriptions,
    )
