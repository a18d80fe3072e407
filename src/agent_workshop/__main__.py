import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from agent_workshop.app_config import load_json_config, parse_app_config, resolve_runtime_env
from agent_workshop.bootstrap import bootstrap_runtime
from agent_workshop.commands.router import CommandRouter
from agent_workshop.exceptions import DeploymentError
from agent_workshop.models import SessionSnapshot
from agent_workshop.services.session_presenter import SessionPresenter

LINE_PREFIX = "workshop> "

HELP_LINES = [
    "Commands:",
    "  /help     show this help",
    "  /approve  deploy the proposed team",
    "  /decline  discard the proposed team",
    "  /stop     stop the running session",
    "  /status   show the session and its agents",
    "Anything else is deployed as a task. Type 'exit' to quit.",
]


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    if not app.project_id:
        print("ProjectId is required in config.json.", file=sys.stderr)
        sys.exit(1)

    presenter = SessionPresenter(line_prefix=LINE_PREFIX)

    def on_snapshot(snapshot: SessionSnapshot) -> None:
        for line in presenter.new_event_lines(snapshot):
            print(line)

    def on_error(error: DeploymentError) -> None:
        print(f"{LINE_PREFIX}{error}")

    runtime = await bootstrap_runtime(app, env, on_snapshot=on_snapshot, on_error=on_error)
    orchestrator = runtime.orchestrator

    async def on_help() -> None:
        for line in HELP_LINES:
            print(f"{LINE_PREFIX}{line}")

    async def on_approve() -> None:
        plan = orchestrator.pending_plan
        if plan is None:
            print(f"{LINE_PREFIX}No plan waiting for approval.")
            return
        await orchestrator.deploy_approved_plan(plan)

    async def on_decline() -> None:
        if not orchestrator.is_plan_preview:
            print(f"{LINE_PREFIX}No plan waiting for approval.")
            return
        orchestrator.decline_plan()
        print(f"{LINE_PREFIX}Plan discarded.")

    async def on_stop() -> None:
        await orchestrator.stop()

    async def on_status() -> None:
        lines = presenter.format_status_lines(orchestrator.snapshot(), stalled=orchestrator.is_stalled)
        for line in lines:
            print(line)

    def on_unknown(command: str) -> None:
        print(f"{LINE_PREFIX}Unknown command: {command} (try /help)")

    router = CommandRouter(
        on_help=on_help,
        on_approve=on_approve,
        on_decline=on_decline,
        on_stop=on_stop,
        on_status=on_status,
        on_unknown=on_unknown,
    )

    print(f"agent-workshop (project {app.project_id}, runtime {app.default_runtime}; '/help' for commands)")
    print(f"Backend: {app.backend_url}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                # the loop keeps polling backend events while waiting for input
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                if await router.try_handle(trimmed):
                    continue
                if orchestrator.is_session_active:
                    print(f"{LINE_PREFIX}A session is already running; /stop it first.")
                    continue
                await orchestrator.deploy(trimmed)
                plan = orchestrator.pending_plan
                if plan is not None:
                    for line in presenter.format_plan_lines(plan):
                        print(line)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
