from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class Preferences:
    """User toggles read at the moment they matter, so changes apply immediately."""

    auto_learn: bool = True
    force_team_mode: bool = False


@dataclass
class RuntimeEnv:
    backend_token: str | None


@dataclass
class AppConfig:
    backend_url: str
    project_id: str | None
    default_runtime: str
    auto_learn: bool
    force_team_mode: bool
    agent: str | None
    model: str | None
    permission_mode: str | None
    poll_interval_seconds: float
    stall_threshold_seconds: float
    request_timeout_seconds: float
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _optional_str(value: object) -> str | None:
    return str(value or "").strip() or None


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        backend_url=str(config.get("BackendUrl", "http://127.0.0.1:7420")).rstrip("/"),
        project_id=_optional_str(config.get("ProjectId")),
        default_runtime=str(config.get("DefaultRuntime", "claude-code")).strip().lower(),
        auto_learn=_to_bool(config.get("AutoLearn", True), default=True),
        force_team_mode=_to_bool(config.get("ForceTeamMode", False), default=False),
        agent=_optional_str(config.get("Agent")),
        model=_optional_str(config.get("Model")),
        permission_mode=_optional_str(config.get("PermissionMode")),
        poll_interval_seconds=float(config.get("PollIntervalSeconds", 0.25)),
        stall_threshold_seconds=float(config.get("StallThresholdSeconds", 15.0)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30.0)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(backend_token=os.environ.get("WORKSHOP_BACKEND_TOKEN") or None)
