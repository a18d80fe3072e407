from __future__ import annotations


class WorkshopError(Exception):
    """Base class for errors raised inside agent_workshop."""


class BackendError(WorkshopError):
    def __init__(self, operation: str, message: str, *, status_code: int | None = None):
        self.operation = operation
        self.status_code = status_code
        suffix = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{operation} failed{suffix}: {message}")


class DeploymentError(WorkshopError):
    """A start/stop/analyze call failed; surfaced to whoever triggered the action."""

    def __init__(self, action: str, cause: BaseException):
        self.action = action
        self.cause = cause
        super().__init__(f"{action} failed: {cause}")


class StateTransitionError(WorkshopError):
    pass
