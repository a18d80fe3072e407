from agent_workshop.state.machine import SessionStateMachine
from agent_workshop.state.registry import SessionRegistry

__all__ = [
    "SessionRegistry",
    "SessionStateMachine",
]
