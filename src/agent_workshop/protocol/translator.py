"""Translate raw streaming records from an agent process into canonical events.

The agent CLI emits one JSON record per line. Known record kinds:

- ``assistant``: ``message.content[]`` mixing ``text``, ``thinking`` and
  ``tool_use`` blocks
- ``user``: ``message.content[]`` carrying ``tool_result`` blocks
- ``result``: the final record of a run, with cost data
- ``system``: initialization metadata

Older CLI versions and non-JSON lines produce flat ``tool_use``,
``tool_result``, ``thinking`` or plain text records. Anything else degrades to
an ``output`` event; translation never raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agent_workshop.models import AgentStatus, EventType

MAX_TOOL_RESULT_CHARS = 300


@dataclass(frozen=True)
class ParsedEvent:
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)


# Recognized record shapes. ``classify_record`` picks exactly one.


@dataclass(frozen=True)
class AssistantTurn:
    raw: dict[str, Any]
    blocks: tuple[dict[str, Any], ...] | None


@dataclass(frozen=True)
class UserTurn:
    raw: dict[str, Any]
    blocks: tuple[dict[str, Any], ...] | None


@dataclass(frozen=True)
class FinalResult:
    raw: dict[str, Any]


@dataclass(frozen=True)
class SystemInit:
    raw: dict[str, Any]


@dataclass(frozen=True)
class FlatRecord:
    event_type: EventType
    raw: dict[str, Any]


@dataclass(frozen=True)
class Unrecognized:
    raw: dict[str, Any]


Record = AssistantTurn | UserTurn | FinalResult | SystemInit | FlatRecord | Unrecognized

_FLAT_KINDS: dict[str, EventType] = {
    "tool_use": "tool_call",
    "tool_result": "tool_result",
    "thinking": "thinking",
}

_RECORD_KIND_STATUS: dict[str, AgentStatus] = {
    "assistant": "working",
    "user": "working",
    "result": "working",
    "tool_use": "working",
    "tool_result": "working",
    "output": "working",
    "thinking": "thinking",
}

_EVENT_STATUS: dict[str, AgentStatus] = {
    "tool_call": "working",
    "tool_result": "working",
    "output": "working",
    "thinking": "thinking",
}


def _content_blocks(raw: dict[str, Any]) -> tuple[dict[str, Any], ...] | None:
    message = raw.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        return ()
    return tuple(block for block in content if isinstance(block, dict))


def classify_record(record_kind: str, raw_payload: object) -> Record:
    raw = raw_payload if isinstance(raw_payload, dict) else {"value": raw_payload}
    kind = record_kind if isinstance(record_kind, str) else ""

    if kind == "assistant":
        return AssistantTurn(raw, _content_blocks(raw))
    if kind == "user":
        return UserTurn(raw, _content_blocks(raw))
    if kind == "result":
        return FinalResult(raw)
    if kind == "system":
        return SystemInit(raw)
    if kind in _FLAT_KINDS:
        return FlatRecord(_FLAT_KINDS[kind], raw)
    return Unrecognized(raw)


def translate(record_kind: str, raw_payload: object) -> list[ParsedEvent]:
    record = classify_record(record_kind, raw_payload)

    if isinstance(record, AssistantTurn):
        if record.blocks is None:
            return [ParsedEvent("output", record.raw)]
        return _translate_assistant_blocks(record.blocks)

    if isinstance(record, UserTurn):
        if record.blocks is None:
            return [ParsedEvent("tool_result", record.raw)]
        return [_translate_tool_result(b) for b in record.blocks if b.get("type") == "tool_result"]

    if isinstance(record, FinalResult):
        return [_translate_final_result(record.raw)]

    if isinstance(record, SystemInit):
        return []

    if isinstance(record, FlatRecord):
        return [ParsedEvent(record.event_type, record.raw)]

    text = record.raw.get("text")
    if isinstance(text, str) and text:
        return [ParsedEvent("output", {"text": text})]
    return [ParsedEvent("output", record.raw)]


def _translate_assistant_blocks(blocks: tuple[dict[str, Any], ...]) -> list[ParsedEvent]:
    events: list[ParsedEvent] = []
    for block in blocks:
        block_type = block.get("type")
        if block_type == "tool_use":
            events.append(
                ParsedEvent(
                    "tool_call",
                    {"tool": block.get("name"), "input": block.get("input"), "tool_use_id": block.get("id")},
                )
            )
        elif block_type == "thinking":
            text = _as_text(block.get("thinking"))
            if text.strip():
                events.append(ParsedEvent("thinking", {"text": text}))
        elif block_type == "text":
            text = _as_text(block.get("text"))
            if text.strip():
                events.append(ParsedEvent("output", {"text": text}))
    return events


def _translate_tool_result(block: dict[str, Any]) -> ParsedEvent:
    payload: dict[str, Any] = {
        "result": _flatten_content(block.get("content"))[:MAX_TOOL_RESULT_CHARS],
        "tool_use_id": block.get("tool_use_id"),
    }
    if block.get("is_error"):
        payload["is_error"] = True
    return ParsedEvent("tool_result", payload)


def _translate_final_result(raw: dict[str, Any]) -> ParsedEvent:
    payload: dict[str, Any] = {"status": "completed", "is_final": True}
    cost = raw.get("total_cost_usd", raw.get("cost_usd"))
    if isinstance(cost, (int, float)) and not isinstance(cost, bool):
        payload["cost"] = float(cost)
    result = raw.get("result")
    if isinstance(result, str) and result.strip():
        payload["text"] = result
    return ParsedEvent("output", payload)


def _as_text(value: object) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _flatten_content(content: object) -> str:
    # tool_result content is either a string or a list of {"type": "text", "text": ...} blocks
    if isinstance(content, list):
        parts = [
            _as_text(item.get("text"))
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        return "\n".join(p for p in parts if p)
    return _as_text(content)


def record_kind_status(record_kind: str) -> AgentStatus | None:
    return _RECORD_KIND_STATUS.get(record_kind)


def event_status(event_type: str) -> AgentStatus | None:
    return _EVENT_STATUS.get(event_type)
