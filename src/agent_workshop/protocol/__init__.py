from agent_workshop.protocol.translator import (
    ParsedEvent,
    classify_record,
    event_status,
    record_kind_status,
    translate,
)

__all__ = [
    "ParsedEvent",
    "classify_record",
    "event_status",
    "record_kind_status",
    "translate",
]
