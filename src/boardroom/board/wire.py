"""Server-sent event framing and board meeting event payloads.

Every protocol event goes out as one frame::

    data: {"type": "<event type>", "data": {...}, "timestamp": "<ISO-8601>"}\\n\\n

Heartbeats are SSE comment frames (``: heartbeat``) that clients ignore.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.boardroom.board.personas import persona_name
from src.boardroom.board.schemas import (
    ActionItem,
    AgendaSectionDisplay,
    ParsedPersonaPayload,
    PersonaTurn,
)

HEARTBEAT_FRAME = ": heartbeat\n\n"

DEFAULT_FAILURE_MESSAGE = "Board meeting orchestration failed"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StreamEventType(str, Enum):
    AGENDA = "agenda"
    PERSONA_RESPONSE = "persona-response"
    ACTION_ITEM = "action-item"
    SUMMARY = "summary"
    METRICS = "metrics"
    COMPLETED = "completed"
    ERROR = "error"


def iso_timestamp(value: datetime | None = None) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class StreamEvent:
    type: StreamEventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def encode(self) -> str:
        return encode_event(self)


def encode_event(event: StreamEvent) -> str:
    payload = {
        "type": event.type.value,
        "data": event.data,
        "timestamp": iso_timestamp(event.timestamp),
    }
    return f"data: {json.dumps(payload, default=str)}\n\n"


# ── Event Builders ───────────────────────────────────────────────────────────


def agenda_event(meeting_id: str, section: AgendaSectionDisplay) -> StreamEvent:
    return StreamEvent(
        StreamEventType.AGENDA,
        {
            "meetingId": meeting_id,
            "sectionId": section.id,
            "title": section.title,
            "personaId": section.persona_id.value,
            "status": section.status.value,
        },
    )


def persona_response_event(
    meeting_id: str, turn: PersonaTurn, payload: ParsedPersonaPayload
) -> StreamEvent:
    return StreamEvent(
        StreamEventType.PERSONA_RESPONSE,
        {
            "meetingId": meeting_id,
            "personaId": turn.persona_id.value,
            "personaName": persona_name(turn.persona_id),
            "sequence": turn.sequence,
            "summary": payload.summary,
            "risks": payload.risks,
            "opportunities": payload.opportunities,
            "recommendations": [
                rec.model_dump(mode="json", by_alias=True, exclude_none=True)
                for rec in payload.recommendations
            ],
            "metrics": payload.metrics,
            "rawContent": turn.content,
            "createdAt": iso_timestamp(turn.created_at),
        },
    )


def action_item_event(meeting_id: str, item: ActionItem) -> StreamEvent:
    data = item.to_wire()
    data["createdAt"] = iso_timestamp(item.created_at)
    if item.due_date is not None:
        data["dueDate"] = iso_timestamp(item.due_date)
    return StreamEvent(StreamEventType.ACTION_ITEM, {"meetingId": meeting_id, "item": data})


def summary_event(meeting_id: str, summary: Any) -> StreamEvent:
    return StreamEvent(StreamEventType.SUMMARY, {"meetingId": meeting_id, "summary": summary})


def metrics_event(meeting_id: str, metrics: Any, token_usage: Any) -> StreamEvent:
    return StreamEvent(
        StreamEventType.METRICS,
        {"meetingId": meeting_id, "metrics": metrics, "tokenUsage": token_usage},
    )


def completed_event(meeting_id: str, ended_at: datetime) -> StreamEvent:
    return StreamEvent(
        StreamEventType.COMPLETED,
        {"meetingId": meeting_id, "endedAt": iso_timestamp(ended_at)},
    )


def error_event(meeting_id: str, message: str | None = None) -> StreamEvent:
    return StreamEvent(
        StreamEventType.ERROR,
        {"meetingId": meeting_id, "message": message or DEFAULT_FAILURE_MESSAGE},
    )
