"""Pydantic v2 schemas for the board meeting domain.

Defines the data contracts shared by the HTTP layer, the stream session,
the worker and the meeting store: agenda sections, meetings, persona turns,
action items, parsed persona payloads, meeting summary/metrics, and job
handles. Attribute names are snake_case; the wire and persisted JSON use
camelCase through the alias generator on ``CamelModel``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────────


class PersonaId(str, Enum):
    """Board personas that can own an agenda section."""

    CEO = "ceo"
    CFO = "cfo"
    CMO = "cmo"


class SectionStatus(str, Enum):
    """Progress of one agenda section. Only moves forward."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ActionItemStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ActionItemPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class JobState(str, Enum):
    """Background job lifecycle as reported by the job queue."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MeetingStatus(str, Enum):
    QUEUED = "queued"


# ── Base ─────────────────────────────────────────────────────────────────────


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Agenda ───────────────────────────────────────────────────────────────────


class AgendaItemInput(CamelModel):
    """One agenda entry as supplied by the client."""

    id: str | None = Field(None, min_length=1)
    title: str = Field(min_length=1)
    persona_id: PersonaId
    depends_on: str | None = Field(None, min_length=1)


class AgendaSection(CamelModel):
    """A normalized agenda section: always carries an id."""

    id: str
    title: str
    persona_id: PersonaId
    depends_on: str | None = None


class AgendaSectionDisplay(AgendaSection):
    """Agenda section with its current progress status."""

    status: SectionStatus = SectionStatus.PENDING


class BoardMeetingRequest(CamelModel):
    """Body of POST /api/v1/board-meeting."""

    agenda: list[AgendaItemInput] | None = None
    agenda_version: int = Field(1, ge=1, le=99, strict=True)


# ── Meeting Records ──────────────────────────────────────────────────────────


class BoardMeeting(BaseModel):
    """A board meeting as stored by the meeting store."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    agenda: list[AgendaSectionDisplay] = Field(default_factory=list)
    agenda_version: int = 1
    metadata: dict[str, Any] = Field(default_factory=dict)
    outcome_summary: str | None = None
    token_usage: dict[str, Any] | None = None
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class PersonaTurn(BaseModel):
    """One persona contribution. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    meeting_id: str
    persona_id: PersonaId
    sequence: int
    content: str
    metrics: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class ActionItemAssignee(CamelModel):
    id: str
    name: str | None = None
    email: str | None = None


class ActionItem(CamelModel):
    """Follow-up task produced by the meeting."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    meeting_id: str
    title: str
    description: str | None = None
    status: ActionItemStatus = ActionItemStatus.OPEN
    priority: ActionItemPriority = ActionItemPriority.NORMAL
    assignee: ActionItemAssignee | None = None
    due_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


# ── Persona Payload ──────────────────────────────────────────────────────────


class PersonaRecommendation(CamelModel):
    title: str
    owner_hint: str | None = None
    due_date_hint: str | None = None
    priority: str | None = None
    rationale: str | None = None


class ParsedPersonaPayload(CamelModel):
    """Structured view of a persona's raw response."""

    summary: str = ""
    risks: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    recommendations: list[PersonaRecommendation] = Field(default_factory=list)
    metrics: dict[str, Any] | None = None


# ── Meeting Outcome ──────────────────────────────────────────────────────────


class MeetingSummary(CamelModel):
    narrative: str
    highlights: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


class PersonaTokenUsage(CamelModel):
    input: int = 0
    output: int = 0
    total: int = 0


class MeetingMetrics(CamelModel):
    duration_ms: int
    persona_tokens: dict[str, PersonaTokenUsage] = Field(default_factory=dict)
    action_items: dict[str, int] = Field(default_factory=dict)
    persona_latency_ms: dict[str, int] = Field(default_factory=dict)
    token_cost_usd: float | None = None
    user_feedback: str | None = None


# ── Jobs ─────────────────────────────────────────────────────────────────────


class BoardMeetingJob(CamelModel):
    """Payload handed to the background worker."""

    tenant_id: str
    meeting_id: str
    user_id: str
    agenda: list[AgendaSection]
    agenda_version: int = 1


class JobHandle(BaseModel):
    job_id: str
    queue: str
    enqueued_at: datetime = Field(default_factory=utc_now)


class JobStatus(BaseModel):
    state: JobState
    reason: str | None = None


# ── API Response Schemas ─────────────────────────────────────────────────────


class BoardMeetingStatusResponse(CamelModel):
    """Out-of-band view of a meeting for clients whose stream ended early."""

    meeting_id: str
    agenda: list[AgendaSectionDisplay]
    agenda_version: int
    ended: bool
    ended_at: datetime | None = None
    job_state: JobState | None = None
    summary: Any = None
    outcome_summary: str | None = None
