"""Worker-side meeting orchestration.

MeetingOrchestrator walks the agenda in order, asks the persona responder
for each section, and writes progress to the meeting store as it goes:
section status transitions, one persona turn per section, one action item
per recommendation, and finally the meeting outcome with ``ended_at``.
Everything a stream session shows comes from these writes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from src.boardroom.board.agenda import DEFAULT_AGENDA, to_display
from src.boardroom.board.personas import parse_persona_payload, persona_name
from src.boardroom.board.repository import BoardMeetingRepository, MeetingNotFoundError
from src.boardroom.board.responder import PersonaResponse
from src.boardroom.board.schemas import (
    ActionItem,
    ActionItemPriority,
    ActionItemStatus,
    AgendaSection,
    AgendaSectionDisplay,
    BoardMeetingJob,
    MeetingMetrics,
    MeetingSummary,
    ParsedPersonaPayload,
    PersonaTokenUsage,
    PersonaTurn,
    SectionStatus,
)

logger = structlog.get_logger(__name__)

_PRIORITY_MAP = {
    "low": ActionItemPriority.LOW,
    "medium": ActionItemPriority.NORMAL,
    "normal": ActionItemPriority.NORMAL,
    "high": ActionItemPriority.HIGH,
    "urgent": ActionItemPriority.URGENT,
}

_BLOCKER_PATTERN = re.compile(r"blocker|urgent|critical", re.IGNORECASE)

_STATUS_ORDER = {
    SectionStatus.PENDING: 0,
    SectionStatus.IN_PROGRESS: 1,
    SectionStatus.COMPLETED: 2,
}


class PersonaResponder(Protocol):
    async def respond(
        self,
        job: BoardMeetingJob,
        section: AgendaSection,
        agenda: list[AgendaSection],
    ) -> PersonaResponse: ...


@dataclass(frozen=True)
class PersonaAnalysis:
    persona_id: str
    persona_name: str
    payload: ParsedPersonaPayload


@dataclass(frozen=True)
class OrchestrationResult:
    meeting_id: str
    persona_count: int
    action_item_count: int
    ended_at: datetime


def map_priority(value: str | None) -> ActionItemPriority:
    if not value:
        return ActionItemPriority.NORMAL
    return _PRIORITY_MAP.get(value.lower(), ActionItemPriority.NORMAL)


def advance_section(
    agenda: list[AgendaSectionDisplay], section_id: str, status: SectionStatus
) -> list[AgendaSectionDisplay]:
    """Return a copy of the agenda with one section moved forward to status.

    A section never moves backwards; an older status is ignored.
    """
    updated = []
    for section in agenda:
        if section.id == section_id and _STATUS_ORDER[status] > _STATUS_ORDER[section.status]:
            section = section.model_copy(update={"status": status})
        updated.append(section)
    return updated


def build_meeting_summary(analyses: list[PersonaAnalysis]) -> MeetingSummary:
    highlights = [o for a in analyses for o in a.payload.opportunities[:3]]
    risks = [r for a in analyses for r in a.payload.risks[:3]]
    next_steps = [rec.title for a in analyses for rec in a.payload.recommendations[:3]]
    return MeetingSummary(
        narrative="\n\n".join(f"{a.persona_name}: {a.payload.summary}" for a in analyses),
        highlights=highlights,
        risks=risks,
        blockers=[risk for risk in risks if _BLOCKER_PATTERN.search(risk)],
        next_steps=next_steps,
    )


def build_meeting_metrics(
    started_at: datetime,
    ended_at: datetime,
    token_usage: dict[str, PersonaTokenUsage],
    action_items: list[ActionItem],
    latency_ms: dict[str, int],
) -> MeetingMetrics:
    counts = {status.value: 0 for status in ActionItemStatus}
    for item in action_items:
        counts[item.status.value] += 1
    duration_ms = max(0, int((ended_at - started_at).total_seconds() * 1000))
    return MeetingMetrics(
        duration_ms=duration_ms,
        persona_tokens=token_usage,
        action_items=counts,
        persona_latency_ms=latency_ms,
    )


class MeetingOrchestrator:
    """Runs one board meeting job to completion.

    Args:
        repository: Meeting store.
        responder: Persona content source.
    """

    def __init__(self, repository: BoardMeetingRepository, responder: PersonaResponder) -> None:
        self._repository = repository
        self._responder = responder

    async def run(self, job: BoardMeetingJob) -> OrchestrationResult:
        """Orchestrate every agenda section and finish the meeting.

        Raises:
            MeetingNotFoundError: If the meeting record does not exist.
            Exception: Responder and store failures propagate; the worker
                marks the job failed.
        """
        tenant_id, meeting_id = job.tenant_id, job.meeting_id
        log = logger.bind(tenant_id=tenant_id, meeting_id=meeting_id)

        meeting = await self._repository.get_meeting(tenant_id, meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(tenant_id, meeting_id)

        sections: list[AgendaSection] = list(job.agenda) or [s.model_copy() for s in DEFAULT_AGENDA]
        agenda_state = list(meeting.agenda) or to_display(sections)
        log.info(
            "board.orchestration_started",
            agenda_version=job.agenda_version,
            sections=len(sections),
        )

        meeting = await self._repository.mark_started(tenant_id, meeting_id)

        analyses: list[PersonaAnalysis] = []
        token_usage: dict[str, PersonaTokenUsage] = {}
        latency_ms: dict[str, int] = {}

        for sequence, section in enumerate(sections, start=1):
            persona_key = section.persona_id.value
            agenda_state = advance_section(agenda_state, section.id, SectionStatus.IN_PROGRESS)
            await self._repository.update_agenda(tenant_id, meeting_id, agenda_state)

            response = await self._responder.respond(job, section, sections)
            payload = parse_persona_payload(response.content)
            analyses.append(
                PersonaAnalysis(
                    persona_id=persona_key,
                    persona_name=persona_name(section.persona_id),
                    payload=payload,
                )
            )

            usage = PersonaTokenUsage(
                input=response.input_tokens,
                output=response.output_tokens,
                total=response.total_tokens,
            )
            token_usage[persona_key] = usage
            latency_ms[persona_key] = response.latency_ms

            await self._repository.append_persona_turn(
                tenant_id,
                PersonaTurn(
                    meeting_id=meeting_id,
                    persona_id=section.persona_id,
                    sequence=sequence,
                    content=response.content,
                    metrics={"tokens": usage.to_wire(), "parsed": payload.to_wire()},
                ),
            )

            for recommendation in payload.recommendations:
                await self._repository.create_action_item(
                    tenant_id,
                    ActionItem(
                        meeting_id=meeting_id,
                        title=recommendation.title,
                        description=recommendation.rationale,
                        status=ActionItemStatus.OPEN,
                        priority=map_priority(recommendation.priority),
                        metadata={
                            "personaId": persona_key,
                            "ownerHint": recommendation.owner_hint,
                            "dueDateHint": recommendation.due_date_hint,
                        },
                    ),
                )

            agenda_state = advance_section(agenda_state, section.id, SectionStatus.COMPLETED)
            await self._repository.update_agenda(tenant_id, meeting_id, agenda_state)
            log.info("board.section_completed", section_id=section.id, persona_id=persona_key, sequence=sequence)

        action_items = await self._repository.list_all_action_items(tenant_id, meeting_id)
        ended_at = datetime.now(timezone.utc)
        summary = build_meeting_summary(analyses)
        metrics = build_meeting_metrics(meeting.started_at, ended_at, token_usage, action_items, latency_ms)

        finish_metadata: dict[str, Any] = {
            "status": "completed",
            "summary": summary.to_wire(),
            "metrics": metrics.to_wire(),
            "personaOrder": [section.persona_id.value for section in sections],
            "agendaVersion": job.agenda_version,
        }
        await self._repository.finish_meeting(
            tenant_id,
            meeting_id,
            agenda=agenda_state,
            outcome_summary=summary.narrative,
            token_usage={key: usage.to_wire() for key, usage in token_usage.items()},
            metadata=finish_metadata,
            ended_at=ended_at,
        )

        log.info(
            "board.orchestration_finished",
            persona_count=len(analyses),
            action_items=len(action_items),
        )
        return OrchestrationResult(
            meeting_id=meeting_id,
            persona_count=len(analyses),
            action_item_count=len(action_items),
            ended_at=ended_at,
        )
