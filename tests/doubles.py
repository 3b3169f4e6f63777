"""In-memory test doubles for board meeting tests.

Provides:
- InMemoryBoardRepository: BoardMeetingRepository without a database
- InMemoryJobQueue: MeetingJobQueue without Redis
- ScriptedResponder: persona responder returning canned JSON payloads
- decode_events(): turn SSE frames back into (type, data) pairs
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from src.boardroom.board.agenda import DEFAULT_AGENDA, to_display
from src.boardroom.board.jobs import JobQueueError, job_id_for
from src.boardroom.board.repository import MeetingAlreadyFinishedError, MeetingNotFoundError
from src.boardroom.board.responder import PersonaResponse
from src.boardroom.board.schemas import (
    ActionItem,
    AgendaSection,
    AgendaSectionDisplay,
    BoardMeeting,
    BoardMeetingJob,
    JobHandle,
    JobState,
    JobStatus,
    PersonaTurn,
    SectionStatus,
)

TENANT_ID = "tenant-acme"
USER_ID = "user-42"


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class InMemoryBoardRepository:
    """In-memory test double for BoardMeetingRepository.

    Mirrors the repository interface using dicts for storage. Returned
    objects are copies so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self.meetings: dict[str, BoardMeeting] = {}
        self.turns: dict[str, list[PersonaTurn]] = {}
        self.action_items: dict[str, list[ActionItem]] = {}
        self.calls: list[str] = []

    def _require(self, tenant_id: str, meeting_id: str) -> BoardMeeting:
        meeting = self.meetings.get(meeting_id)
        if meeting is None or meeting.tenant_id != tenant_id:
            raise MeetingNotFoundError(tenant_id, meeting_id)
        return meeting

    async def create_meeting(
        self,
        tenant_id: str,
        agenda: list[AgendaSectionDisplay],
        agenda_version: int,
        metadata: dict[str, Any],
    ) -> BoardMeeting:
        self.calls.append("create_meeting")
        meeting = BoardMeeting(
            tenant_id=tenant_id,
            agenda=list(agenda),
            agenda_version=agenda_version,
            metadata=dict(metadata),
        )
        self.meetings[meeting.id] = meeting
        self.turns[meeting.id] = []
        self.action_items[meeting.id] = []
        return meeting.model_copy(deep=True)

    async def get_meeting(self, tenant_id: str, meeting_id: str) -> BoardMeeting | None:
        meeting = self.meetings.get(meeting_id)
        if meeting is None or meeting.tenant_id != tenant_id:
            return None
        return meeting.model_copy(deep=True)

    async def list_persona_turns(
        self, tenant_id: str, meeting_id: str, after_sequence: int = 0
    ) -> list[PersonaTurn]:
        turns = self.turns.get(meeting_id, [])
        return sorted((t for t in turns if t.sequence > after_sequence), key=lambda t: t.sequence)

    async def list_action_items(
        self, tenant_id: str, meeting_id: str, exclude_ids: Iterable[str] = ()
    ) -> list[ActionItem]:
        excluded = set(exclude_ids)
        return [i for i in self.action_items.get(meeting_id, []) if i.id not in excluded]

    async def update_agenda(
        self, tenant_id: str, meeting_id: str, agenda: list[AgendaSectionDisplay]
    ) -> BoardMeeting:
        meeting = self._require(tenant_id, meeting_id)
        meeting.agenda = list(agenda)
        return meeting.model_copy(deep=True)

    async def mark_started(self, tenant_id: str, meeting_id: str) -> BoardMeeting:
        meeting = self._require(tenant_id, meeting_id)
        meeting.metadata = {**meeting.metadata, "status": "in_progress"}
        return meeting.model_copy(deep=True)

    async def append_persona_turn(self, tenant_id: str, turn: PersonaTurn) -> PersonaTurn:
        self._require(tenant_id, turn.meeting_id)
        existing = self.turns[turn.meeting_id]
        if any(t.sequence == turn.sequence for t in existing):
            raise ValueError(f"Duplicate persona turn sequence {turn.sequence}")
        existing.append(turn)
        return turn

    async def create_action_item(self, tenant_id: str, item: ActionItem) -> ActionItem:
        self._require(tenant_id, item.meeting_id)
        self.action_items[item.meeting_id].append(item)
        return item

    async def list_all_action_items(self, tenant_id: str, meeting_id: str) -> list[ActionItem]:
        return list(self.action_items.get(meeting_id, []))

    async def finish_meeting(
        self,
        tenant_id: str,
        meeting_id: str,
        agenda: list[AgendaSectionDisplay],
        outcome_summary: str,
        token_usage: dict[str, Any],
        metadata: dict[str, Any],
        ended_at: datetime,
    ) -> BoardMeeting:
        meeting = self._require(tenant_id, meeting_id)
        if meeting.ended_at is not None:
            raise MeetingAlreadyFinishedError(meeting_id)
        meeting.agenda = list(agenda)
        meeting.outcome_summary = outcome_summary
        meeting.token_usage = token_usage
        meeting.metadata = {**meeting.metadata, **metadata}
        meeting.ended_at = ended_at
        return meeting.model_copy(deep=True)

    # ── Test helpers ─────────────────────────────────────────────────────

    def add_turn(self, meeting_id: str, sequence: int, content: str, persona_id: str = "ceo", **kwargs: Any) -> PersonaTurn:
        turn = PersonaTurn(meeting_id=meeting_id, persona_id=persona_id, sequence=sequence, content=content, **kwargs)
        self.turns[meeting_id].append(turn)
        return turn

    def add_action_item(self, meeting_id: str, title: str, **kwargs: Any) -> ActionItem:
        item = ActionItem(meeting_id=meeting_id, title=title, **kwargs)
        self.action_items[meeting_id].append(item)
        return item

    def set_section_status(self, meeting_id: str, section_id: str, status: str) -> None:
        meeting = self.meetings[meeting_id]
        meeting.agenda = [
            s.model_copy(update={"status": SectionStatus(status)}) if s.id == section_id else s
            for s in meeting.agenda
        ]

    def end(self, meeting_id: str, **metadata: Any) -> None:
        meeting = self.meetings[meeting_id]
        meeting.metadata = {**meeting.metadata, **metadata}
        meeting.ended_at = datetime.now(timezone.utc)


class InMemoryJobQueue:
    """In-memory test double for MeetingJobQueue.

    ``on_enqueue`` (async, receives the BoardMeetingJob) runs inline after a
    new job is queued, standing in for a worker that picks it up at once.
    ``fail_enqueue`` makes enqueue raise like an unreachable Redis.
    """

    def __init__(self) -> None:
        self.on_enqueue: Callable[[BoardMeetingJob], Awaitable[None]] | None = None
        self.fail_enqueue = False
        self.fail_status = False
        self.statuses: dict[str, JobStatus] = {}
        self.messages: list[tuple[str, dict[str, str]]] = []
        self.acked: list[str] = []
        self.dead_letters: list[tuple[str, dict[str, Any], str]] = []
        self.stream = "events:board-meeting"

    async def enqueue(
        self,
        tenant_id: str,
        meeting_id: str,
        agenda: list[AgendaSection],
        agenda_version: int,
        requested_by: str,
    ) -> JobHandle:
        if self.fail_enqueue:
            raise JobQueueError("redis unavailable")
        job_id = job_id_for(tenant_id, meeting_id)
        if job_id not in self.statuses:
            self.statuses[job_id] = JobStatus(state=JobState.QUEUED)
            job = BoardMeetingJob(
                tenant_id=tenant_id,
                meeting_id=meeting_id,
                user_id=requested_by,
                agenda=agenda,
                agenda_version=agenda_version,
            )
            message_id = f"{len(self.messages) + 1}-0"
            self.messages.append(
                (message_id, {"job_id": job_id, "payload": job.model_dump_json(by_alias=True)})
            )
            if self.on_enqueue is not None:
                await self.on_enqueue(job)
        return JobHandle(job_id=job_id, queue=self.stream)

    async def get_job_status(self, handle: JobHandle | str) -> JobStatus | None:
        if self.fail_status:
            raise ConnectionError("redis unavailable")
        job_id = handle.job_id if isinstance(handle, JobHandle) else handle
        return self.statuses.get(job_id)

    async def mark_running(self, job_id: str) -> None:
        self.statuses[job_id] = JobStatus(state=JobState.RUNNING)

    async def mark_completed(self, job_id: str) -> None:
        self.statuses[job_id] = JobStatus(state=JobState.COMPLETED)

    async def mark_failed(self, job_id: str, reason: str) -> None:
        self.statuses[job_id] = JobStatus(state=JobState.FAILED, reason=reason)

    async def ensure_group(self, group: str = "") -> None:
        return None

    async def read(self, consumer: str, group: str = "", count: int = 1, block: int = 0) -> list:
        batch, self.messages = self.messages[:count], self.messages[count:]
        if not batch:
            await asyncio.sleep(0)
        return batch

    async def ack(self, message_id: str, group: str = "") -> None:
        self.acked.append(message_id)

    async def send_to_dlq(self, message_id: str, data: dict[str, Any], error: str) -> str:
        self.dead_letters.append((message_id, data, error))
        return f"dlq-{len(self.dead_letters)}"


def persona_json(summary: str, risks=(), opportunities=(), recommendations=(), metrics=None) -> str:
    """Canned persona response in the JSON shape personas are asked for."""
    return json.dumps({
        "summary": summary,
        "risks": list(risks),
        "opportunities": list(opportunities),
        "recommendations": list(recommendations),
        "metrics": metrics or {},
    })


class ScriptedResponder:
    """Persona responder that returns scripted content per persona.

    ``fail_on`` names a persona id whose turn raises instead.
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        delay: float = 0.0,
        fail_on: str | None = None,
    ) -> None:
        self._responses = responses or {}
        self._delay = delay
        self._fail_on = fail_on
        self.calls: list[str] = []

    async def respond(self, job, section, agenda) -> PersonaResponse:
        persona = section.persona_id.value
        self.calls.append(persona)
        if self._delay:
            await asyncio.sleep(self._delay)
        if persona == self._fail_on:
            raise RuntimeError(f"{persona.upper()} persona generation timed out")
        content = self._responses.get(persona, persona_json(f"{persona} summary"))
        return PersonaResponse(content=content, input_tokens=100, output_tokens=50, latency_ms=5)


def decode_events(frames: list[str]) -> list[tuple[str, dict[str, Any]]]:
    """Protocol events (type, data) from SSE frames, skipping heartbeats."""
    events = []
    for frame in frames:
        if not frame.startswith("data: "):
            continue
        payload = json.loads(frame[len("data: "):].strip())
        events.append((payload["type"], payload["data"]))
    return events


def decode_stream_body(body: str) -> list[tuple[str, dict[str, Any]]]:
    frames = [chunk + "\n\n" for chunk in body.split("\n\n") if chunk]
    return decode_events(frames)


async def seed_meeting(
    repository: InMemoryBoardRepository,
    sections: list[AgendaSection] | None = None,
    tenant_id: str = TENANT_ID,
) -> tuple[BoardMeeting, BoardMeetingJob]:
    """Create a meeting plus the job the worker would receive for it."""
    sections = sections if sections is not None else [s.model_copy() for s in DEFAULT_AGENDA]
    meeting = await repository.create_meeting(
        tenant_id,
        agenda=to_display(sections),
        agenda_version=1,
        metadata={"status": "queued", "requestedBy": USER_ID},
    )
    job = BoardMeetingJob(
        tenant_id=tenant_id,
        meeting_id=meeting.id,
        user_id=USER_ID,
        agenda=sections,
    )
    return meeting, job
