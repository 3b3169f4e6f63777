"""Incremental synchronizer between the meeting store and one event stream.

Each tick re-reads the meeting record, new persona turns, unseen action
items and the worker job status, diffs them against what the stream has
already delivered (``SyncState``), and returns the events to emit plus an
optional termination. It never writes to the store.

Delivery guarantees come from the state fields:
- persona turns: ``cursor`` only moves forward, so a turn is emitted once
- action items: ``emitted_action_items`` only grows
- agenda: one event per observed status change per section
- summary / metrics / completion: one-shot flags
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from src.boardroom.board.jobs import MeetingJobQueue
from src.boardroom.board.personas import parse_persona_payload, payload_from_turn_metrics
from src.boardroom.board.repository import BoardMeetingRepository
from src.boardroom.board.schemas import (
    AgendaSectionDisplay,
    JobHandle,
    JobState,
    JobStatus,
    SectionStatus,
)
from src.boardroom.board.wire import (
    StreamEvent,
    action_item_event,
    agenda_event,
    completed_event,
    error_event,
    metrics_event,
    persona_response_event,
    summary_event,
)

logger = structlog.get_logger(__name__)


class MeetingStateError(RuntimeError):
    """The meeting record disappeared while its stream was open."""


class TerminationKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Termination:
    kind: TerminationKind
    event: StreamEvent


@dataclass
class TickResult:
    events: list[StreamEvent] = field(default_factory=list)
    termination: Termination | None = None


@dataclass
class SyncState:
    """What one stream has already delivered."""

    tenant_id: str
    meeting_id: str
    job: JobHandle
    cursor: int = 0
    emitted_action_items: set[str] = field(default_factory=set)
    section_status: dict[str, SectionStatus] = field(default_factory=dict)
    summary_sent: bool = False
    metrics_sent: bool = False
    completion_notified: bool = False


class IncrementalSynchronizer:
    """Computes the events one poll tick should emit.

    Args:
        repository: Meeting store (read methods only are used).
        job_queue: Job queue used for job status lookups.
        state: Delivery state owned by the stream session.
    """

    def __init__(
        self,
        repository: BoardMeetingRepository,
        job_queue: MeetingJobQueue,
        state: SyncState,
    ) -> None:
        self._repository = repository
        self._job_queue = job_queue
        self.state = state

    def snapshot(self, agenda: list[AgendaSectionDisplay]) -> list[StreamEvent]:
        """Initial agenda events, one per section, in agenda order."""
        for section in agenda:
            self.state.section_status[section.id] = section.status
        return [agenda_event(self.state.meeting_id, section) for section in agenda]

    async def _job_status(self) -> JobStatus | None:
        try:
            return await self._job_queue.get_job_status(self.state.job)
        except Exception:
            logger.debug(
                "board.job_status_unavailable",
                meeting_id=self.state.meeting_id,
                job_id=self.state.job.job_id,
                exc_info=True,
            )
            return None

    async def tick(self) -> TickResult:
        """Run one synchronization pass.

        Raises:
            MeetingStateError: If the meeting record no longer exists.
            Exception: Any store read failure propagates to the caller.
        """
        state = self.state
        meeting, turns, action_items, job_status = await asyncio.gather(
            self._repository.get_meeting(state.tenant_id, state.meeting_id),
            self._repository.list_persona_turns(
                state.tenant_id, state.meeting_id, after_sequence=state.cursor
            ),
            self._repository.list_action_items(
                state.tenant_id, state.meeting_id, exclude_ids=frozenset(state.emitted_action_items)
            ),
            self._job_status(),
        )

        if meeting is None:
            raise MeetingStateError(f"Board meeting record no longer available: {state.meeting_id}")

        result = TickResult()

        for section in meeting.agenda:
            if state.section_status.get(section.id) != section.status:
                state.section_status[section.id] = section.status
                result.events.append(agenda_event(state.meeting_id, section))

        self._append_turns(result, turns)
        self._append_action_items(result, action_items)

        finished = meeting.ended_at is not None and not state.completion_notified
        if finished:
            # The meeting read may be newer than the turn and item reads.
            late_turns, late_items = await asyncio.gather(
                self._repository.list_persona_turns(
                    state.tenant_id, state.meeting_id, after_sequence=state.cursor
                ),
                self._repository.list_action_items(
                    state.tenant_id, state.meeting_id, exclude_ids=frozenset(state.emitted_action_items)
                ),
            )
            self._append_turns(result, late_turns)
            self._append_action_items(result, late_items)

        summary = _present(meeting.metadata.get("summary"))
        if not state.summary_sent and summary is not None:
            state.summary_sent = True
            result.events.append(summary_event(state.meeting_id, summary))

        metrics = _present(meeting.metadata.get("metrics"))
        if not state.metrics_sent and metrics is not None:
            state.metrics_sent = True
            result.events.append(metrics_event(state.meeting_id, metrics, meeting.token_usage))

        if job_status is not None and job_status.state == JobState.FAILED:
            result.termination = Termination(
                TerminationKind.FAILED,
                error_event(state.meeting_id, job_status.reason),
            )
        elif finished:
            state.completion_notified = True
            result.termination = Termination(
                TerminationKind.COMPLETED,
                completed_event(state.meeting_id, meeting.ended_at),
            )

        return result

    def _append_turns(self, result: TickResult, turns: list) -> None:
        for turn in sorted(turns, key=lambda t: t.sequence):
            if turn.sequence <= self.state.cursor:
                continue
            self.state.cursor = turn.sequence
            payload = payload_from_turn_metrics(turn.metrics) or parse_persona_payload(turn.content)
            result.events.append(persona_response_event(self.state.meeting_id, turn, payload))

    def _append_action_items(self, result: TickResult, action_items: list) -> None:
        for item in action_items:
            if item.id in self.state.emitted_action_items:
                continue
            self.state.emitted_action_items.add(item.id)
            result.events.append(action_item_event(self.state.meeting_id, item))


def _present(value: Any) -> Any:
    if value is None or value == "" or value == {}:
        return None
    return value
