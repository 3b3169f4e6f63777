"""Tests for worker-side meeting orchestration."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.boardroom.board.orchestrator import (
    MeetingOrchestrator,
    PersonaAnalysis,
    advance_section,
    build_meeting_metrics,
    build_meeting_summary,
    map_priority,
)
from src.boardroom.board.repository import MeetingNotFoundError
from src.boardroom.board.schemas import (
    ActionItem,
    ActionItemPriority,
    ActionItemStatus,
    AgendaSectionDisplay,
    BoardMeetingJob,
    ParsedPersonaPayload,
    PersonaId,
    PersonaRecommendation,
    PersonaTokenUsage,
    SectionStatus,
)
from tests.doubles import TENANT_ID, USER_ID, ScriptedResponder, persona_json, seed_meeting


class TestPriorityMapping:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("low", ActionItemPriority.LOW),
            ("medium", ActionItemPriority.NORMAL),
            ("Normal", ActionItemPriority.NORMAL),
            ("HIGH", ActionItemPriority.HIGH),
            ("urgent", ActionItemPriority.URGENT),
            ("whenever", ActionItemPriority.NORMAL),
            (None, ActionItemPriority.NORMAL),
        ],
    )
    def test_map_priority(self, raw, expected):
        assert map_priority(raw) == expected


class TestAdvanceSection:
    def _agenda(self, status=SectionStatus.PENDING):
        return [AgendaSectionDisplay(id="a", title="A", persona_id=PersonaId.CEO, status=status)]

    def test_moves_forward(self):
        updated = advance_section(self._agenda(), "a", SectionStatus.IN_PROGRESS)

        assert updated[0].status == SectionStatus.IN_PROGRESS

    def test_never_moves_backwards(self):
        updated = advance_section(self._agenda(SectionStatus.COMPLETED), "a", SectionStatus.IN_PROGRESS)

        assert updated[0].status == SectionStatus.COMPLETED

    def test_does_not_mutate_input(self):
        agenda = self._agenda()

        advance_section(agenda, "a", SectionStatus.COMPLETED)

        assert agenda[0].status == SectionStatus.PENDING


class TestSummaryAndMetrics:
    def test_summary_collects_highlights_risks_and_blockers(self):
        analyses = [
            PersonaAnalysis("ceo", "CEO", ParsedPersonaPayload(summary="Good", opportunities=["EU"])),
            PersonaAnalysis(
                "cfo",
                "CFO",
                ParsedPersonaPayload(
                    summary="Tight",
                    risks=["Critical cash gap", "FX exposure"],
                    recommendations=[PersonaRecommendation(title="Raise bridge")],
                ),
            ),
        ]

        summary = build_meeting_summary(analyses)

        assert summary.narrative == "CEO: Good\n\nCFO: Tight"
        assert summary.highlights == ["EU"]
        assert summary.risks == ["Critical cash gap", "FX exposure"]
        assert summary.blockers == ["Critical cash gap"]
        assert summary.next_steps == ["Raise bridge"]

    def test_metrics_counts_and_duration(self):
        started = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        items = [
            ActionItem(meeting_id="m", title="a"),
            ActionItem(meeting_id="m", title="b", status=ActionItemStatus.COMPLETED),
        ]

        metrics = build_meeting_metrics(
            started,
            started + timedelta(seconds=2),
            {"ceo": PersonaTokenUsage(input=1, output=2, total=3)},
            items,
            {"ceo": 40},
        )

        assert metrics.duration_ms == 2000
        assert metrics.action_items == {"open": 1, "in_progress": 0, "completed": 1}
        assert metrics.to_wire()["personaTokens"] == {"ceo": {"input": 1, "output": 2, "total": 3}}
        assert metrics.persona_latency_ms == {"ceo": 40}


class TestMeetingOrchestrator:
    @pytest.mark.asyncio
    async def test_run_writes_turns_items_and_outcome(self, repository):
        meeting, job = await seed_meeting(repository)
        responder = ScriptedResponder({
            "cfo": persona_json(
                "Runway fine",
                risks=["Urgent hiring freeze"],
                recommendations=[
                    {"title": "Cut burn", "priority": "medium", "ownerHint": "CFO", "rationale": "Extend runway"},
                    {"title": "Raise prices", "priority": "urgent"},
                ],
            ),
        })

        result = await MeetingOrchestrator(repository, responder).run(job)

        assert result.persona_count == 3
        assert result.action_item_count == 2
        assert responder.calls == ["ceo", "cfo", "cmo"]

        turns = await repository.list_persona_turns(TENANT_ID, meeting.id)
        assert [(t.sequence, t.persona_id) for t in turns] == [
            (1, PersonaId.CEO),
            (2, PersonaId.CFO),
            (3, PersonaId.CMO),
        ]
        assert turns[1].metrics["tokens"] == {"input": 100, "output": 50, "total": 150}
        assert turns[1].metrics["parsed"]["summary"] == "Runway fine"

        items = await repository.list_all_action_items(TENANT_ID, meeting.id)
        assert [(i.title, i.priority) for i in items] == [
            ("Cut burn", ActionItemPriority.NORMAL),
            ("Raise prices", ActionItemPriority.URGENT),
        ]
        assert items[0].description == "Extend runway"
        assert items[0].metadata["personaId"] == "cfo"
        assert items[0].metadata["ownerHint"] == "CFO"

        stored = await repository.get_meeting(TENANT_ID, meeting.id)
        assert stored.ended_at is not None
        assert all(s.status == SectionStatus.COMPLETED for s in stored.agenda)
        assert stored.metadata["status"] == "completed"
        assert stored.metadata["requestedBy"] == USER_ID
        assert stored.metadata["personaOrder"] == ["ceo", "cfo", "cmo"]
        assert stored.metadata["summary"]["blockers"] == ["Urgent hiring freeze"]
        assert stored.metadata["metrics"]["actionItems"]["open"] == 2
        assert stored.token_usage["cfo"] == {"input": 100, "output": 50, "total": 150}
        assert stored.outcome_summary.startswith("CEO: ceo summary")

    @pytest.mark.asyncio
    async def test_plain_text_response_is_kept(self, repository):
        meeting, job = await seed_meeting(repository)
        responder = ScriptedResponder({"ceo": "Just a paragraph of prose."})

        await MeetingOrchestrator(repository, responder).run(job)

        turns = await repository.list_persona_turns(TENANT_ID, meeting.id)
        assert turns[0].content == "Just a paragraph of prose."
        assert turns[0].metrics["parsed"]["summary"] == "Just a paragraph of prose."

    @pytest.mark.asyncio
    async def test_empty_job_agenda_uses_default(self, repository):
        meeting, job = await seed_meeting(repository, sections=[])
        responder = ScriptedResponder()

        await MeetingOrchestrator(repository, responder).run(job)

        assert responder.calls == ["ceo", "cfo", "cmo"]
        stored = await repository.get_meeting(TENANT_ID, meeting.id)
        assert [s.id for s in stored.agenda] == [
            "agenda-executive-overview",
            "agenda-financial-health",
            "agenda-growth-outlook",
        ]

    @pytest.mark.asyncio
    async def test_responder_failure_leaves_meeting_open(self, repository):
        meeting, job = await seed_meeting(repository)
        responder = ScriptedResponder(fail_on="cmo")

        with pytest.raises(RuntimeError, match="CMO persona generation timed out"):
            await MeetingOrchestrator(repository, responder).run(job)

        stored = await repository.get_meeting(TENANT_ID, meeting.id)
        assert stored.ended_at is None
        assert [s.status for s in stored.agenda] == [
            SectionStatus.COMPLETED,
            SectionStatus.COMPLETED,
            SectionStatus.IN_PROGRESS,
        ]

    @pytest.mark.asyncio
    async def test_missing_meeting_raises(self, repository):
        job = BoardMeetingJob(tenant_id=TENANT_ID, meeting_id="missing", user_id=USER_ID, agenda=[])

        with pytest.raises(MeetingNotFoundError):
            await MeetingOrchestrator(repository, ScriptedResponder()).run(job)
