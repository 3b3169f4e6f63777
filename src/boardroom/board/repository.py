"""Board meeting repository -- async CRUD for meetings, persona turns and action items.

BoardMeetingRepository follows the session_factory callable pattern: every
method opens its own short-lived session. The request side only creates a
meeting and reads it back; all other writes come from the worker.

All methods take tenant_id as first argument for tenant-scoped queries.
JSON columns are written with Pydantic model_dump(mode="json", by_alias=True)
and read back with model_validate().
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.boardroom.board.models import (
    BoardActionItemModel,
    BoardMeetingModel,
    BoardPersonaTurnModel,
)
from src.boardroom.board.schemas import (
    ActionItem,
    ActionItemAssignee,
    ActionItemPriority,
    ActionItemStatus,
    AgendaSectionDisplay,
    BoardMeeting,
    PersonaId,
    PersonaTurn,
)

logger = structlog.get_logger(__name__)


class MeetingNotFoundError(ValueError):
    """Raised when a write targets a meeting that does not exist."""

    def __init__(self, tenant_id: str, meeting_id: str) -> None:
        super().__init__(f"Board meeting not found: tenant={tenant_id}, id={meeting_id}")
        self.tenant_id = tenant_id
        self.meeting_id = meeting_id


class MeetingAlreadyFinishedError(ValueError):
    """Raised when finish_meeting is called on a meeting that already ended."""


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _dump_agenda(agenda: Iterable[AgendaSectionDisplay]) -> list[dict[str, Any]]:
    return [section.to_wire() for section in agenda]


def _model_to_meeting(model: BoardMeetingModel) -> BoardMeeting:
    """Convert BoardMeetingModel to BoardMeeting schema."""
    return BoardMeeting(
        id=str(model.id),
        tenant_id=model.tenant_id,
        agenda=[AgendaSectionDisplay.model_validate(s) for s in (model.agenda or [])],
        agenda_version=model.agenda_version,
        metadata=dict(model.meeting_metadata or {}),
        outcome_summary=model.outcome_summary,
        token_usage=model.token_usage,
        started_at=model.started_at,
        ended_at=model.ended_at,
        created_at=model.created_at,
    )


def _model_to_turn(model: BoardPersonaTurnModel) -> PersonaTurn:
    return PersonaTurn(
        id=str(model.id),
        meeting_id=str(model.meeting_id),
        persona_id=PersonaId(model.persona_id),
        sequence=model.sequence,
        content=model.content,
        metrics=model.metrics,
        created_at=model.created_at,
    )


def _model_to_action_item(model: BoardActionItemModel) -> ActionItem:
    return ActionItem(
        id=str(model.id),
        meeting_id=str(model.meeting_id),
        title=model.title,
        description=model.description,
        status=ActionItemStatus(model.status),
        priority=ActionItemPriority(model.priority),
        assignee=ActionItemAssignee.model_validate(model.assignee) if model.assignee else None,
        due_date=model.due_date,
        metadata=dict(model.item_metadata or {}),
        created_at=model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class BoardMeetingRepository:
    """Async repository for board meeting records.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _load_meeting(
        self, session: AsyncSession, tenant_id: str, meeting_id: str
    ) -> BoardMeetingModel:
        meeting_uuid = _parse_uuid(meeting_id)
        model = None
        if meeting_uuid is not None:
            stmt = select(BoardMeetingModel).where(
                BoardMeetingModel.tenant_id == tenant_id,
                BoardMeetingModel.id == meeting_uuid,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
        if model is None:
            raise MeetingNotFoundError(tenant_id, meeting_id)
        return model

    # ── Request side ─────────────────────────────────────────────────────

    async def create_meeting(
        self,
        tenant_id: str,
        agenda: list[AgendaSectionDisplay],
        agenda_version: int,
        metadata: dict[str, Any],
    ) -> BoardMeeting:
        """Create a meeting record with its display agenda.

        Args:
            tenant_id: Tenant identifier from the request.
            agenda: Normalized agenda, every section ``pending``.
            agenda_version: Client agenda version (1-99).
            metadata: Initial metadata, e.g. ``{"status": "queued", "requestedBy": ...}``.

        Returns:
            BoardMeeting with all persisted fields.
        """
        async for session in self._session_factory():
            model = BoardMeetingModel(
                tenant_id=tenant_id,
                agenda=_dump_agenda(agenda),
                agenda_version=agenda_version,
                meeting_metadata=metadata,
                started_at=datetime.now(timezone.utc),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("board.meeting_created", tenant_id=tenant_id, meeting_id=str(model.id))
            return _model_to_meeting(model)

    async def get_meeting(self, tenant_id: str, meeting_id: str) -> BoardMeeting | None:
        """Get a meeting by ID. Returns None if not found (or not a valid id)."""
        meeting_uuid = _parse_uuid(meeting_id)
        if meeting_uuid is None:
            return None
        async for session in self._session_factory():
            stmt = select(BoardMeetingModel).where(
                BoardMeetingModel.tenant_id == tenant_id,
                BoardMeetingModel.id == meeting_uuid,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def list_persona_turns(
        self, tenant_id: str, meeting_id: str, after_sequence: int = 0
    ) -> list[PersonaTurn]:
        """Persona turns with sequence > after_sequence, ascending by sequence."""
        meeting_uuid = _parse_uuid(meeting_id)
        if meeting_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(BoardPersonaTurnModel)
                .where(
                    BoardPersonaTurnModel.tenant_id == tenant_id,
                    BoardPersonaTurnModel.meeting_id == meeting_uuid,
                    BoardPersonaTurnModel.sequence > after_sequence,
                )
                .order_by(BoardPersonaTurnModel.sequence)
            )
            result = await session.execute(stmt)
            return [_model_to_turn(m) for m in result.scalars().all()]

    async def list_action_items(
        self, tenant_id: str, meeting_id: str, exclude_ids: Iterable[str] = ()
    ) -> list[ActionItem]:
        """Action items of a meeting whose ids are not in exclude_ids, oldest first."""
        meeting_uuid = _parse_uuid(meeting_id)
        if meeting_uuid is None:
            return []
        excluded = [u for u in (_parse_uuid(i) for i in exclude_ids) if u is not None]
        async for session in self._session_factory():
            stmt = select(BoardActionItemModel).where(
                BoardActionItemModel.tenant_id == tenant_id,
                BoardActionItemModel.meeting_id == meeting_uuid,
            )
            if excluded:
                stmt = stmt.where(BoardActionItemModel.id.not_in(excluded))
            stmt = stmt.order_by(BoardActionItemModel.created_at, BoardActionItemModel.id)
            result = await session.execute(stmt)
            return [_model_to_action_item(m) for m in result.scalars().all()]

    # ── Worker side ──────────────────────────────────────────────────────

    async def update_agenda(
        self, tenant_id: str, meeting_id: str, agenda: list[AgendaSectionDisplay]
    ) -> BoardMeeting:
        """Replace the stored agenda (used for section status transitions).

        Raises:
            MeetingNotFoundError: If the meeting does not exist.
        """
        async for session in self._session_factory():
            model = await self._load_meeting(session, tenant_id, meeting_id)
            model.agenda = _dump_agenda(agenda)
            await session.commit()
            await session.refresh(model)
            return _model_to_meeting(model)

    async def mark_started(self, tenant_id: str, meeting_id: str) -> BoardMeeting:
        """Record that the worker picked the meeting up.

        Raises:
            MeetingNotFoundError: If the meeting does not exist.
        """
        async for session in self._session_factory():
            model = await self._load_meeting(session, tenant_id, meeting_id)
            model.meeting_metadata = {**(model.meeting_metadata or {}), "status": "in_progress"}
            if model.started_at is None:
                model.started_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_meeting(model)

    async def append_persona_turn(self, tenant_id: str, turn: PersonaTurn) -> PersonaTurn:
        """Persist a persona turn. The (meeting_id, sequence) pair must be new."""
        async for session in self._session_factory():
            model = BoardPersonaTurnModel(
                id=uuid.UUID(turn.id),
                tenant_id=tenant_id,
                meeting_id=uuid.UUID(turn.meeting_id),
                persona_id=turn.persona_id.value,
                sequence=turn.sequence,
                content=turn.content,
                metrics=turn.metrics,
                created_at=turn.created_at,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_turn(model)

    async def create_action_item(self, tenant_id: str, item: ActionItem) -> ActionItem:
        async for session in self._session_factory():
            model = BoardActionItemModel(
                id=uuid.UUID(item.id),
                tenant_id=tenant_id,
                meeting_id=uuid.UUID(item.meeting_id),
                title=item.title,
                description=item.description,
                status=item.status.value,
                priority=item.priority.value,
                assignee=item.assignee.to_wire() if item.assignee else None,
                due_date=item.due_date,
                item_metadata=item.metadata,
                created_at=item.created_at,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_action_item(model)

    async def list_all_action_items(self, tenant_id: str, meeting_id: str) -> list[ActionItem]:
        return await self.list_action_items(tenant_id, meeting_id)

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
        """Write the meeting outcome and set ended_at.

        Metadata is merged over the existing metadata so request-time keys
        such as ``requestedBy`` survive.

        Raises:
            MeetingNotFoundError: If the meeting does not exist.
            MeetingAlreadyFinishedError: If ended_at is already set.
        """
        async for session in self._session_factory():
            model = await self._load_meeting(session, tenant_id, meeting_id)
            if model.ended_at is not None:
                raise MeetingAlreadyFinishedError(
                    f"Board meeting already finished: id={meeting_id}"
                )
            model.agenda = _dump_agenda(agenda)
            model.outcome_summary = outcome_summary
            model.token_usage = token_usage
            model.meeting_metadata = {**(model.meeting_metadata or {}), **metadata}
            model.ended_at = ended_at
            await session.commit()
            await session.refresh(model)
            logger.info("board.meeting_finished", tenant_id=tenant_id, meeting_id=meeting_id)
            return _model_to_meeting(model)
