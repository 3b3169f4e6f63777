"""Board meeting persistence models.

Three SQLAlchemy models, every row carrying its tenant_id:
- BoardMeetingModel: one meeting, its agenda (JSON) and outcome
- BoardPersonaTurnModel: append-only persona contributions, unique per
  (meeting_id, sequence)
- BoardActionItemModel: follow-up tasks produced by the meeting

No foreign key constraints; the repository keeps the references consistent.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.boardroom.core.database import Base


class BoardMeetingModel(Base):
    """A board meeting run by the background worker.

    ``ended_at`` is written once, by the worker, when orchestration
    finishes. Stream sessions only read it.
    """

    __tablename__ = "board_meetings"
    __table_args__ = (Index("ix_board_meetings_tenant_created", "tenant_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    agenda: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    agenda_version: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1")
    )
    meeting_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, default=dict, server_default=text("'{}'::json")
    )
    outcome_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_usage: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class BoardPersonaTurnModel(Base):
    """One persona's contribution to a meeting. Never updated."""

    __tablename__ = "board_persona_turns"
    __table_args__ = (
        UniqueConstraint(
            "meeting_id",
            "sequence",
            name="uq_board_persona_turn_sequence",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    persona_id: Mapped[str] = mapped_column(String(20), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metrics: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class BoardActionItemModel(Base):
    """Follow-up task created from a persona recommendation."""

    __tablename__ = "board_action_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="open", server_default=text("'open'")
    )
    priority: Mapped[str] = mapped_column(
        String(20), default="normal", server_default=text("'normal'")
    )
    assignee: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    item_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, default=dict, server_default=text("'{}'::json")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
