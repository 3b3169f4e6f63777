"""Add board meeting tables for meetings, persona turns, and action items.

Revision ID: 001_board_meeting_tables
Revises:
Create Date: 2026-10-19

Creates three tables:
- board_meetings: meeting record, agenda (JSON) and outcome
- board_persona_turns: append-only persona turns, unique per (meeting_id, sequence)
- board_action_items: follow-up tasks produced by the meeting

No foreign key constraints (referential integrity is kept by the repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_board_meeting_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── board_meetings ───────────────────────────────────────────────────

    op.create_table(
        "board_meetings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("agenda", sa.JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("agenda_version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("metadata", sa.JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        sa.Column("outcome_summary", sa.Text(), nullable=True),
        sa.Column("token_usage", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_board_meetings_tenant_created",
        "board_meetings",
        ["tenant_id", "created_at"],
    )

    # ── board_persona_turns ──────────────────────────────────────────────

    op.create_table(
        "board_persona_turns",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("persona_id", sa.String(20), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metrics", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("meeting_id", "sequence", name="uq_board_persona_turn_sequence"),
    )
    op.create_index(
        "ix_board_persona_turns_meeting_id",
        "board_persona_turns",
        ["meeting_id"],
    )

    # ── board_action_items ───────────────────────────────────────────────

    op.create_table(
        "board_action_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'open'"), nullable=False),
        sa.Column("priority", sa.String(20), server_default=sa.text("'normal'"), nullable=False),
        sa.Column("assignee", sa.JSON(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_board_action_items_meeting_id",
        "board_action_items",
        ["meeting_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_board_action_items_meeting_id", table_name="board_action_items")
    op.drop_table("board_action_items")
    op.drop_index("ix_board_persona_turns_meeting_id", table_name="board_persona_turns")
    op.drop_table("board_persona_turns")
    op.drop_index("ix_board_meetings_tenant_created", table_name="board_meetings")
    op.drop_table("board_meetings")
