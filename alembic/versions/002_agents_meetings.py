"""Agents, meetings, and the meeting call-intent outbox.

Revision ID: 002_agents_meetings
Revises: 001_auth_tables
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_agents_meetings"
down_revision: Union[str, None] = "001_auth_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

meeting_status = postgresql.ENUM(
    "upcoming",
    "active",
    "completed",
    "processing",
    "cancelled",
    name="meeting_status",
    create_type=False,
)


def upgrade() -> None:
    meeting_status.create(op.get_bind(), checkfirst=True)

    # ── agents ────────────────────────────────────────────────────────────
    op.create_table(
        "agents",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_agents"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["user.id"], name="fk_agents_user_id_user", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_agents_user_id", "agents", ["user_id"])

    # ── meetings ──────────────────────────────────────────────────────────
    op.create_table(
        "meetings",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("agent_id", sa.Text(), nullable=False),
        sa.Column("status", meeting_status, server_default=sa.text("'upcoming'"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transcript_url", sa.Text(), nullable=True),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_meetings"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["user.id"], name="fk_meetings_user_id_user", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["agent_id"], ["agents.id"], name="fk_meetings_agent_id_agents", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_meetings_user_id", "meetings", ["user_id"])
    op.create_index("ix_meetings_agent_id", "meetings", ["agent_id"])

    # ── meeting_call_intents ──────────────────────────────────────────────
    op.create_table(
        "meeting_call_intents",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("meeting_id", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_meeting_call_intents"),
        sa.UniqueConstraint("meeting_id", name="uq_meeting_call_intents_meeting_id"),
        sa.ForeignKeyConstraint(
            ["meeting_id"],
            ["meetings.id"],
            name="fk_meeting_call_intents_meeting_id_meetings",
            ondelete="CASCADE",
        ),
    )


def downgrade() -> None:
    op.drop_table("meeting_call_intents")
    op.drop_index("ix_meetings_agent_id", table_name="meetings")
    op.drop_index("ix_meetings_user_id", table_name="meetings")
    op.drop_table("meetings")
    op.drop_index("ix_agents_user_id", table_name="agents")
    op.drop_table("agents")
    meeting_status.drop(op.get_bind(), checkfirst=True)
