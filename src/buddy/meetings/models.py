"""Meeting persistence models -- meetings and their call-provisioning outbox.

Two SQLAlchemy models:
- MeetingModel: A scheduled video meeting between a user and one of their agents
- CallIntentModel: Outbox row recording that an external call must exist for a meeting

Meetings cascade with both their owner and their agent. A call intent is
written in the same transaction as its meeting and completed once the
external call has been created; the reconciler retries the rest.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.buddy.core.database import Base, generate_id
from src.buddy.meetings.schemas import CallIntentStatus, MeetingStatus

meeting_status_enum = Enum(
    MeetingStatus,
    name="meeting_status",
    values_callable=lambda members: [m.value for m in members],
)


class MeetingModel(Base):
    """A meeting scheduled by a user with one of their agents.

    status is written by the call-platform webhook; transcript_url,
    recording_url and summary are filled in after the call ends.
    """

    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[str] = mapped_column(
        Text, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[MeetingStatus] = mapped_column(
        meeting_status_enum,
        nullable=False,
        default=MeetingStatus.UPCOMING,
        server_default=text("'upcoming'"),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transcript_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    recording_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CallIntentModel(Base):
    """Outbox entry for creating the external video call of a meeting."""

    __tablename__ = "meeting_call_intents"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=generate_id)
    meeting_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CallIntentStatus.PENDING.value,
        server_default=text("'pending'"),
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
