"""Pydantic v2 schemas for the meetings domain.

Defines the data contracts for meetings, list filters, the call-provisioning
outbox, and speaker-annotated transcripts. Transcript records keep the
call platform's snake_case field names on the wire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.buddy.agents.schemas import Agent
from src.buddy.schemas.common import PaginationInput, RpcModel


# ── Enums ────────────────────────────────────────────────────────────────────


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting, driven by call-platform events."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    PROCESSING = "processing"
    CANCELLED = "cancelled"


class CallIntentStatus(str, Enum):
    """State of the outbox entry that creates a meeting's external call."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SpeakerKind(str, Enum):
    USER = "user"
    AGENT = "agent"
    UNKNOWN = "unknown"


# ── Inputs ───────────────────────────────────────────────────────────────────


class MeetingCreate(RpcModel):
    """Input for meetings.create."""

    name: str = Field(..., min_length=1, max_length=255)
    agent_id: str = Field(..., min_length=1)


class MeetingUpdate(MeetingCreate):
    """Input for meetings.update."""

    id: str = Field(..., min_length=1)


class MeetingsGetManyInput(PaginationInput):
    """Input for meetings.getMany; the repository filters on these fields directly."""

    agent_id: str | None = None
    status: MeetingStatus | None = None


# ── Meeting Models ───────────────────────────────────────────────────────────


class Meeting(RpcModel):
    """A meeting row."""

    id: str
    name: str
    user_id: str
    agent_id: str
    status: MeetingStatus = MeetingStatus.UPCOMING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    transcript_url: str | None = None
    recording_url: str | None = None
    summary: str | None = None
    created_at: datetime
    updated_at: datetime


class MeetingWithAgent(Meeting):
    """Meeting joined with its agent, plus call duration in seconds."""

    agent: Agent
    duration: float | None = None


class CallIntent(RpcModel):
    """Outbox entry for a meeting's external call."""

    id: str
    meeting_id: str
    status: CallIntentStatus = CallIntentStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


# ── Transcript Models ────────────────────────────────────────────────────────


class TranscriptItem(BaseModel):
    """One NDJSON record of a call transcript."""

    model_config = ConfigDict(extra="allow")

    speaker_id: str
    type: str = "speech"
    text: str = ""
    start_ts: float | None = None
    stop_ts: float | None = None


class TranscriptSpeaker(BaseModel):
    """Display identity resolved for a transcript speaker."""

    id: str | None = None
    name: str
    image: str
    kind: SpeakerKind


class TranscriptLine(TranscriptItem):
    """Transcript record annotated with its resolved speaker."""

    user: TranscriptSpeaker
