"""Meeting repository -- async CRUD for meetings and their call intents.

Provides MeetingRepository with the session_factory callable pattern.
Owner-facing reads join each meeting to its agent and compute the call
duration in the database; a missing meeting and a not-owned meeting both
come back as None.

Status changes are conditional updates (WHERE status IN allowed sources)
so replayed or out-of-order webhook events cannot move a meeting backwards.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import Select, delete, extract, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.buddy.agents.models import AgentModel
from src.buddy.agents.repository import _model_to_agent
from src.buddy.core.database import LIKE_ESCAPE, contains_pattern
from src.buddy.meetings.models import CallIntentModel, MeetingModel
from src.buddy.meetings.schemas import (
    CallIntent,
    CallIntentStatus,
    Meeting,
    MeetingCreate,
    MeetingsGetManyInput,
    MeetingStatus,
    MeetingUpdate,
    MeetingWithAgent,
)

logger = structlog.get_logger(__name__)


# ── Statement Builders ──────────────────────────────────────────────────────


def duration_column():
    """Call duration in seconds; NULL unless both timestamps are set."""
    return extract("epoch", MeetingModel.ended_at - MeetingModel.started_at).label("duration")


def _meeting_filters(user_id: str, params: MeetingsGetManyInput) -> list:
    filters = [MeetingModel.user_id == user_id]
    if params.search:
        filters.append(
            MeetingModel.name.ilike(contains_pattern(params.search), escape=LIKE_ESCAPE)
        )
    if params.agent_id:
        filters.append(MeetingModel.agent_id == params.agent_id)
    if params.status is not None:
        filters.append(MeetingModel.status == params.status)
    return filters


def _meeting_with_agent_select() -> Select:
    return select(MeetingModel, AgentModel, duration_column()).join(
        AgentModel, MeetingModel.agent_id == AgentModel.id
    )


def build_meeting_list_statement(user_id: str, params: MeetingsGetManyInput) -> Select:
    """One page of the owner's meetings joined to their agents, newest first."""
    return (
        _meeting_with_agent_select()
        .where(*_meeting_filters(user_id, params))
        .order_by(MeetingModel.created_at.desc(), MeetingModel.id.desc())
        .limit(params.limit)
        .offset(params.offset)
    )


def build_meeting_count_statement(user_id: str, params: MeetingsGetManyInput) -> Select:
    """Total rows matching the same join and filters as the list statement."""
    return (
        select(func.count())
        .select_from(MeetingModel)
        .join(AgentModel, MeetingModel.agent_id == AgentModel.id)
        .where(*_meeting_filters(user_id, params))
    )


def build_meeting_detail_statement(user_id: str, meeting_id: str) -> Select:
    return _meeting_with_agent_select().where(
        MeetingModel.id == meeting_id,
        MeetingModel.user_id == user_id,
    )


def build_due_intents_statement(older_than: datetime, max_attempts: int, limit: int) -> Select:
    return (
        select(CallIntentModel)
        .where(
            CallIntentModel.status.in_(
                [CallIntentStatus.PENDING.value, CallIntentStatus.FAILED.value]
            ),
            CallIntentModel.attempts < max_attempts,
            CallIntentModel.updated_at < older_than,
        )
        .order_by(CallIntentModel.created_at)
        .limit(limit)
    )


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    return Meeting(
        id=model.id,
        name=model.name,
        user_id=model.user_id,
        agent_id=model.agent_id,
        status=MeetingStatus(model.status),
        started_at=model.started_at,
        ended_at=model.ended_at,
        transcript_url=model.transcript_url,
        recording_url=model.recording_url,
        summary=model.summary,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def _row_to_meeting_with_agent(
    meeting: MeetingModel, agent: AgentModel, duration: Any
) -> MeetingWithAgent:
    return MeetingWithAgent(
        **_model_to_meeting(meeting).model_dump(),
        agent=_model_to_agent(agent),
        duration=float(duration) if duration is not None else None,
    )


def _model_to_intent(model: CallIntentModel) -> CallIntent:
    return CallIntent(
        id=model.id,
        meeting_id=model.meeting_id,
        status=CallIntentStatus(model.status),
        attempts=model.attempts,
        last_error=model.last_error,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD operations for meetings and the call-provisioning outbox.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Meetings ─────────────────────────────────────────────────────────

    async def list_meetings(
        self, user_id: str, params: MeetingsGetManyInput
    ) -> tuple[list[MeetingWithAgent], int]:
        """Return one page of the owner's meetings and the total match count."""
        async for session in self._session_factory():
            rows = (await session.execute(build_meeting_list_statement(user_id, params))).all()
            total = (await session.execute(build_meeting_count_statement(user_id, params))).scalar_one()
            items = [_row_to_meeting_with_agent(m, a, d) for m, a, d in rows]
            return items, total

    async def get_meeting(self, user_id: str, meeting_id: str) -> MeetingWithAgent | None:
        """Get an owned meeting joined with its agent."""
        async for session in self._session_factory():
            row = (
                await session.execute(build_meeting_detail_statement(user_id, meeting_id))
            ).first()
            if row is None:
                return None
            return _row_to_meeting_with_agent(*row)

    async def get_meeting_by_id(self, meeting_id: str) -> Meeting | None:
        """Unscoped lookup for webhook and reconciler use."""
        async for session in self._session_factory():
            model = await session.get(MeetingModel, meeting_id)
            if model is None:
                return None
            return _model_to_meeting(model)

    async def count_meetings(self, user_id: str) -> int:
        async for session in self._session_factory():
            stmt = (
                select(func.count())
                .select_from(MeetingModel)
                .where(MeetingModel.user_id == user_id)
            )
            return (await session.execute(stmt)).scalar_one()

    async def create_meeting_with_intent(
        self, user_id: str, data: MeetingCreate
    ) -> tuple[Meeting, CallIntent]:
        """Insert an upcoming meeting and its pending call intent atomically."""
        async for session in self._session_factory():
            meeting = MeetingModel(
                user_id=user_id,
                agent_id=data.agent_id,
                name=data.name,
                status=MeetingStatus.UPCOMING,
            )
            session.add(meeting)
            await session.flush()
            intent = CallIntentModel(
                meeting_id=meeting.id,
                status=CallIntentStatus.PENDING.value,
                attempts=0,
            )
            session.add(intent)
            await session.commit()
            await session.refresh(meeting)
            await session.refresh(intent)
            logger.info(
                "meetings.created",
                meeting_id=meeting.id,
                agent_id=data.agent_id,
                user_id=user_id,
            )
            return _model_to_meeting(meeting), _model_to_intent(intent)

    async def update_meeting(self, user_id: str, data: MeetingUpdate) -> Meeting | None:
        """Update name/agent where id and owner both match."""
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(MeetingModel.id == data.id, MeetingModel.user_id == user_id)
                .values(
                    name=data.name,
                    agent_id=data.agent_id,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(MeetingModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def delete_meeting(self, user_id: str, meeting_id: str) -> Meeting | None:
        async for session in self._session_factory():
            stmt = (
                delete(MeetingModel)
                .where(MeetingModel.id == meeting_id, MeetingModel.user_id == user_id)
                .returning(MeetingModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            logger.info("meetings.removed", meeting_id=meeting_id, user_id=user_id)
            return _model_to_meeting(model)

    async def transition_status(
        self,
        meeting_id: str,
        allowed_from: Iterable[MeetingStatus],
        to: MeetingStatus,
        *,
        user_id: str | None = None,
        **fields: Any,
    ) -> Meeting | None:
        """Move a meeting to status ``to`` only if it is currently in allowed_from.

        Extra keyword fields (started_at, ended_at, transcript_url, ...) are
        written in the same statement. Returns None when no row matched,
        which includes replays of an already-applied transition.

        Args:
            meeting_id: Meeting id.
            allowed_from: Statuses the meeting may currently be in.
            to: Target status.
            user_id: Also require this owner when given.
        """
        sources = list(allowed_from)
        if not sources:
            return None
        async for session in self._session_factory():
            conditions = [MeetingModel.id == meeting_id, MeetingModel.status.in_(sources)]
            if user_id is not None:
                conditions.append(MeetingModel.user_id == user_id)
            stmt = (
                update(MeetingModel)
                .where(*conditions)
                .values(status=to, updated_at=datetime.now(timezone.utc), **fields)
                .returning(MeetingModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            logger.info(
                "meetings.status_changed",
                meeting_id=meeting_id,
                status=to.value,
            )
            return _model_to_meeting(model)

    async def update_fields(self, meeting_id: str, **fields: Any) -> Meeting | None:
        """Write artifact fields (recording_url, transcript_url) without a status change."""
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(MeetingModel.id == meeting_id)
                .values(updated_at=datetime.now(timezone.utc), **fields)
                .returning(MeetingModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            return _model_to_meeting(model)

    # ── Call Intents ─────────────────────────────────────────────────────

    async def mark_intent_completed(self, intent_id: str) -> CallIntent | None:
        async for session in self._session_factory():
            stmt = (
                update(CallIntentModel)
                .where(CallIntentModel.id == intent_id)
                .values(
                    status=CallIntentStatus.COMPLETED.value,
                    last_error=None,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(CallIntentModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return _model_to_intent(model) if model is not None else None

    async def mark_intent_failed(self, intent_id: str, error: str) -> CallIntent | None:
        """Record a failed provisioning attempt (attempts + 1)."""
        async for session in self._session_factory():
            stmt = (
                update(CallIntentModel)
                .where(CallIntentModel.id == intent_id)
                .values(
                    status=CallIntentStatus.FAILED.value,
                    attempts=CallIntentModel.attempts + 1,
                    last_error=error[:1000],
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(CallIntentModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return _model_to_intent(model) if model is not None else None

    async def list_due_intents(
        self, older_than: datetime, max_attempts: int, limit: int
    ) -> list[CallIntent]:
        """Pending or failed intents not touched since older_than, oldest first."""
        async for session in self._session_factory():
            stmt = build_due_intents_statement(older_than, max_attempts, limit)
            result = await session.execute(stmt)
            return [_model_to_intent(m) for m in result.scalars().all()]
