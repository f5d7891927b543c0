"""Agent repository -- async CRUD for agents, scoped by owner.

Provides AgentRepository with the session_factory callable pattern used by
every repository in the service. Reads never return another user's rows:
a missing agent and a not-owned agent both come back as None.

Statement construction lives in module-level builders so list filtering,
ordering and the meeting-count subquery can be checked without a database.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.buddy.agents.models import AgentModel
from src.buddy.agents.schemas import Agent, AgentCreate, AgentsGetManyInput, AgentUpdate, AgentWithCount
from src.buddy.core.database import LIKE_ESCAPE, contains_pattern
from src.buddy.meetings.models import MeetingModel

logger = structlog.get_logger(__name__)


# ── Statement Builders ──────────────────────────────────────────────────────


def meeting_count_column():
    """Correlated count of meetings referencing the outer agent row."""
    return (
        select(func.count(MeetingModel.id))
        .where(MeetingModel.agent_id == AgentModel.id)
        .correlate(AgentModel)
        .scalar_subquery()
        .label("meeting_count")
    )


def _agent_filters(user_id: str, params: AgentsGetManyInput) -> list:
    filters = [AgentModel.user_id == user_id]
    if params.search:
        filters.append(
            AgentModel.name.ilike(contains_pattern(params.search), escape=LIKE_ESCAPE)
        )
    return filters


def build_agent_list_statement(user_id: str, params: AgentsGetManyInput) -> Select:
    """One page of the owner's agents, newest first, with meeting counts."""
    return (
        select(AgentModel, meeting_count_column())
        .where(*_agent_filters(user_id, params))
        .order_by(AgentModel.created_at.desc(), AgentModel.id.desc())
        .limit(params.limit)
        .offset(params.offset)
    )


def build_agent_count_statement(user_id: str, params: AgentsGetManyInput) -> Select:
    """Total rows matching the same filters as the list statement."""
    return (
        select(func.count())
        .select_from(AgentModel)
        .where(*_agent_filters(user_id, params))
    )


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_agent(model: AgentModel) -> Agent:
    return Agent(
        id=model.id,
        name=model.name,
        user_id=model.user_id,
        instructions=model.instructions,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def _model_to_agent_with_count(model: AgentModel, meeting_count: int | None) -> AgentWithCount:
    return AgentWithCount(
        **_model_to_agent(model).model_dump(),
        meeting_count=meeting_count or 0,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class AgentRepository:
    """Async CRUD operations for agents.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def list_agents(
        self, user_id: str, params: AgentsGetManyInput
    ) -> tuple[list[AgentWithCount], int]:
        """Return one page of the owner's agents and the total match count."""
        async for session in self._session_factory():
            rows = (await session.execute(build_agent_list_statement(user_id, params))).all()
            total = (await session.execute(build_agent_count_statement(user_id, params))).scalar_one()
            items = [_model_to_agent_with_count(model, count) for model, count in rows]
            return items, total

    async def get_agent(self, user_id: str, agent_id: str) -> AgentWithCount | None:
        """Get an owned agent with its meeting count."""
        async for session in self._session_factory():
            stmt = select(AgentModel, meeting_count_column()).where(
                AgentModel.id == agent_id,
                AgentModel.user_id == user_id,
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            return _model_to_agent_with_count(row[0], row[1])

    async def get_agents_by_ids(self, agent_ids: Iterable[str]) -> list[Agent]:
        """Batch lookup by id, unscoped (used to label transcript speakers)."""
        ids = list(set(agent_ids))
        if not ids:
            return []
        async for session in self._session_factory():
            result = await session.execute(select(AgentModel).where(AgentModel.id.in_(ids)))
            return [_model_to_agent(m) for m in result.scalars().all()]

    async def count_agents(self, user_id: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(AgentModel).where(AgentModel.user_id == user_id)
            return (await session.execute(stmt)).scalar_one()

    async def create_agent(self, user_id: str, data: AgentCreate) -> Agent:
        async for session in self._session_factory():
            model = AgentModel(
                user_id=user_id,
                name=data.name,
                instructions=data.instructions,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("agents.created", agent_id=model.id, user_id=user_id)
            return _model_to_agent(model)

    async def update_agent(self, user_id: str, data: AgentUpdate) -> Agent | None:
        """Update name/instructions where id and owner both match."""
        async for session in self._session_factory():
            stmt = (
                update(AgentModel)
                .where(AgentModel.id == data.id, AgentModel.user_id == user_id)
                .values(
                    name=data.name,
                    instructions=data.instructions,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(AgentModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            return _model_to_agent(model)

    async def delete_agent(self, user_id: str, agent_id: str) -> Agent | None:
        """Delete an owned agent; its meetings go with it (FK cascade)."""
        async for session in self._session_factory():
            stmt = (
                delete(AgentModel)
                .where(AgentModel.id == agent_id, AgentModel.user_id == user_id)
                .returning(AgentModel)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if model is None:
                return None
            logger.info("agents.removed", agent_id=agent_id, user_id=user_id)
            return _model_to_agent(model)
