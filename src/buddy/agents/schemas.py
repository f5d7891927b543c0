"""Pydantic v2 schemas for the agents domain."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.buddy.schemas.common import PaginationInput, RpcModel


class AgentCreate(RpcModel):
    """Input for agents.create."""

    name: str = Field(..., min_length=1, max_length=255)
    instructions: str = Field(..., min_length=1, max_length=255)


class AgentUpdate(AgentCreate):
    """Input for agents.update."""

    id: str = Field(..., min_length=1)


class AgentsGetManyInput(PaginationInput):
    """Input for agents.getMany."""


class Agent(RpcModel):
    """An agent row."""

    id: str
    name: str
    user_id: str
    instructions: str
    created_at: datetime
    updated_at: datetime


class AgentWithCount(Agent):
    """Agent with the number of meetings that reference it."""

    meeting_count: int = 0
