"""Pydantic v2 schemas for the premium (subscription) domain."""

from __future__ import annotations

from src.buddy.schemas.common import RpcModel


class FreeUsage(RpcModel):
    """Free-tier consumption shown on the dashboard upsell."""

    meeting_count: int
    agent_count: int
    max_meetings: int
    max_agents: int
