"""RPC procedures for agents: list, read, create, update, remove.

Every procedure is protected and scoped to the caller; rows owned by
another user are reported as NOT_FOUND.
"""

from __future__ import annotations

from src.buddy.agents.schemas import (
    Agent,
    AgentCreate,
    AgentsGetManyInput,
    AgentUpdate,
    AgentWithCount,
)
from src.buddy.core.context import RequestContext
from src.buddy.rpc.errors import not_found
from src.buddy.rpc.procedures import Router, mutation, query
from src.buddy.schemas.common import IdInput, Page


def build_agents_router(agents, billing) -> Router:
    """Build the ``agents.*`` procedures.

    Args:
        agents: AgentRepository.
        billing: BillingService (free-tier gate on create).
    """

    async def get_many(ctx: RequestContext, params: AgentsGetManyInput) -> Page[AgentWithCount]:
        items, total = await agents.list_agents(ctx.user_id, params)
        return Page[AgentWithCount].build(items, total, params.page_size)

    async def get_one(ctx: RequestContext, data: IdInput) -> AgentWithCount:
        agent = await agents.get_agent(ctx.user_id, data.id)
        if agent is None:
            raise not_found("Agent")
        return agent

    async def create(ctx: RequestContext, data: AgentCreate) -> Agent:
        await billing.ensure_can_create_agent(ctx.user_id)
        return await agents.create_agent(ctx.user_id, data)

    async def update(ctx: RequestContext, data: AgentUpdate) -> Agent:
        agent = await agents.update_agent(ctx.user_id, data)
        if agent is None:
            raise not_found("Agent")
        return agent

    async def remove(ctx: RequestContext, data: IdInput) -> Agent:
        agent = await agents.delete_agent(ctx.user_id, data.id)
        if agent is None:
            raise not_found("Agent")
        return agent

    return Router(
        {
            "getMany": query(get_many, AgentsGetManyInput),
            "getOne": query(get_one, IdInput),
            "create": mutation(create, AgentCreate),
            "update": mutation(update, AgentUpdate),
            "remove": mutation(remove, IdInput),
        }
    )
