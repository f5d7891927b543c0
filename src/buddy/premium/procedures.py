"""RPC procedures for the premium upsell."""

from __future__ import annotations

from typing import Any

from src.buddy.core.context import RequestContext
from src.buddy.premium.schemas import FreeUsage
from src.buddy.rpc.procedures import Router, query


def build_premium_router(billing) -> Router:
    """Build the ``premium.*`` procedures over a BillingService."""

    async def get_products(ctx: RequestContext, _: None) -> list[dict[str, Any]]:
        return await billing.get_products()

    async def get_current_subscription(ctx: RequestContext, _: None) -> dict[str, Any] | None:
        return await billing.get_current_product(ctx.user_id)

    async def get_free_usage(ctx: RequestContext, _: None) -> FreeUsage | None:
        return await billing.get_free_usage(ctx.user_id)

    return Router(
        {
            "getProducts": query(get_products),
            "getCurrentSubscription": query(get_current_subscription),
            "getFreeUsage": query(get_free_usage),
        }
    )
