"""Subscription lookups and the free-tier gate.

BillingService wraps the Polar client with the product cache and the
usage counters. Billing is optional: without a Polar access token there
is no client, no product catalogue, and no free-tier limit.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.buddy.core.redis import PRODUCTS_CACHE_KEY, JsonCache
from src.buddy.premium.schemas import FreeUsage
from src.buddy.rpc.errors import RpcError, RpcErrorCode
from src.buddy.services.polar import PolarClient

logger = structlog.get_logger(__name__)


def billing_unavailable(exc: Exception) -> RpcError:
    logger.warning("premium.billing_request_failed", error=str(exc))
    return RpcError(RpcErrorCode.BAD_GATEWAY, "Billing provider unavailable")


class BillingService:
    """Premium state for a user.

    Args:
        polar: Polar client, or None when billing is not configured.
        cache: JSON cache for the product list.
        agents: Object with ``count_agents(user_id)``.
        meetings: Object with ``count_meetings(user_id)``.
        free_agent_limit: Agents a non-subscriber may own.
        free_meeting_limit: Meetings a non-subscriber may own.
        products_cache_ttl: Product list cache lifetime in seconds.
    """

    def __init__(
        self,
        polar: PolarClient | None,
        cache: JsonCache,
        agents,
        meetings,
        free_agent_limit: int = 3,
        free_meeting_limit: int = 3,
        products_cache_ttl: int = 300,
    ) -> None:
        self._polar = polar
        self._cache = cache
        self._agents = agents
        self._meetings = meetings
        self._free_agent_limit = free_agent_limit
        self._free_meeting_limit = free_meeting_limit
        self._products_cache_ttl = products_cache_ttl

    @property
    def enabled(self) -> bool:
        return self._polar is not None

    async def get_products(self) -> list[dict[str, Any]]:
        if self._polar is None:
            return []
        try:
            return await self._cache.get_or_load(
                PRODUCTS_CACHE_KEY, self._polar.list_products, self._products_cache_ttl
            )
        except httpx.HTTPError as exc:
            raise billing_unavailable(exc) from exc

    async def get_current_product(self, user_id: str) -> dict[str, Any] | None:
        """Product of the user's first active subscription, or None."""
        if self._polar is None:
            return None
        try:
            subscriptions = await self._polar.get_active_subscriptions(user_id)
            if not subscriptions:
                return None
            subscription = subscriptions[0]
            product = subscription.get("product")
            if product:
                return product
            product_id = subscription.get("product_id")
            if not product_id:
                return None
            return await self._polar.get_product(product_id)
        except httpx.HTTPError as exc:
            raise billing_unavailable(exc) from exc

    async def has_active_subscription(self, user_id: str) -> bool:
        if self._polar is None:
            return False
        try:
            return bool(await self._polar.get_active_subscriptions(user_id))
        except httpx.HTTPError as exc:
            raise billing_unavailable(exc) from exc

    async def get_free_usage(self, user_id: str) -> FreeUsage | None:
        """Free-tier counters, or None for subscribers and when billing is off."""
        if not self.enabled or await self.has_active_subscription(user_id):
            return None
        return FreeUsage(
            meeting_count=await self._meetings.count_meetings(user_id),
            agent_count=await self._agents.count_agents(user_id),
            max_meetings=self._free_meeting_limit,
            max_agents=self._free_agent_limit,
        )

    # ── Free-tier gate ───────────────────────────────────────────────────

    async def ensure_can_create_agent(self, user_id: str) -> None:
        """Raise FORBIDDEN when a non-subscriber is at the agent limit."""
        if not self.enabled:
            return
        count = await self._agents.count_agents(user_id)
        if count < self._free_agent_limit:
            return
        if await self.has_active_subscription(user_id):
            return
        logger.info("premium.free_tier_limit_reached", user_id=user_id, resource="agents")
        raise RpcError(RpcErrorCode.FORBIDDEN, "You have reached the maximum number of free agents")

    async def ensure_can_create_meeting(self, user_id: str) -> None:
        """Raise FORBIDDEN when a non-subscriber is at the meeting limit."""
        if not self.enabled:
            return
        count = await self._meetings.count_meetings(user_id)
        if count < self._free_meeting_limit:
            return
        if await self.has_active_subscription(user_id):
            return
        logger.info("premium.free_tier_limit_reached", user_id=user_id, resource="meetings")
        raise RpcError(
            RpcErrorCode.FORBIDDEN, "You have reached the maximum number of free meetings"
        )
