"""Async HTTP client for the Polar billing API.

Covers the reads the premium procedures need: listing recurring products,
fetching a single product, and looking up a customer's state (active
subscriptions) by external id. Retries follow the Stream client policy.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.buddy.services.stream import _stream_retry

logger = structlog.get_logger(__name__)


class PolarClient:
    """Async client for Polar REST API.

    Args:
        access_token: Organization access token.
        base_url: https://api.polar.sh or https://sandbox-api.polar.sh.
    """

    TIMEOUT_READ = 10.0

    def __init__(self, access_token: str, base_url: str = "https://api.polar.sh") -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers, timeout=timeout)

    @_stream_retry
    async def list_products(self) -> list[dict[str, Any]]:
        """List active recurring products sorted by price.

        GET /v1/products/?is_archived=false&is_recurring=true&sorting=price_amount
        """
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/v1/products/",
                params={
                    "is_archived": "false",
                    "is_recurring": "true",
                    "sorting": "price_amount",
                },
            )
            response.raise_for_status()
            items = response.json().get("items", [])
            logger.info("polar.products_listed", count=len(items))
            return items

    @_stream_retry
    async def get_product(self, product_id: str) -> dict[str, Any]:
        """GET /v1/products/{id}"""
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{self._base_url}/v1/products/{product_id}")
            response.raise_for_status()
            return response.json()

    @_stream_retry
    async def get_customer_state(self, external_id: str) -> dict[str, Any] | None:
        """Customer state by external id, or None if the customer does not exist.

        GET /v1/customers/external/{external_id}/state
        """
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/v1/customers/external/{external_id}/state"
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()

    async def get_active_subscriptions(self, external_id: str) -> list[dict[str, Any]]:
        state = await self.get_customer_state(external_id)
        if state is None:
            return []
        return state.get("active_subscriptions") or []
