"""Redis connection pool and the JSON read-through cache.

The cache is advisory: any Redis failure is logged and the loader is
called directly, so a Redis outage never fails a request.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from src.buddy.config import get_settings

logger = structlog.get_logger(__name__)

PRODUCTS_CACHE_KEY = "premium:products"

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ── JSON cache ──────────────────────────────────────────────────────────────


class JsonCache:
    """Read-through cache of JSON-serializable values with a TTL.

    Args:
        redis_client: Redis client (decode_responses=True), or None to
            disable caching entirely.
        prefix: Key namespace prepended to every key.
    """

    def __init__(self, redis_client: aioredis.Redis | None, prefix: str = "buddy:"):
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as exc:
            logger.warning("cache.get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache.corrupt_entry", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(self._key(key), json.dumps(value), ex=ttl)
        except RedisError as exc:
            logger.warning("cache.set_failed", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._key(key))
        except RedisError as exc:
            logger.warning("cache.delete_failed", key=key, error=str(exc))

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int,
    ) -> Any:
        """Return the cached value, or call loader and cache its result."""
        cached = await self.get(key)
        if cached is not None:
            logger.debug("cache.hit", key=key)
            return cached
        value = await loader()
        await self.set(key, value, ttl)
        return value
