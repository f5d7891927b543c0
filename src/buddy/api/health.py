"""Liveness and readiness probes.

/health answers as long as the event loop does. /health/ready also checks
PostgreSQL and Redis (each bounded by a timeout) and reports whether the
call reconciler loop is still running; only the database and Redis decide
the status code, since a stopped reconciler delays retries but does not
stop requests from being served.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.buddy.config import get_settings
from src.buddy.core.database import get_engine
from src.buddy.core.redis import get_redis_pool

router = APIRouter(tags=["health"])

PROBE_TIMEOUT_SECONDS = 2.0


async def check_database() -> None:
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def check_redis() -> None:
    if not await get_redis_pool().ping():
        raise RedisError("PING did not return PONG")


async def _probe(check) -> str | None:
    """Run one check; None on success, otherwise a short error string."""
    try:
        await asyncio.wait_for(check(), timeout=PROBE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        return "timeout"
    except (SQLAlchemyError, RedisError, OSError) as exc:
        return str(exc) or type(exc).__name__
    return None


def _reconciler_state(request: Request) -> str:
    task = getattr(request.app.state, "call_reconciler_task", None)
    if task is None:
        return "not_started"
    return "stopped" if task.done() else "running"


@router.get("/health")
async def health_check():
    return {"status": "ok", "environment": get_settings().ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """200 when PostgreSQL and Redis both answer, 503 otherwise."""
    database_error, redis_error = await asyncio.gather(
        _probe(check_database), _probe(check_redis)
    )
    checks: dict = {
        "database": "ok" if database_error is None else "error",
        "redis": "ok" if redis_error is None else "error",
        "reconciler": _reconciler_state(request),
    }
    if database_error:
        checks["database_error"] = database_error
    if redis_error:
        checks["redis_error"] = redis_error

    ready = database_error is None and redis_error is None
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
