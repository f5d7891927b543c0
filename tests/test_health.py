"""Health probes, request logging and metrics middleware."""

from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from src.buddy.api import health
from src.buddy.api.middleware.logging import REQUEST_ID_HEADER, LoggingMiddleware
from src.buddy.core.monitoring import MetricsMiddleware, metrics_response, scrub_event


async def _ok():
    return None


async def _down():
    raise RedisConnectionError("connection refused")


async def test_liveness(client):
    response = await client.get("/health")
    assert response.json() == {"status": "ok", "environment": "development"}


async def test_ready_when_dependencies_answer(client, monkeypatch):
    monkeypatch.setattr(health, "check_database", _ok)
    monkeypatch.setattr(health, "check_redis", _ok)

    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"database": "ok", "redis": "ok", "reconciler": "not_started"},
    }


async def test_degraded_when_redis_is_down(client, monkeypatch):
    monkeypatch.setattr(health, "check_database", _ok)
    monkeypatch.setattr(health, "check_redis", _down)

    response = await client.get("/health/ready")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["redis"] == "error"
    assert body["checks"]["redis_error"] == "connection refused"


async def test_probe_timeout(monkeypatch):
    async def hang():
        await asyncio.sleep(1)

    monkeypatch.setattr(health, "PROBE_TIMEOUT_SECONDS", 0.01)
    assert await health._probe(hang) == "timeout"


async def test_ready_reports_stopped_reconciler(app, client, monkeypatch):
    monkeypatch.setattr(health, "check_database", _ok)
    monkeypatch.setattr(health, "check_redis", _ok)
    task = asyncio.create_task(_ok())
    await task
    app.state.call_reconciler_task = task

    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["reconciler"] == "stopped"


# ── Middleware ───────────────────────────────────────────────────────────────


@pytest.fixture
def instrumented_app():
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    @app.get("/things/{thing_id}")
    async def read_thing(thing_id: str):
        return {"id": thing_id}

    @app.get("/metrics")
    async def metrics():
        return metrics_response()

    return app


def _requests_counted(route: str, status_code: str = "200") -> float:
    value = REGISTRY.get_sample_value(
        "buddy_http_requests_total",
        {"method": "GET", "route": route, "status_code": status_code},
    )
    return value or 0.0


async def test_metrics_are_labelled_by_route_template(instrumented_app):
    before = _requests_counted("/things/{thing_id}")
    transport = ASGITransport(app=instrumented_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        await ac.get("/things/1")
        await ac.get("/things/2")
        exposition = await ac.get("/metrics")

    assert _requests_counted("/things/{thing_id}") == before + 2
    assert "buddy_http_requests_total" in exposition.text


async def test_request_id_is_generated_or_echoed(instrumented_app):
    transport = ASGITransport(app=instrumented_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        generated = await ac.get("/things/1")
        echoed = await ac.get("/things/1", headers={REQUEST_ID_HEADER: "req-123"})

    assert len(generated.headers[REQUEST_ID_HEADER]) == 32
    assert echoed.headers[REQUEST_ID_HEADER] == "req-123"


def test_sentry_events_drop_credentials():
    event = {
        "request": {
            "headers": {
                "Cookie": "buddy.session_token=abc",
                "Authorization": "Bearer abc",
                "x-signature": "deadbeef",
                "Accept": "application/json",
            }
        }
    }

    headers = scrub_event(event, {})["request"]["headers"]

    assert headers["Cookie"] == headers["Authorization"] == headers["x-signature"] == "[Filtered]"
    assert headers["Accept"] == "application/json"
