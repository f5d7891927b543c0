"""Test fixtures for the Buddy AI backend.

Provides:
- An in-memory backend (repositories, platform clients, procedure tree)
- Two users (alice, bob) with request contexts for ownership checks
- A FastAPI test app with services injected on app.state (no lifespan,
  so no database or Redis is needed) and an async HTTP client for it
- Settings overrides via environment variables
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.buddy.config import get_settings
from tests.doubles import (
    WEBHOOK_API_KEY,
    WEBHOOK_SECRET,
    Backend,
    build_backend,
    build_test_app,
    make_context,
)


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    """Deterministic settings for every test; cache cleared around each test."""
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("STREAM_VIDEO_API_KEY", WEBHOOK_API_KEY)
    monkeypatch.setenv("STREAM_VIDEO_SECRET_KEY", WEBHOOK_SECRET)
    monkeypatch.setenv("SENTRY_DSN", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def backend() -> Backend:
    return build_backend()


@pytest.fixture
def alice(backend):
    return backend.auth.add_user(name="Alice Smith", email="alice@example.com")


@pytest.fixture
def bob(backend):
    return backend.auth.add_user(name="Bob Jones", email="bob@example.com")


@pytest.fixture
def alice_ctx(alice):
    return make_context(alice)


@pytest.fixture
def bob_ctx(bob):
    return make_context(bob)


@pytest.fixture
def app(backend):
    return build_test_app(backend)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def alice_headers(backend, alice) -> dict[str, str]:
    """Bearer header for a live session belonging to alice."""
    token = "alice-session-token"
    await backend.auth.create_session(
        user_id=alice.id,
        token=token,
        expires_at=datetime.now(timezone.utc) + timedelta(days=1),
    )
    return {"Authorization": f"Bearer {token}"}
