"""Async SQLAlchemy engine, declarative base, and session factory.

Provides:
- Base: Declarative base shared by auth, agent, and meeting tables
- get_session(): AsyncSession generator used by repositories and dependencies
- generate_id(): Text primary keys for application-created rows
- init_db() / close_db(): Lifespan hooks
- contains_pattern(): Escaped ILIKE substring patterns for search filters
"""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.buddy.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all Buddy AI tables."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def generate_id() -> str:
    """Return a 21-character URL-safe identifier."""
    return secrets.token_urlsafe(16)[:21]


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Verify connectivity on startup. Schema is owned by Alembic."""
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.exec_driver_sql("SELECT 1")


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None


# ── Query Helpers ───────────────────────────────────────────────────────────

LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching term as a literal substring.

    %, _ and the escape character itself are escaped so user input never
    acts as a wildcard. Use with ``escape=LIKE_ESCAPE``.
    """
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"
