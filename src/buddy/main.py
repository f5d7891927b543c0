"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events that build the repositories, external clients and the
procedure tree, and the API router.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.buddy.agents.repository import AgentRepository
from src.buddy.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.buddy.api.router import router as api_router
from src.buddy.auth.repository import AuthRepository
from src.buddy.auth.service import AuthService
from src.buddy.config import Settings, get_settings
from src.buddy.core.database import close_db, get_session, init_db
from src.buddy.core.monitoring import MetricsMiddleware, init_sentry, metrics_response
from src.buddy.core.redis import JsonCache, close_redis, get_redis_pool
from src.buddy.meetings.events import CallEventHandler
from src.buddy.meetings.provisioning import CallProvisioner
from src.buddy.meetings.reconciler import CallReconciler, start_reconciler_background
from src.buddy.meetings.repository import MeetingRepository
from src.buddy.meetings.transcript import TranscriptService
from src.buddy.premium.service import BillingService
from src.buddy.rpc.app_router import AppServices, build_app_router
from src.buddy.services.polar import PolarClient
from src.buddy.services.stream import StreamChatClient, StreamVideoClient


def build_services(app: FastAPI, settings: Settings) -> AppServices:
    """Construct repositories and clients and store them on app.state."""
    agent_repo = AgentRepository(session_factory=get_session)
    meeting_repo = MeetingRepository(session_factory=get_session)
    auth_repo = AuthRepository(session_factory=get_session)

    video = StreamVideoClient(
        api_key=settings.STREAM_VIDEO_API_KEY,
        secret=settings.STREAM_VIDEO_SECRET_KEY,
    )
    chat = StreamChatClient(
        api_key=settings.STREAM_CHAT_API_KEY,
        secret=settings.STREAM_CHAT_SECRET_KEY,
    )
    polar = (
        PolarClient(access_token=settings.POLAR_ACCESS_TOKEN, base_url=settings.polar_base_url)
        if settings.billing_enabled
        else None
    )

    billing = BillingService(
        polar=polar,
        cache=JsonCache(get_redis_pool()),
        agents=agent_repo,
        meetings=meeting_repo,
        free_agent_limit=settings.FREE_AGENT_LIMIT,
        free_meeting_limit=settings.FREE_MEETING_LIMIT,
        products_cache_ttl=settings.PRODUCTS_CACHE_TTL,
    )
    provisioner = CallProvisioner(
        video=video,
        meetings=meeting_repo,
        avatar_base_url=settings.AVATAR_BASE_URL,
    )
    services = AppServices(
        agents=agent_repo,
        meetings=meeting_repo,
        billing=billing,
        provisioner=provisioner,
        transcripts=TranscriptService(
            users=auth_repo,
            agents=agent_repo,
            avatar_base_url=settings.AVATAR_BASE_URL,
        ),
        video=video,
        chat=chat,
        token_ttl_seconds=settings.STREAM_TOKEN_TTL_SECONDS,
        avatar_base_url=settings.AVATAR_BASE_URL,
    )

    app.state.app_router = build_app_router(services)
    app.state.auth_service = AuthService(repository=auth_repo, settings=settings)
    app.state.call_event_handler = CallEventHandler(meetings=meeting_repo)
    app.state.call_reconciler = CallReconciler(
        meetings=meeting_repo,
        agents=agent_repo,
        provisioner=provisioner,
        grace_seconds=settings.CALL_RECONCILE_GRACE_SECONDS,
        max_attempts=settings.CALL_RECONCILE_MAX_ATTEMPTS,
        batch_size=settings.CALL_RECONCILE_BATCH_SIZE,
    )
    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, services and the reconciler; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    build_services(app, settings)
    log.info(
        "app.services_initialized",
        procedures=len(app.state.app_router),
        billing_enabled=settings.billing_enabled,
    )

    start_reconciler_background(
        app.state.call_reconciler,
        settings.CALL_RECONCILE_INTERVAL_SECONDS,
        app.state,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    reconciler_task = getattr(app.state, "call_reconciler_task", None)
    if reconciler_task and not reconciler_task.done():
        reconciler_task.cancel()
        try:
            await reconciler_task
        except asyncio.CancelledError:
            pass
        log.info("reconciler.stopped")

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Buddy AI API",
        version="0.1.0",
        description="AI agents and AI-assisted video meetings",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(api_router)

    # Prometheus metrics endpoint (infrastructure route)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
