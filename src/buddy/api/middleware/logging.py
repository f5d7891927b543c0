"""Structured request logging.

configure_structlog() sets up JSON output in production and console output
elsewhere. LoggingMiddleware emits one ``http.request`` line per request
carrying the request id, the signed-in user (when the session resolved)
and the elapsed time, and echoes the id back in X-Request-ID.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.buddy.config import Environment, get_settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes hit these every few seconds; only failures are worth a line.
QUIET_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


def configure_structlog() -> None:
    """Route structlog through stdlib logging at the configured level."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request once it completes.

    An inbound X-Request-ID is reused so ids line up with the proxy's logs;
    otherwise a fresh one is generated. The id is bound to structlog
    contextvars for the duration of the request.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.monotonic()
        status_code = 500
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            level = _level_for(status_code)
            if request.url.path not in QUIET_PATHS or level > logging.INFO:
                logger.log(
                    level,
                    "http.request",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round((time.monotonic() - started) * 1000, 2),
                    user_id=getattr(request.state, "user_id", None),
                )
            structlog.contextvars.unbind_contextvars("request_id")
