"""Prometheus metrics and Sentry setup.

HTTP metrics are labelled by route template (``/api/trpc/{path}``,
``/meetings/{meeting_id}``) rather than the raw URL so label cardinality
stays bounded. Procedure-level detail lives in the rpc_* series instead.
"""

from __future__ import annotations

import time

import sentry_sdk
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

http_requests_total = Counter(
    "buddy_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status_code"],
)
http_request_duration_seconds = Histogram(
    "buddy_http_request_duration_seconds",
    "HTTP request latency by route template",
    ["method", "route"],
    buckets=LATENCY_BUCKETS,
)

rpc_calls_total = Counter(
    "buddy_rpc_calls_total",
    "Procedure calls by path and outcome (ok or an error code)",
    ["path", "outcome"],
)
rpc_call_duration_seconds = Histogram(
    "buddy_rpc_call_duration_seconds",
    "Procedure latency by path",
    ["path"],
    buckets=LATENCY_BUCKETS,
)

call_provisioning_total = Counter(
    "buddy_call_provisioning_total",
    "Video call creation attempts by source (create, reconcile) and outcome",
    ["source", "outcome"],
)
webhook_events_total = Counter(
    "buddy_webhook_events_total",
    "Call platform webhook deliveries by event type and handling outcome",
    ["event_type", "outcome"],
)


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    # Unmatched requests collapse into one series
    return getattr(route, "path", "unmatched")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time every request except scrapes of /metrics."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = _route_label(request)
            http_requests_total.labels(request.method, route, str(status_code)).inc()
            http_request_duration_seconds.labels(request.method, route).observe(
                time.perf_counter() - started
            )


def record_rpc_call(path: str, outcome: str, duration: float) -> None:
    rpc_calls_total.labels(path=path, outcome=outcome).inc()
    rpc_call_duration_seconds.labels(path=path).observe(duration)


def metrics_response() -> Response:
    """Prometheus text exposition of the default registry."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


# ── Sentry ───────────────────────────────────────────────────────────────────

SCRUBBED_HEADERS = frozenset({"cookie", "authorization", "x-api-key", "x-signature"})


def scrub_event(event: dict, hint: dict) -> dict:
    """Blank out session credentials and webhook secrets before sending."""
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in headers:
            if name.lower() in SCRUBBED_HEADERS:
                headers[name] = "[Filtered]"
    return event


def init_sentry(dsn: str, environment: str) -> None:
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1 if environment == "production" else 1.0,
        send_default_pii=False,
        integrations=[StarletteIntegration(), FastApiIntegration()],
        before_send=scrub_event,
    )


def tag_sentry_user(user_id: str) -> None:
    sentry_sdk.set_user({"id": user_id})
