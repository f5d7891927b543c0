"""Call-platform webhook receiver: POST /api/webhook.

The platform signs the raw body with HMAC-SHA256 under the Stream Video
secret (x-signature) and names the application (x-api-key). Both must
match before the payload is parsed. Valid events are applied through
CallEventHandler; unknown events and meetings are acknowledged with 200
so the platform does not retry them.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from src.buddy.config import get_settings
from src.buddy.core.monitoring import webhook_events_total
from src.buddy.core.security import verify_webhook_signature

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["webhooks"])


@router.post("/webhook")
async def receive_webhook(request: Request) -> dict:
    """Apply a signed call lifecycle event to its meeting."""
    settings = get_settings()
    body = await request.body()

    signature = request.headers.get("x-signature")
    api_key = request.headers.get("x-api-key")
    if (
        not settings.STREAM_VIDEO_API_KEY
        or api_key != settings.STREAM_VIDEO_API_KEY
        or not verify_webhook_signature(body, signature, settings.STREAM_VIDEO_SECRET_KEY)
    ):
        logger.warning("webhook.invalid_signature")
        webhook_events_total.labels(event_type="unknown", outcome="unauthorized").inc()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    event_type = payload.get("type", "")
    handler = getattr(request.app.state, "call_event_handler", None)
    if handler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="call_event_handler not available",
        )

    outcome = await handler.handle(event_type, payload)
    webhook_events_total.labels(event_type=event_type or "unknown", outcome=outcome).inc()
    logger.info("webhook.event_processed", event_type=event_type, outcome=outcome)
    return {"status": outcome}
