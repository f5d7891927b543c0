"""Applies call-platform webhook events to meetings.

Each event is mapped through the lifecycle table: status-changing events
become conditional updates, artifact events (recording, transcript) write
their URL. Events for unknown meetings and unknown event types are
ignored so the platform never retries them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.buddy.meetings.lifecycle import (
    EVENT_EFFECTS,
    RECORDING_READY,
    TRANSCRIPTION_READY,
    next_status_for_event,
    sources_for,
)

logger = structlog.get_logger(__name__)


def extract_meeting_id(payload: dict[str, Any]) -> str | None:
    """Meeting id from call.custom.meetingId, else the call CID suffix."""
    call = payload.get("call")
    if not isinstance(call, dict):
        call = {}
    custom = call.get("custom")
    meeting_id = custom.get("meetingId") if isinstance(custom, dict) else None
    if isinstance(meeting_id, str) and meeting_id:
        return meeting_id
    cid = payload.get("call_cid") or call.get("cid")
    if isinstance(cid, str) and cid:
        return cid.split(":", 1)[-1] or None
    return None


def _artifact_url(payload: dict[str, Any], key: str) -> str | None:
    artifact = payload.get(key)
    url = artifact.get("url") if isinstance(artifact, dict) else None
    return url if isinstance(url, str) and url else None


def _artifact_fields(event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    if event_type == TRANSCRIPTION_READY:
        url = _artifact_url(payload, "call_transcription")
        return {"transcript_url": url} if url else {}
    if event_type == RECORDING_READY:
        url = _artifact_url(payload, "call_recording")
        return {"recording_url": url} if url else {}
    return {}


class CallEventHandler:
    """Routes webhook events to meeting updates.

    Args:
        meetings: MeetingRepository.
    """

    def __init__(self, meetings) -> None:
        self._meetings = meetings

    async def handle(
        self, event_type: str, payload: dict[str, Any], now: datetime | None = None
    ) -> str:
        """Apply one event.

        Returns:
            "applied", "noop" (already applied or out of order), "ignored"
            (not a meeting event) or "unknown_meeting".
        """
        effect = EVENT_EFFECTS.get(event_type)
        if effect is None:
            return "ignored"

        meeting_id = extract_meeting_id(payload)
        if not meeting_id:
            logger.warning("webhook.missing_meeting_id", event_type=event_type)
            return "ignored"

        meeting = await self._meetings.get_meeting_by_id(meeting_id)
        if meeting is None:
            logger.warning("webhook.unknown_meeting", event_type=event_type, meeting_id=meeting_id)
            return "unknown_meeting"

        fields = _artifact_fields(event_type, payload)
        target = next_status_for_event(event_type, meeting.status)

        if target is None:
            # Artifact-only event, or a status event that no longer applies
            if fields:
                await self._meetings.update_fields(meeting_id, **fields)
                return "applied"
            logger.info(
                "webhook.transition_skipped",
                event_type=event_type,
                meeting_id=meeting_id,
                status=meeting.status.value,
            )
            return "noop"

        if effect.timestamp_field:
            fields[effect.timestamp_field] = now or datetime.now(timezone.utc)
        updated = await self._meetings.transition_status(
            meeting_id, sources_for(target), target, **fields
        )
        if updated is None:
            return "noop"
        return "applied"
