"""External video call provisioning for meetings.

CallProvisioner creates the platform call for a meeting and registers the
meeting's agent as a call participant, then settles the meeting's call
intent (the outbox row written with the meeting). Both the create
procedure and the reconciler go through run_intent so an intent is only
ever marked completed after the call exists.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.buddy.agents.schemas import Agent
from src.buddy.core.monitoring import call_provisioning_total
from src.buddy.meetings.schemas import CallIntent, Meeting
from src.buddy.services.avatar import DEFAULT_AVATAR_BASE_URL, AvatarVariant, generate_avatar_uri
from src.buddy.services.stream import StreamVideoClient

logger = structlog.get_logger(__name__)

CALL_TYPE = "default"


def build_call_data(meeting: Meeting) -> dict[str, Any]:
    """Call creation payload: owner, meeting reference, auto transcription and recording."""
    return {
        "created_by_id": meeting.user_id,
        "custom": {
            "meetingId": meeting.id,
            "meetingName": meeting.name,
        },
        "settings_override": {
            "transcription": {
                "language": "en",
                "mode": "auto-on",
                "closed_caption_mode": "auto-on",
            },
            "recording": {
                "mode": "auto-on",
                "quality": "1080p",
            },
        },
    }


class CallProvisioner:
    """Creates platform calls and settles call intents.

    Args:
        video: Stream Video client.
        meetings: MeetingRepository (intent status updates).
        avatar_base_url: Base URL for the agent's generated avatar.
    """

    def __init__(
        self,
        video: StreamVideoClient,
        meetings,
        avatar_base_url: str = DEFAULT_AVATAR_BASE_URL,
    ) -> None:
        self._video = video
        self._meetings = meetings
        self._avatar_base_url = avatar_base_url

    async def provision(self, meeting: Meeting, agent: Agent) -> None:
        """Create the call and upsert the agent as a participant.

        Call creation is get-or-create on the platform side, so repeating
        this for the same meeting is harmless.

        Raises:
            httpx.HTTPError: If either platform request fails after retries.
        """
        await self._video.create_call(CALL_TYPE, meeting.id, build_call_data(meeting))
        await self._video.upsert_users(
            [
                {
                    "id": agent.id,
                    "name": agent.name,
                    "role": "admin",
                    "image": generate_avatar_uri(
                        agent.name, AvatarVariant.BOTTTS_NEUTRAL, self._avatar_base_url
                    ),
                }
            ]
        )

    async def run_intent(
        self, intent: CallIntent, meeting: Meeting, agent: Agent, source: str
    ) -> bool:
        """Provision and record the outcome on the intent.

        Args:
            intent: The meeting's call intent.
            meeting: The meeting the call is for.
            agent: The meeting's agent.
            source: "create" or "reconciler", for logs and metrics.

        Returns:
            True if the call now exists and the intent is completed.
        """
        try:
            await self.provision(meeting, agent)
        except httpx.HTTPError as exc:
            await self._meetings.mark_intent_failed(intent.id, str(exc) or type(exc).__name__)
            call_provisioning_total.labels(source=source, outcome="failed").inc()
            logger.warning(
                "meetings.call_provision_failed",
                meeting_id=meeting.id,
                intent_id=intent.id,
                source=source,
                error=str(exc),
            )
            return False

        await self._meetings.mark_intent_completed(intent.id)
        call_provisioning_total.labels(source=source, outcome="completed").inc()
        logger.info(
            "meetings.call_provisioned",
            meeting_id=meeting.id,
            intent_id=intent.id,
            source=source,
        )
        return True
