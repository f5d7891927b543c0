"""Transcript retrieval and speaker resolution.

Transcripts are NDJSON files produced by the call platform, one record per
utterance. Fetching is best-effort: any transport, status or parse failure
yields an empty transcript rather than an error. Speaker ids are resolved
against users and agents in two batched lookups.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable

import httpx
import structlog

from src.buddy.agents.schemas import Agent
from src.buddy.meetings.schemas import SpeakerKind, TranscriptItem, TranscriptLine, TranscriptSpeaker
from src.buddy.schemas.auth import UserRead
from src.buddy.services.avatar import DEFAULT_AVATAR_BASE_URL, AvatarVariant, generate_avatar_uri

logger = structlog.get_logger(__name__)

TRANSCRIPT_FETCH_TIMEOUT = 10.0
UNKNOWN_SPEAKER_NAME = "Unknown"


def parse_ndjson(text: str) -> list[TranscriptItem]:
    """Parse NDJSON transcript text; blank lines are skipped.

    Raises:
        ValueError: On a malformed line (including validation errors).
    """
    items: list[TranscriptItem] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        items.append(TranscriptItem.model_validate(json.loads(line)))
    return items


async def fetch_transcript(url: str, timeout: float = TRANSCRIPT_FETCH_TIMEOUT) -> list[TranscriptItem]:
    """Download and parse a transcript; [] on any failure."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return parse_ndjson(response.text)
    except httpx.HTTPError as exc:
        logger.warning("transcript.fetch_failed", url=url, error=str(exc))
    except (ValueError, RecursionError) as exc:
        logger.warning("transcript.parse_failed", url=url, error=str(exc))
    return []


def resolve_speakers(
    items: Iterable[TranscriptItem],
    users: Iterable[UserRead],
    agents: Iterable[Agent],
    avatar_base_url: str = DEFAULT_AVATAR_BASE_URL,
) -> list[TranscriptLine]:
    """Attach a display identity to every transcript record.

    Users keep their own image or get an initials avatar; agents always get
    a bottts-neutral avatar. Ids matching neither become "Unknown".
    """
    speakers: dict[str, TranscriptSpeaker] = {}
    for user in users:
        speakers[user.id] = TranscriptSpeaker(
            id=user.id,
            name=user.name,
            image=user.image
            or generate_avatar_uri(user.name, AvatarVariant.INITIALS, avatar_base_url),
            kind=SpeakerKind.USER,
        )
    for agent in agents:
        speakers[agent.id] = TranscriptSpeaker(
            id=agent.id,
            name=agent.name,
            image=generate_avatar_uri(agent.name, AvatarVariant.BOTTTS_NEUTRAL, avatar_base_url),
            kind=SpeakerKind.AGENT,
        )
    unknown = TranscriptSpeaker(
        id=None,
        name=UNKNOWN_SPEAKER_NAME,
        image=generate_avatar_uri(UNKNOWN_SPEAKER_NAME, AvatarVariant.INITIALS, avatar_base_url),
        kind=SpeakerKind.UNKNOWN,
    )
    return [
        TranscriptLine.model_validate(
            {**item.model_dump(), "user": speakers.get(item.speaker_id, unknown)}
        )
        for item in items
    ]


class TranscriptService:
    """Fetches a meeting transcript and labels its speakers.

    Args:
        users: Object with ``get_users_by_ids`` (AuthRepository).
        agents: Object with ``get_agents_by_ids`` (AgentRepository).
        avatar_base_url: Base URL for generated avatars.
        fetcher: Transcript downloader; replaced in tests.
    """

    def __init__(
        self,
        users,
        agents,
        avatar_base_url: str = DEFAULT_AVATAR_BASE_URL,
        fetcher: Callable[[str], Awaitable[list[TranscriptItem]]] = fetch_transcript,
    ) -> None:
        self._users = users
        self._agents = agents
        self._avatar_base_url = avatar_base_url
        self._fetch = fetcher

    async def get_lines(self, transcript_url: str | None) -> list[TranscriptLine]:
        if not transcript_url:
            return []
        items = await self._fetch(transcript_url)
        if not items:
            return []
        speaker_ids = {item.speaker_id for item in items}
        users = await self._users.get_users_by_ids(speaker_ids)
        agents = await self._agents.get_agents_by_ids(speaker_ids)
        return resolve_speakers(items, users, agents, self._avatar_base_url)
