"""Meeting status state machine and webhook event mapping.

upcoming -> active -> processing -> completed, with cancelled reachable
from any non-terminal state. completed and cancelled are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.buddy.meetings.schemas import MeetingStatus

TRANSITIONS: dict[MeetingStatus, frozenset[MeetingStatus]] = {
    MeetingStatus.UPCOMING: frozenset({MeetingStatus.ACTIVE, MeetingStatus.CANCELLED}),
    MeetingStatus.ACTIVE: frozenset({MeetingStatus.PROCESSING, MeetingStatus.CANCELLED}),
    MeetingStatus.PROCESSING: frozenset({MeetingStatus.COMPLETED, MeetingStatus.CANCELLED}),
    MeetingStatus.COMPLETED: frozenset(),
    MeetingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in TRANSITIONS[current]


def sources_for(target: MeetingStatus) -> list[MeetingStatus]:
    """Statuses from which target is reachable in one step."""
    return [s for s, targets in TRANSITIONS.items() if target in targets]


# ── Call platform events ─────────────────────────────────────────────────────

SESSION_STARTED = "call.session_started"
SESSION_ENDED = "call.session_ended"
TRANSCRIPTION_READY = "call.transcription_ready"
RECORDING_READY = "call.recording_ready"


@dataclass(frozen=True)
class EventEffect:
    """What a webhook event does to a meeting.

    target is None for events that only attach artifacts. timestamp_field
    names the column stamped with the event time on transition.
    """

    target: MeetingStatus | None
    timestamp_field: str | None = None


EVENT_EFFECTS: dict[str, EventEffect] = {
    SESSION_STARTED: EventEffect(MeetingStatus.ACTIVE, "started_at"),
    SESSION_ENDED: EventEffect(MeetingStatus.PROCESSING, "ended_at"),
    TRANSCRIPTION_READY: EventEffect(MeetingStatus.COMPLETED),
    RECORDING_READY: EventEffect(None),
}


def next_status_for_event(event_type: str, current: MeetingStatus) -> MeetingStatus | None:
    """Status the event moves a meeting in ``current`` to, or None for no change."""
    effect = EVENT_EFFECTS.get(event_type)
    if effect is None or effect.target is None:
        return None
    if not can_transition(current, effect.target):
        return None
    return effect.target
