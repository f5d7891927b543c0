"""Assembly of the application's procedure tree.

AppServices bundles the repositories and clients the procedures close
over; build_app_router wires them into ``agents.*``, ``meetings.*`` and
``premium.*``. The lifespan builds one AppServices per process; tests
build it from in-memory doubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.buddy.agents.procedures import build_agents_router
from src.buddy.meetings.procedures import build_meetings_router
from src.buddy.premium.procedures import build_premium_router
from src.buddy.rpc.procedures import Router


@dataclass
class AppServices:
    """Everything the procedures need, injected explicitly."""

    agents: Any
    meetings: Any
    billing: Any
    provisioner: Any
    transcripts: Any
    video: Any
    chat: Any
    token_ttl_seconds: int = 3600
    avatar_base_url: str | None = None


def build_app_router(services: AppServices) -> Router:
    return Router(
        {
            "agents": build_agents_router(services.agents, services.billing),
            "meetings": build_meetings_router(
                meetings=services.meetings,
                agents=services.agents,
                billing=services.billing,
                provisioner=services.provisioner,
                transcripts=services.transcripts,
                video=services.video,
                chat=services.chat,
                token_ttl_seconds=services.token_ttl_seconds,
                avatar_base_url=services.avatar_base_url,
            ),
            "premium": build_premium_router(services.billing),
        }
    )
