"""Per-request authentication context.

The RequestContext is resolved from the session cookie (or bearer token)
at the start of each request and passed explicitly into every procedure.
Procedures never reach for a module-level auth client.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.buddy.schemas.auth import SessionRead, UserRead


@dataclass(frozen=True)
class RequestContext:
    """Immutable authenticated context for the current request."""

    user: UserRead
    session: SessionRead

    @property
    def user_id(self) -> str:
        return self.user.id
