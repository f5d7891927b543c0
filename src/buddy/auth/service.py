"""Email/password authentication with opaque server-side sessions.

AuthService implements sign-up, sign-in, sign-out, session resolution and
email verification on top of AuthRepository. It raises the domain errors
below; the HTTP routes translate them into status codes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import IntegrityError

from src.buddy.auth.repository import AuthRepository
from src.buddy.config import Settings
from src.buddy.core.context import RequestContext
from src.buddy.core.security import (
    generate_session_token,
    generate_verification_token,
    hash_password,
    verify_password,
)
from src.buddy.schemas.auth import SessionRead, SignInRequest, SignUpRequest, UserRead

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    """Base class for authentication failures."""


class EmailAlreadyRegisteredError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


class InvalidVerificationTokenError(AuthError):
    pass


_dummy_hash: str | None = None


def _timing_dummy_hash() -> str:
    """A real bcrypt hash checked when the email is unknown."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("buddy-timing-equalizer")
    return _dummy_hash


class AuthService:
    """Sign-up/sign-in flows and session management.

    Args:
        repository: AuthRepository (or an in-memory equivalent in tests).
        settings: Session and verification lifetimes.
    """

    def __init__(self, repository: AuthRepository, settings: Settings) -> None:
        self._repo = repository
        self._session_ttl = timedelta(days=settings.SESSION_EXPIRE_DAYS)
        self._verification_ttl = timedelta(minutes=settings.VERIFICATION_EXPIRE_MINUTES)

    async def _open_session(
        self, user: UserRead, ip_address: str | None, user_agent: str | None
    ) -> tuple[str, SessionRead]:
        token = generate_session_token()
        session = await self._repo.create_session(
            user_id=user.id,
            token=token,
            expires_at=datetime.now(timezone.utc) + self._session_ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return token, session

    async def sign_up(
        self,
        data: SignUpRequest,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[str, UserRead]:
        """Create the user, its credential account, a verification and a session.

        Raises:
            EmailAlreadyRegisteredError: The email already belongs to a user.
        """
        email = data.email.lower()
        if await self._repo.get_user_by_email(email) is not None:
            raise EmailAlreadyRegisteredError(email)
        try:
            user = await self._repo.create_user_with_password(
                name=data.name,
                email=email,
                password_hash=hash_password(data.password),
            )
        except IntegrityError as exc:
            raise EmailAlreadyRegisteredError(email) from exc

        verification_token = generate_verification_token()
        await self._repo.create_verification(
            identifier=email,
            value=verification_token,
            expires_at=datetime.now(timezone.utc) + self._verification_ttl,
        )
        # Delivery of the verification link is handled by the mailer
        logger.info("auth.verification_issued", user_id=user.id)

        token, _ = await self._open_session(user, ip_address, user_agent)
        logger.info("auth.signed_up", user_id=user.id)
        return token, user

    async def sign_in(
        self,
        data: SignInRequest,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[str, UserRead]:
        """Check the password and open a session.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password. Both
                paths run a bcrypt check so they take comparable time.
        """
        user = await self._repo.get_user_by_email(data.email.lower())
        password_hash = await self._repo.get_password_hash(user.id) if user else None
        if not verify_password(data.password, password_hash or _timing_dummy_hash()):
            raise InvalidCredentialsError()
        if user is None or password_hash is None:
            raise InvalidCredentialsError()

        token, _ = await self._open_session(user, ip_address, user_agent)
        logger.info("auth.signed_in", user_id=user.id)
        return token, user

    async def sign_out(self, token: str | None) -> None:
        if token:
            await self._repo.delete_session(token)

    async def get_session(self, token: str | None) -> tuple[SessionRead, UserRead] | None:
        """Unexpired session and user for a token, or None."""
        if not token:
            return None
        return await self._repo.get_session_by_token(token)

    async def resolve_context(self, token: str | None) -> RequestContext | None:
        found = await self.get_session(token)
        if found is None:
            return None
        session, user = found
        return RequestContext(user=user, session=session)

    async def verify_email(self, token: str) -> UserRead:
        """Consume a verification token and mark the email verified.

        Raises:
            InvalidVerificationTokenError: Unknown, used or expired token.
        """
        identifier = await self._repo.consume_verification(token)
        if identifier is None:
            raise InvalidVerificationTokenError()
        user = await self._repo.mark_email_verified(identifier)
        if user is None:
            raise InvalidVerificationTokenError()
        logger.info("auth.email_verified", user_id=user.id)
        return user
