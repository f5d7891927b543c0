"""Auth repository -- users, sessions, credential accounts, verifications.

Provides AuthRepository with the session_factory callable pattern. Session
lookups exclude expired rows, so callers never need to re-check expiry.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.buddy.core.database import generate_id
from src.buddy.models.auth import Account, Session, User, Verification
from src.buddy.schemas.auth import SessionRead, UserRead

logger = structlog.get_logger(__name__)

CREDENTIAL_PROVIDER = "credential"


def _model_to_user(model: User) -> UserRead:
    return UserRead.model_validate(model)


def _model_to_session(model: Session) -> SessionRead:
    return SessionRead.model_validate(model)


class AuthRepository:
    """Async persistence for the authentication tables.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Users ────────────────────────────────────────────────────────────

    async def get_user_by_email(self, email: str) -> UserRead | None:
        async for session in self._session_factory():
            result = await session.execute(select(User).where(User.email == email))
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model is not None else None

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> list[UserRead]:
        ids = list(set(user_ids))
        if not ids:
            return []
        async for session in self._session_factory():
            result = await session.execute(select(User).where(User.id.in_(ids)))
            return [_model_to_user(m) for m in result.scalars().all()]

    async def create_user_with_password(
        self, name: str, email: str, password_hash: str
    ) -> UserRead:
        """Create a user and its credential account in one transaction.

        Raises:
            sqlalchemy.exc.IntegrityError: If the email is already registered.
        """
        now = datetime.now(timezone.utc)
        async for session in self._session_factory():
            user = User(
                id=generate_id(),
                name=name,
                email=email,
                email_verified=False,
                created_at=now,
                updated_at=now,
            )
            session.add(user)
            session.add(
                Account(
                    id=generate_id(),
                    account_id=user.id,
                    provider_id=CREDENTIAL_PROVIDER,
                    user_id=user.id,
                    password=password_hash,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.commit()
            await session.refresh(user)
            logger.info("auth.user_created", user_id=user.id)
            return _model_to_user(user)

    async def get_password_hash(self, user_id: str) -> str | None:
        """Bcrypt hash of the user's credential account, if any."""
        async for session in self._session_factory():
            result = await session.execute(
                select(Account.password).where(
                    Account.user_id == user_id,
                    Account.provider_id == CREDENTIAL_PROVIDER,
                )
            )
            return result.scalars().first()

    async def mark_email_verified(self, email: str) -> UserRead | None:
        async for session in self._session_factory():
            stmt = (
                update(User)
                .where(User.email == email)
                .values(email_verified=True, updated_at=datetime.now(timezone.utc))
                .returning(User)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return _model_to_user(model) if model is not None else None

    # ── Sessions ─────────────────────────────────────────────────────────

    async def create_session(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SessionRead:
        now = datetime.now(timezone.utc)
        async for session in self._session_factory():
            model = Session(
                id=generate_id(),
                token=token,
                user_id=user_id,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            await session.commit()
            return _model_to_session(model)

    async def get_session_by_token(
        self, token: str, now: datetime | None = None
    ) -> tuple[SessionRead, UserRead] | None:
        """Resolve an unexpired session and its user by token."""
        now = now or datetime.now(timezone.utc)
        async for session in self._session_factory():
            stmt = (
                select(Session, User)
                .join(User, Session.user_id == User.id)
                .where(Session.token == token, Session.expires_at > now)
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            return _model_to_session(row[0]), _model_to_user(row[1])

    async def delete_session(self, token: str) -> bool:
        async for session in self._session_factory():
            result = await session.execute(delete(Session).where(Session.token == token))
            await session.commit()
            return result.rowcount > 0

    # ── Verifications ────────────────────────────────────────────────────

    async def create_verification(
        self, identifier: str, value: str, expires_at: datetime
    ) -> None:
        async for session in self._session_factory():
            session.add(
                Verification(
                    id=generate_id(),
                    identifier=identifier,
                    value=value,
                    expires_at=expires_at,
                )
            )
            await session.commit()

    async def consume_verification(
        self, value: str, now: datetime | None = None
    ) -> str | None:
        """Delete an unexpired verification and return its identifier."""
        now = now or datetime.now(timezone.utc)
        async for session in self._session_factory():
            stmt = (
                delete(Verification)
                .where(Verification.value == value, Verification.expires_at > now)
                .returning(Verification.identifier)
            )
            identifier = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return identifier
