"""Async HTTP clients for the Stream Video and Stream Chat REST APIs.

Provides StreamVideoClient (user upsert, call creation, user tokens) and
StreamChatClient (user upsert, chat tokens) with retry logic (tenacity,
3 attempts, exponential backoff 1-10s) on connection errors, timeouts,
and 5xx responses. Client errors (4xx) are raised immediately.

REST calls authenticate with a server JWT signed by the API secret; user
tokens are minted locally and never require a network round trip.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.buddy.core.security import create_stream_server_token, create_stream_user_token

logger = structlog.get_logger(__name__)


def is_transient_http_error(exc: BaseException) -> bool:
    """True for errors worth retrying: connect/timeout failures and 5xx."""
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


_stream_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient_http_error),
    reraise=True,
)


class _StreamClient:
    """Shared transport for the Stream REST APIs.

    Args:
        api_key: Stream application API key.
        secret: Stream application API secret.
        base_url: REST base URL for the product (video or chat).
    """

    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0

    def __init__(self, api_key: str, secret: str, base_url: str) -> None:
        self._api_key = api_key
        self._secret = secret
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": create_stream_server_token(secret),
            "stream-auth-type": "jwt",
            "Content-Type": "application/json",
        }

    @property
    def api_key(self) -> str:
        return self._api_key

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            params={"api_key": self._api_key},
            timeout=timeout,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()


class StreamVideoClient(_StreamClient):
    """Async client for Stream Video: users, calls, and user tokens."""

    def __init__(
        self,
        api_key: str,
        secret: str,
        base_url: str = "https://video.stream-io-api.com",
    ) -> None:
        super().__init__(api_key, secret, base_url)

    @_stream_retry
    async def upsert_users(self, users: list[dict[str, Any]]) -> dict[str, Any]:
        """Create or update platform users.

        POST /api/v2/users with {"users": {id: user}}.

        Args:
            users: User dicts with at least an "id" key.
        """
        data = await self._post(
            "/api/v2/users",
            {"users": {user["id"]: user for user in users}},
        )
        logger.info(
            "stream_video.users_upserted",
            user_ids=[user["id"] for user in users],
        )
        return data

    @_stream_retry
    async def create_call(
        self, call_type: str, call_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Get or create a call.

        POST /api/v2/video/call/{type}/{id} with {"data": data}. Creating an
        existing call returns it unchanged, so the call is safe to repeat.

        Args:
            call_type: Call type (e.g., "default").
            call_id: Call id (the meeting id).
            data: Call data: created_by_id, custom fields, settings_override.
        """
        response = await self._post(
            f"/api/v2/video/call/{call_type}/{call_id}",
            {"data": data},
        )
        logger.info(
            "stream_video.call_created",
            call_type=call_type,
            call_id=call_id,
            created=response.get("created"),
        )
        return response

    def generate_user_token(self, user_id: str, expires_in: int) -> str:
        """Mint a short-lived video user token."""
        return create_stream_user_token(user_id, self._secret, expires_in=expires_in)


class StreamChatClient(_StreamClient):
    """Async client for Stream Chat: users and chat tokens."""

    def __init__(
        self,
        api_key: str,
        secret: str,
        base_url: str = "https://chat.stream-io-api.com",
    ) -> None:
        super().__init__(api_key, secret, base_url)

    @_stream_retry
    async def upsert_user(self, user: dict[str, Any]) -> dict[str, Any]:
        """Create or update a chat user via POST /users."""
        data = await self._post("/users", {"users": {user["id"]: user}})
        logger.info("stream_chat.user_upserted", user_id=user["id"])
        return data

    def create_token(self, user_id: str) -> str:
        """Mint a chat user token (no expiry)."""
        return create_stream_user_token(user_id, self._secret, expires_in=None, issued_at_skew=0)
