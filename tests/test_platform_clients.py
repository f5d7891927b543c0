"""Tests for the Stream Video, Stream Chat and Polar HTTP clients.

httpx.AsyncClient methods are patched so no network traffic occurs. Retry
behaviour is verified with a transient 503 followed by success, and with
a 4xx that must not be retried.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from jose import jwt

from src.buddy.services.polar import PolarClient
from src.buddy.services.stream import (
    StreamChatClient,
    StreamVideoClient,
    is_transient_http_error,
)

API_KEY = "stream-key"
SECRET = "stream-secret"


def _response(status_code: int, method: str = "POST", json: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=json if json is not None else {},
        request=httpx.Request(method, "https://test.com"),
    )


@pytest.fixture
def video_client():
    return StreamVideoClient(api_key=API_KEY, secret=SECRET)


@pytest.fixture
def chat_client():
    return StreamChatClient(api_key=API_KEY, secret=SECRET)


# ── Transient error classification ───────────────────────────────────────────


@pytest.mark.parametrize("exc,expected", [
    (httpx.ConnectError("refused"), True),
    (httpx.ReadTimeout("slow"), True),
    (httpx.HTTPStatusError("boom", request=httpx.Request("GET", "https://x"), response=_response(502)), True),
    (httpx.HTTPStatusError("nope", request=httpx.Request("GET", "https://x"), response=_response(404)), False),
    (ValueError("not http"), False),
])
def test_is_transient_http_error(exc, expected):
    assert is_transient_http_error(exc) is expected


# ── StreamVideoClient ────────────────────────────────────────────────────────


class TestStreamVideoClient:
    """Tests for the Stream Video REST wrapper."""

    async def test_create_call_posts_call_data(self, video_client):
        data = {"created_by_id": "u1", "custom": {"meetingId": "m1"}}

        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            return_value=_response(201, json={"created": True}),
        ) as mock_post:
            result = await video_client.create_call("default", "m1", data)

        assert result == {"created": True}
        url = mock_post.call_args.args[0]
        assert url == "https://video.stream-io-api.com/api/v2/video/call/default/m1"
        assert mock_post.call_args.kwargs["json"] == {"data": data}

    async def test_upsert_users_keys_users_by_id(self, video_client):
        users = [{"id": "u1", "name": "Ann", "role": "admin"}, {"id": "a1", "name": "Bot"}]

        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(200)
        ) as mock_post:
            await video_client.upsert_users(users)

        assert mock_post.call_args.args[0].endswith("/api/v2/users")
        assert set(mock_post.call_args.kwargs["json"]["users"]) == {"u1", "a1"}

    async def test_retry_on_transient_failure(self, video_client):
        """A 503 is retried and the second attempt succeeds."""
        call_count = 0

        async def mock_post(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return _response(503)
            return _response(200, json={"created": False})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=mock_post):
            result = await video_client.create_call("default", "m1", {})

        assert result == {"created": False}
        assert call_count == 2

    async def test_client_error_is_not_retried(self, video_client):
        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(400)
        ) as mock_post:
            with pytest.raises(httpx.HTTPStatusError):
                await video_client.create_call("default", "m1", {})

        assert mock_post.await_count == 1

    def test_user_token_claims(self, video_client):
        token = video_client.generate_user_token("u1", expires_in=3600)

        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert claims["user_id"] == "u1"
        assert claims["exp"] - claims["iat"] == 3600 + 60

    def test_server_token_header(self, video_client):
        headers = video_client._headers
        assert headers["stream-auth-type"] == "jwt"
        assert jwt.decode(headers["Authorization"], SECRET, algorithms=["HS256"]) == {"server": True}


# ── StreamChatClient ─────────────────────────────────────────────────────────


class TestStreamChatClient:
    async def test_upsert_user(self, chat_client):
        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(201)
        ) as mock_post:
            await chat_client.upsert_user({"id": "u1", "name": "Ann"})

        assert mock_post.call_args.args[0] == "https://chat.stream-io-api.com/users"
        assert mock_post.call_args.kwargs["json"] == {"users": {"u1": {"id": "u1", "name": "Ann"}}}

    def test_chat_token_does_not_expire(self, chat_client):
        claims = jwt.decode(chat_client.create_token("u1"), SECRET, algorithms=["HS256"])
        assert claims["user_id"] == "u1"
        assert "exp" not in claims


# ── PolarClient ──────────────────────────────────────────────────────────────


class TestPolarClient:
    async def test_list_products_filters_recurring(self):
        client = PolarClient(access_token="polar-token")
        response = _response(200, method="GET", json={"items": [{"id": "p1"}]})

        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=response
        ) as mock_get:
            products = await client.list_products()

        assert products == [{"id": "p1"}]
        assert mock_get.call_args.args[0] == "https://api.polar.sh/v1/products/"
        assert mock_get.call_args.kwargs["params"] == {
            "is_archived": "false",
            "is_recurring": "true",
            "sorting": "price_amount",
        }

    async def test_unknown_customer_has_no_subscriptions(self):
        client = PolarClient(access_token="polar-token")

        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            return_value=_response(404, method="GET"),
        ):
            assert await client.get_customer_state("u-unknown") is None
            assert await client.get_active_subscriptions("u-unknown") == []
