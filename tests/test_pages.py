"""Tests for session-gated pages and their prefetched query state."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from src.buddy.meetings.schemas import MeetingStatus
from tests.doubles import build_backend, build_test_app


async def _agent_and_meeting(backend, ctx):
    agent = await backend.router.call("agents.create", ctx, {"name": "Coach", "instructions": "x"})
    meeting = await backend.router.call(
        "meetings.create", ctx, {"name": "Session", "agentId": agent.id}
    )
    return agent, meeting


@pytest.mark.parametrize("path", [
    "/",
    "/agents",
    "/agents/abc",
    "/meetings",
    "/meetings/abc",
    "/call/abc",
    "/upgrade",
])
async def test_anonymous_visitors_are_redirected(client, path):
    response = await client.get(path, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/sign-in"


async def test_auth_pages_redirect_signed_in_users(client, alice_headers):
    for path in ("/sign-in", "/sign-up"):
        response = await client.get(path, headers=alice_headers, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/"


async def test_sign_in_page_for_anonymous(client):
    response = await client.get("/sign-in")
    assert response.json() == {"page": "sign-in"}


async def test_agents_page_prefetches_list_with_query_filters(client, backend, alice_ctx, alice_headers):
    await backend.router.call("agents.create", alice_ctx, {"name": "Spanish Tutor", "instructions": "x"})
    await backend.router.call("agents.create", alice_ctx, {"name": "Chess Coach", "instructions": "x"})

    response = await client.get("/agents", params={"search": "tutor", "page": "1"}, headers=alice_headers)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["page"] == "agents"
    assert body["user"]["id"] == alice_ctx.user_id
    (query,) = body["queries"]
    assert query["queryKey"] == ["agents.getMany", {"page": "1", "search": "tutor"}]
    assert [a["name"] for a in query["data"]["items"]] == ["Spanish Tutor"]
    assert query["data"]["items"][0]["meetingCount"] == 0


async def test_agent_detail_of_another_user_is_not_found(client, backend, bob_ctx, alice_headers):
    agent = await backend.router.call("agents.create", bob_ctx, {"name": "Bob's", "instructions": "x"})

    response = await client.get(f"/agents/{agent.id}", headers=alice_headers)

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["path"] == "agents.getOne"


async def test_meetings_page_passes_status_filter(client, backend, alice_ctx, alice_headers):
    await _agent_and_meeting(backend, alice_ctx)

    response = await client.get("/meetings", params={"status": "completed"}, headers=alice_headers)

    (query,) = response.json()["queries"]
    assert query["queryKey"] == ["meetings.getMany", {"status": "completed"}]
    assert query["data"]["total"] == 0


async def test_meeting_page_view_follows_status(client, backend, alice_ctx, alice_headers):
    _, meeting = await _agent_and_meeting(backend, alice_ctx)

    response = await client.get(f"/meetings/{meeting.id}", headers=alice_headers)

    body = response.json()
    assert body["view"] == "upcoming"
    data = body["queries"][0]["data"]
    assert data["agent"]["name"] == "Coach"
    assert data["status"] == "upcoming"


@pytest.mark.parametrize("status,view", [
    (MeetingStatus.UPCOMING, "lobby"),
    (MeetingStatus.ACTIVE, "lobby"),
    (MeetingStatus.COMPLETED, "ended"),
])
async def test_call_page_view(client, backend, alice_ctx, alice_headers, status, view):
    _, meeting = await _agent_and_meeting(backend, alice_ctx)
    backend.meetings.meetings[meeting.id] = meeting.model_copy(update={"status": status})

    response = await client.get(f"/call/{meeting.id}", headers=alice_headers)

    assert response.json()["view"] == view


async def test_home_page_without_billing(client, alice_headers):
    response = await client.get("/", headers=alice_headers)

    body = response.json()
    assert body["page"] == "home"
    assert body["queries"] == [{"queryKey": ["premium.getFreeUsage", None], "data": None}]


async def test_upgrade_page_prefetches_subscription_and_products():
    backend = build_backend(billing_enabled=True)
    alice = backend.auth.add_user(name="Alice", id="alice-id")
    await backend.auth.create_session(
        user_id=alice.id,
        token="upgrade-token",
        expires_at=datetime.now(timezone.utc) + timedelta(days=1),
    )
    transport = ASGITransport(app=build_test_app(backend))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/upgrade", headers={"Authorization": "Bearer upgrade-token"})

    body = response.json()
    keys = [q["queryKey"][0] for q in body["queries"]]
    assert keys == ["premium.getCurrentSubscription", "premium.getProducts"]
    assert body["queries"][0]["data"] is None
    assert len(body["queries"][1]["data"]) == 2
