"""Unit tests for the agents procedures.

Exercises agents.* through the application procedure tree with in-memory
repositories: pagination and search, owner scoping (another user's agent
is NOT_FOUND), meeting counts, and the free-tier gate on create.
"""

from __future__ import annotations

import pytest

from src.buddy.rpc.errors import RpcError, RpcErrorCode
from tests.doubles import build_backend, make_context


async def _create(backend, ctx, name, instructions="Be helpful"):
    return await backend.router.call(
        "agents.create", ctx, {"name": name, "instructions": instructions}
    )


async def test_create_and_get_one(backend, alice_ctx):
    agent = await _create(backend, alice_ctx, "Math Tutor", "Explain step by step")

    fetched = await backend.router.call("agents.getOne", alice_ctx, {"id": agent.id})

    assert fetched.id == agent.id
    assert fetched.user_id == alice_ctx.user_id
    assert fetched.instructions == "Explain step by step"
    assert fetched.meeting_count == 0


async def test_get_one_of_another_user_is_not_found(backend, alice_ctx, bob_ctx):
    agent = await _create(backend, alice_ctx, "Private")

    with pytest.raises(RpcError) as exc_info:
        await backend.router.call("agents.getOne", bob_ctx, {"id": agent.id})
    assert exc_info.value.code == RpcErrorCode.NOT_FOUND
    assert exc_info.value.message == "Agent Not Found"


async def test_get_many_paginates_newest_first(backend, alice_ctx):
    for i in range(7):
        await _create(backend, alice_ctx, f"Agent {i}")

    first = await backend.router.call("agents.getMany", alice_ctx, {"page": 1, "pageSize": 5})
    second = await backend.router.call("agents.getMany", alice_ctx, {"page": 2, "pageSize": 5})

    assert first.total == 7
    assert first.total_pages == 2
    assert [a.name for a in first.items] == [f"Agent {i}" for i in (6, 5, 4, 3, 2)]
    assert [a.name for a in second.items] == ["Agent 1", "Agent 0"]


async def test_get_many_search_is_case_insensitive(backend, alice_ctx, bob_ctx):
    await _create(backend, alice_ctx, "Spanish Coach")
    await _create(backend, alice_ctx, "Chess Coach")
    await _create(backend, alice_ctx, "Interviewer")
    await _create(backend, bob_ctx, "Coach of Bob")

    page = await backend.router.call("agents.getMany", alice_ctx, {"search": "coach"})

    assert page.total == 2
    assert {a.name for a in page.items} == {"Spanish Coach", "Chess Coach"}


async def test_get_many_clamps_out_of_range_paging(backend, alice_ctx):
    await _create(backend, alice_ctx, "Only")

    page = await backend.router.call("agents.getMany", alice_ctx, {"page": 0, "pageSize": 1000})

    assert page.total == 1
    assert len(page.items) == 1


async def test_get_many_reports_meeting_count(backend, alice_ctx):
    agent = await _create(backend, alice_ctx, "Busy")
    for name in ("Standup", "Retro"):
        await backend.router.call("meetings.create", alice_ctx, {"name": name, "agentId": agent.id})

    page = await backend.router.call("agents.getMany", alice_ctx, {})

    assert page.items[0].meeting_count == 2


async def test_update_changes_fields(backend, alice_ctx):
    agent = await _create(backend, alice_ctx, "Old name")

    updated = await backend.router.call(
        "agents.update",
        alice_ctx,
        {"id": agent.id, "name": "New name", "instructions": "New instructions"},
    )

    assert updated.name == "New name"
    assert updated.instructions == "New instructions"


async def test_update_of_another_user_is_not_found(backend, alice_ctx, bob_ctx):
    agent = await _create(backend, alice_ctx, "Mine")

    with pytest.raises(RpcError) as exc_info:
        await backend.router.call(
            "agents.update", bob_ctx, {"id": agent.id, "name": "Hijack", "instructions": "x"}
        )
    assert exc_info.value.code == RpcErrorCode.NOT_FOUND
    assert backend.agents.agents[agent.id].name == "Mine"


async def test_remove_deletes_agent_and_its_meetings(backend, alice_ctx):
    agent = await _create(backend, alice_ctx, "Doomed")
    await backend.router.call("meetings.create", alice_ctx, {"name": "Call", "agentId": agent.id})

    removed = await backend.router.call("agents.remove", alice_ctx, {"id": agent.id})

    assert removed.id == agent.id
    assert backend.agents.agents == {}
    assert backend.meetings.meetings == {}


async def test_remove_twice_is_not_found(backend, alice_ctx):
    agent = await _create(backend, alice_ctx, "Once")
    await backend.router.call("agents.remove", alice_ctx, {"id": agent.id})

    with pytest.raises(RpcError) as exc_info:
        await backend.router.call("agents.remove", alice_ctx, {"id": agent.id})
    assert exc_info.value.code == RpcErrorCode.NOT_FOUND


@pytest.mark.parametrize("payload", [
    {"name": "", "instructions": "x"},
    {"name": "x", "instructions": ""},
    {"name": "x" * 256, "instructions": "x"},
])
async def test_create_rejects_invalid_input(backend, alice_ctx, payload):
    with pytest.raises(RpcError) as exc_info:
        await backend.router.call("agents.create", alice_ctx, payload)
    assert exc_info.value.code == RpcErrorCode.BAD_REQUEST


async def test_free_tier_blocks_agent_over_limit():
    backend = build_backend(billing_enabled=True, free_agent_limit=2)
    ctx = make_context(backend.auth.add_user(name="Free User"))
    await _create(backend, ctx, "One")
    await _create(backend, ctx, "Two")

    with pytest.raises(RpcError) as exc_info:
        await _create(backend, ctx, "Three")
    assert exc_info.value.code == RpcErrorCode.FORBIDDEN
    assert len(backend.agents.agents) == 2


async def test_subscriber_is_not_limited():
    backend = build_backend(billing_enabled=True, free_agent_limit=1)
    user = backend.auth.add_user(name="Paying User")
    backend.polar.subscribe(user.id)
    ctx = make_context(user)

    await _create(backend, ctx, "One")
    await _create(backend, ctx, "Two")

    assert len(backend.agents.agents) == 2


async def test_without_billing_there_is_no_limit(backend, alice_ctx):
    for i in range(5):
        await _create(backend, alice_ctx, f"Agent {i}")
    assert len(backend.agents.agents) == 5
