"""Tests for the RPC layer: procedure tree, input validation, HTTP envelopes.

Covers Router path resolution, Procedure authorization and validation
issues, the full application procedure tree, and the /api/trpc binding
(GET for queries, POST for mutations, error envelopes and statuses).
"""

from __future__ import annotations

import json

import pytest

from src.buddy.rpc.errors import RpcError, RpcErrorCode, not_found
from src.buddy.rpc.procedures import ProcedureKind, Router, mutation, query
from src.buddy.schemas.common import IdInput


async def _echo(ctx, data):
    return {"id": data.id if data else None}


# ── Router ───────────────────────────────────────────────────────────────────


def test_router_resolves_nested_paths():
    inner = query(_echo, IdInput)
    router = Router({"agents": Router({"getOne": inner})})

    assert router.resolve("agents.getOne") is inner
    assert router.resolve("agents") is None
    assert router.resolve("agents.getOne.extra") is None
    assert router.resolve("meetings.getOne") is None


def test_router_rejects_dotted_entry_names():
    with pytest.raises(ValueError):
        Router({"agents.getOne": query(_echo)})


def test_app_router_exposes_every_procedure(backend):
    paths = set(backend.router.paths())
    assert paths == {
        "agents.getMany",
        "agents.getOne",
        "agents.create",
        "agents.update",
        "agents.remove",
        "meetings.getMany",
        "meetings.getOne",
        "meetings.create",
        "meetings.update",
        "meetings.remove",
        "meetings.cancel",
        "meetings.getTranscript",
        "meetings.generateToken",
        "meetings.generateChatToken",
        "premium.getProducts",
        "premium.getCurrentSubscription",
        "premium.getFreeUsage",
    }
    assert len(backend.router) == 17


def test_procedure_kinds(backend):
    assert backend.router.resolve("agents.getMany").kind == ProcedureKind.QUERY
    assert backend.router.resolve("meetings.create").kind == ProcedureKind.MUTATION
    assert backend.router.resolve("meetings.generateToken").kind == ProcedureKind.MUTATION


# ── Procedure ────────────────────────────────────────────────────────────────


async def test_protected_procedure_without_context_is_unauthorized():
    procedure = query(_echo, IdInput)
    with pytest.raises(RpcError) as exc_info:
        await procedure.invoke(None, {"id": "a1"})
    assert exc_info.value.code == RpcErrorCode.UNAUTHORIZED
    assert exc_info.value.http_status == 401


async def test_public_procedure_runs_without_context():
    procedure = query(_echo, IdInput, protected=False)
    assert await procedure.invoke(None, {"id": "a1"}) == {"id": "a1"}


async def test_invalid_input_reports_issues(alice_ctx):
    procedure = mutation(_echo, IdInput)
    with pytest.raises(RpcError) as exc_info:
        await procedure.invoke(alice_ctx, {"id": ""})
    error = exc_info.value
    assert error.code == RpcErrorCode.BAD_REQUEST
    assert error.issues[0]["path"] == ["id"]


async def test_missing_input_validates_as_empty_object(alice_ctx):
    procedure = query(_echo, IdInput)
    with pytest.raises(RpcError) as exc_info:
        await procedure.invoke(alice_ctx, None)
    assert exc_info.value.code == RpcErrorCode.BAD_REQUEST


async def test_router_call_unknown_path(alice_ctx, backend):
    with pytest.raises(RpcError) as exc_info:
        await backend.router.call("agents.explode", alice_ctx)
    assert exc_info.value.code == RpcErrorCode.NOT_FOUND


def test_error_envelope_shape():
    body = not_found("Agent").to_dict("agents.getOne")
    assert body == {
        "code": "NOT_FOUND",
        "message": "Agent Not Found",
        "httpStatus": 404,
        "path": "agents.getOne",
    }


# ── HTTP binding ─────────────────────────────────────────────────────────────


async def test_query_over_get_returns_result_envelope(client, alice_headers):
    response = await client.get(
        "/api/trpc/agents.getMany",
        params={"input": json.dumps({"page": 1, "pageSize": 5})},
        headers=alice_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json() == {"result": {"data": {"items": [], "total": 0, "totalPages": 0}}}


async def test_mutation_over_post_uses_camel_case(client, alice_headers):
    response = await client.post(
        "/api/trpc/agents.create",
        json={"name": "Tutor", "instructions": "Teach algebra"},
        headers=alice_headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()["result"]["data"]
    assert data["name"] == "Tutor"
    assert "userId" in data
    assert "createdAt" in data


async def test_anonymous_call_is_unauthorized(client):
    response = await client.get("/api/trpc/agents.getMany")
    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "UNAUTHORIZED"
    assert error["path"] == "agents.getMany"


async def test_unknown_procedure_is_not_found(client, alice_headers):
    response = await client.get("/api/trpc/agents.nope", headers=alice_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


async def test_mutation_over_get_is_rejected(client, alice_headers):
    response = await client.get("/api/trpc/agents.create", headers=alice_headers)
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "METHOD_NOT_SUPPORTED"


async def test_malformed_json_input_is_bad_request(client, alice_headers):
    response = await client.get(
        "/api/trpc/agents.getOne", params={"input": "{not json"}, headers=alice_headers
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Input is not valid JSON"


async def test_validation_failure_carries_issues(client, alice_headers):
    response = await client.post(
        "/api/trpc/agents.create",
        json={"name": "", "instructions": "x"},
        headers=alice_headers,
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "BAD_REQUEST"
    assert error["issues"][0]["path"] == ["name"]


async def test_unexpected_exception_is_internal_error(client, alice_headers, backend):
    async def boom(user_id, params):
        raise RuntimeError("db exploded")

    backend.agents.list_agents = boom
    response = await client.get("/api/trpc/agents.getMany", headers=alice_headers)
    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_SERVER_ERROR"
    assert error["message"] == "Internal server error"


async def test_missing_router_is_service_unavailable(app, client, alice_headers):
    del app.state.app_router
    response = await client.get("/api/trpc/agents.getMany", headers=alice_headers)
    assert response.status_code == 503
