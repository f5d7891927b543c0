"""Session-gated pages that prefetch procedure data.

Each page resolves the session, redirects anonymous visitors to /sign-in
(303), runs its prefetch queries through the procedure tree, and returns
the dehydrated query state:

    {"page": ..., "user": ..., "queries": [{"queryKey": [path, input], "data": ...}]}

A failing prefetch short-circuits into the RPC error envelope and status.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from src.buddy.api.deps import get_app_router, get_optional_context
from src.buddy.api.rpc import execute_procedure, rpc_failure, serialize_output
from src.buddy.core.context import RequestContext
from src.buddy.meetings.schemas import MeetingStatus
from src.buddy.rpc.errors import RpcError
from src.buddy.rpc.procedures import ProcedureKind, Router

router = APIRouter(tags=["pages"])

LIST_FILTER_PARAMS = ("page", "pageSize", "search", "agentId", "status")


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _filters_from_query(request: Request, allowed: tuple[str, ...]) -> dict[str, str]:
    return {key: request.query_params[key] for key in allowed if request.query_params.get(key)}


async def render_page(
    page: str,
    app_router: Router,
    ctx: RequestContext,
    queries: list[tuple[str, dict[str, Any] | None]],
    view: Callable[..., str] | None = None,
) -> JSONResponse:
    """Prefetch queries in order and return the dehydrated state.

    Args:
        view: Optional presentation switch computed from the prefetched
            results (positional, in query order).
    """
    state: list[dict[str, Any]] = []
    results: list[Any] = []
    for path, raw_input in queries:
        try:
            data = await execute_procedure(app_router, path, ctx, raw_input, ProcedureKind.QUERY)
        except RpcError as exc:
            return rpc_failure(exc, path)
        results.append(data)
        state.append({"queryKey": [path, raw_input], "data": serialize_output(data)})

    content: dict[str, Any] = {
        "page": page,
        "user": serialize_output(ctx.user),
        "queries": state,
    }
    if view is not None:
        content["view"] = view(*results)
    return JSONResponse(content=content)


def _meeting_status_view(meeting) -> str:
    return MeetingStatus(meeting.status).value


def _call_view(meeting) -> str:
    return "ended" if meeting.status == MeetingStatus.COMPLETED else "lobby"


# ── Auth pages ───────────────────────────────────────────────────────────────


@router.get("/sign-in")
async def sign_in_page(ctx: RequestContext | None = Depends(get_optional_context)):
    if ctx is not None:
        return _redirect("/")
    return {"page": "sign-in"}


@router.get("/sign-up")
async def sign_up_page(ctx: RequestContext | None = Depends(get_optional_context)):
    if ctx is not None:
        return _redirect("/")
    return {"page": "sign-up"}


# ── Dashboard pages ──────────────────────────────────────────────────────────


@router.get("/")
async def home_page(
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    return await render_page("home", app_router, ctx, [("premium.getFreeUsage", None)])


@router.get("/agents")
async def agents_page(
    request: Request,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    filters = _filters_from_query(request, ("page", "pageSize", "search"))
    return await render_page("agents", app_router, ctx, [("agents.getMany", filters)])


@router.get("/agents/{agent_id}")
async def agent_detail_page(
    agent_id: str,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    return await render_page("agent", app_router, ctx, [("agents.getOne", {"id": agent_id})])


@router.get("/meetings")
async def meetings_page(
    request: Request,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    filters = _filters_from_query(request, LIST_FILTER_PARAMS)
    return await render_page("meetings", app_router, ctx, [("meetings.getMany", filters)])


@router.get("/meetings/{meeting_id}")
async def meeting_detail_page(
    meeting_id: str,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    return await render_page(
        "meeting",
        app_router,
        ctx,
        [("meetings.getOne", {"id": meeting_id})],
        view=_meeting_status_view,
    )


@router.get("/call/{meeting_id}")
async def call_page(
    meeting_id: str,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    return await render_page(
        "call",
        app_router,
        ctx,
        [("meetings.getOne", {"id": meeting_id})],
        view=_call_view,
    )


@router.get("/upgrade")
async def upgrade_page(
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    if ctx is None:
        return _redirect("/sign-in")
    return await render_page(
        "upgrade",
        app_router,
        ctx,
        [("premium.getCurrentSubscription", None), ("premium.getProducts", None)],
    )
