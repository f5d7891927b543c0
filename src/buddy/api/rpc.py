"""HTTP binding for the procedure tree: /api/trpc/{path}.

Queries are served on GET with a JSON-encoded ``input`` query parameter;
mutations on POST with a JSON body. Responses use the envelopes

    {"result": {"data": ...}}                                  (200)
    {"error": {"code", "message", "httpStatus", "path", ...}}  (error status)

Unexpected exceptions are logged with their traceback and reported as
INTERNAL_SERVER_ERROR without leaking details.
"""

from __future__ import annotations

import json
import time
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from src.buddy.api.deps import get_app_router, get_optional_context
from src.buddy.core.context import RequestContext
from src.buddy.core.monitoring import record_rpc_call
from src.buddy.rpc.errors import RpcError, RpcErrorCode
from src.buddy.rpc.procedures import ProcedureKind, Router

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/trpc", tags=["rpc"])


# ── Envelopes ────────────────────────────────────────────────────────────────


def serialize_output(data: Any) -> Any:
    """JSON-ready procedure output (Pydantic models dumped by alias)."""
    return jsonable_encoder(data, by_alias=True)


def rpc_success(data: Any) -> JSONResponse:
    return JSONResponse(content={"result": {"data": serialize_output(data)}})


def rpc_failure(error: RpcError, path: str | None) -> JSONResponse:
    return JSONResponse(status_code=error.http_status, content={"error": error.to_dict(path)})


# ── Execution ────────────────────────────────────────────────────────────────


async def execute_procedure(
    app_router: Router,
    path: str,
    ctx: RequestContext | None,
    raw_input: Any = None,
    expected_kind: ProcedureKind | None = None,
) -> Any:
    """Resolve, authorize and run a procedure, recording metrics.

    Raises:
        RpcError: For every failure; unexpected exceptions are wrapped as
            INTERNAL_SERVER_ERROR.
    """
    start = time.perf_counter()
    try:
        procedure = app_router.resolve(path)
        if procedure is None:
            raise RpcError(RpcErrorCode.NOT_FOUND, f'No procedure found on path "{path}"')
        if expected_kind is not None and procedure.kind != expected_kind:
            raise RpcError(
                RpcErrorCode.METHOD_NOT_SUPPORTED,
                f'Unsupported {expected_kind.value} on {procedure.kind.value} procedure "{path}"',
            )
        result = await procedure.invoke(ctx, raw_input)
    except RpcError as exc:
        record_rpc_call(path, exc.code.value, time.perf_counter() - start)
        if exc.http_status >= 500:
            logger.warning("rpc.procedure_failed", path=path, code=exc.code.value, message=exc.message)
        raise
    except Exception as exc:
        record_rpc_call(path, RpcErrorCode.INTERNAL_SERVER_ERROR.value, time.perf_counter() - start)
        logger.exception("rpc.unhandled_error", path=path)
        raise RpcError(RpcErrorCode.INTERNAL_SERVER_ERROR, "Internal server error") from exc

    record_rpc_call(path, "ok", time.perf_counter() - start)
    return result


def _decode_json(raw: str | bytes | None) -> Any:
    if raw is None or raw == "" or raw == b"":
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise RpcError(RpcErrorCode.BAD_REQUEST, "Input is not valid JSON") from exc


# ── Routes ───────────────────────────────────────────────────────────────────


@router.get("/{path}")
async def rpc_query(
    path: str,
    raw_input: str | None = Query(None, alias="input"),
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    """Run a query procedure."""
    try:
        data = await execute_procedure(
            app_router, path, ctx, _decode_json(raw_input), ProcedureKind.QUERY
        )
    except RpcError as exc:
        return rpc_failure(exc, path)
    return rpc_success(data)


@router.post("/{path}")
async def rpc_mutation(
    path: str,
    request: Request,
    app_router: Router = Depends(get_app_router),
    ctx: RequestContext | None = Depends(get_optional_context),
):
    """Run a mutation procedure."""
    try:
        body = _decode_json(await request.body())
        data = await execute_procedure(app_router, path, ctx, body, ProcedureKind.MUTATION)
    except RpcError as exc:
        return rpc_failure(exc, path)
    return rpc_success(data)
