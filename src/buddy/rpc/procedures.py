"""Procedure and router primitives for the typed RPC layer.

A Procedure wraps an async handler with its kind (query or mutation), an
optional Pydantic input model, and an authorization requirement. A Router
is a nested name -> Procedure | Router mapping that resolves dotted paths
such as "meetings.getMany".

Handlers always receive (ctx, input): ctx is the RequestContext (None for
public procedures called anonymously) and input is the validated model or
None for procedures without input.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from src.buddy.core.context import RequestContext
from src.buddy.rpc.errors import RpcError, RpcErrorCode, unauthorized


Handler = Callable[[RequestContext | None, Any], Awaitable[Any]]


class ProcedureKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"


class Procedure:
    """A named server function callable over the RPC endpoint.

    Args:
        handler: Async callable taking (ctx, input).
        kind: QUERY (read, GET) or MUTATION (write, POST).
        input_model: Pydantic model validating the raw input, if any.
        protected: Reject calls without an authenticated context.
    """

    def __init__(
        self,
        handler: Handler,
        kind: ProcedureKind,
        input_model: type[BaseModel] | None = None,
        protected: bool = True,
    ) -> None:
        self.handler = handler
        self.kind = kind
        self.input_model = input_model
        self.protected = protected

    def parse_input(self, raw_input: Any) -> BaseModel | None:
        """Validate raw input; BAD_REQUEST with issues on failure."""
        if self.input_model is None:
            return None
        try:
            return self.input_model.model_validate(raw_input if raw_input is not None else {})
        except ValidationError as exc:
            issues = [
                {
                    "path": [str(p) for p in err["loc"]],
                    "message": err["msg"],
                    "type": err["type"],
                }
                for err in exc.errors()
            ]
            raise RpcError(
                RpcErrorCode.BAD_REQUEST,
                issues[0]["message"] if issues else "Invalid input",
                issues=issues,
            ) from exc

    async def invoke(self, ctx: RequestContext | None, raw_input: Any = None) -> Any:
        """Authorize, validate, and run the handler."""
        if self.protected and ctx is None:
            raise unauthorized()
        data = self.parse_input(raw_input)
        return await self.handler(ctx, data)


def query(
    handler: Handler,
    input_model: type[BaseModel] | None = None,
    *,
    protected: bool = True,
) -> Procedure:
    """Build a query procedure."""
    return Procedure(handler, ProcedureKind.QUERY, input_model, protected)


def mutation(
    handler: Handler,
    input_model: type[BaseModel] | None = None,
    *,
    protected: bool = True,
) -> Procedure:
    """Build a mutation procedure."""
    return Procedure(handler, ProcedureKind.MUTATION, input_model, protected)


RouterEntry = Union[Procedure, "Router"]


class Router:
    """Nested tree of procedures addressed by dotted paths."""

    def __init__(self, entries: Mapping[str, RouterEntry]) -> None:
        for name in entries:
            if not name or "." in name:
                raise ValueError(f"Invalid router entry name: {name!r}")
        self._entries: dict[str, RouterEntry] = dict(entries)

    def resolve(self, path: str) -> Procedure | None:
        """Find the procedure at a dotted path, or None."""
        head, _, rest = path.partition(".")
        entry = self._entries.get(head)
        if entry is None:
            return None
        if isinstance(entry, Router):
            return entry.resolve(rest) if rest else None
        return entry if not rest else None

    def paths(self, prefix: str = "") -> Iterator[str]:
        """Yield every procedure path in the tree."""
        for name, entry in self._entries.items():
            full = f"{prefix}{name}"
            if isinstance(entry, Router):
                yield from entry.paths(prefix=f"{full}.")
            else:
                yield full

    async def call(
        self, path: str, ctx: RequestContext | None, raw_input: Any = None
    ) -> Any:
        """Resolve and invoke a procedure; NOT_FOUND for unknown paths."""
        procedure = self.resolve(path)
        if procedure is None:
            raise RpcError(RpcErrorCode.NOT_FOUND, f"No procedure found on path \"{path}\"")
        return await procedure.invoke(ctx, raw_input)

    def __len__(self) -> int:
        return sum(1 for _ in self.paths())
