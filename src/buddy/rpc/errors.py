"""Typed RPC errors and their HTTP status mapping."""

from __future__ import annotations

from enum import Enum
from typing import Any


class RpcErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_SUPPORTED = "METHOD_NOT_SUPPORTED"
    CONFLICT = "CONFLICT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_GATEWAY = "BAD_GATEWAY"


HTTP_STATUS_BY_CODE: dict[RpcErrorCode, int] = {
    RpcErrorCode.BAD_REQUEST: 400,
    RpcErrorCode.UNAUTHORIZED: 401,
    RpcErrorCode.FORBIDDEN: 403,
    RpcErrorCode.NOT_FOUND: 404,
    RpcErrorCode.METHOD_NOT_SUPPORTED: 405,
    RpcErrorCode.CONFLICT: 409,
    RpcErrorCode.INTERNAL_SERVER_ERROR: 500,
    RpcErrorCode.BAD_GATEWAY: 502,
}


class RpcError(Exception):
    """Error raised by a procedure and serialized to the caller.

    Args:
        code: One of RpcErrorCode.
        message: Human-readable message shown by the client.
        issues: Optional structured validation issues.
    """

    def __init__(
        self,
        code: RpcErrorCode,
        message: str,
        issues: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.issues = issues

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self, path: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "httpStatus": self.http_status,
            "path": path,
        }
        if self.issues is not None:
            body["issues"] = self.issues
        return body

    def __repr__(self) -> str:
        return f"RpcError({self.code.value}, {self.message!r})"


def not_found(entity: str) -> RpcError:
    """NOT_FOUND for a missing or not-owned row; the two are not distinguished."""
    return RpcError(RpcErrorCode.NOT_FOUND, f"{entity} Not Found")


def unauthorized() -> RpcError:
    return RpcError(RpcErrorCode.UNAUTHORIZED, "Unauthorized")
