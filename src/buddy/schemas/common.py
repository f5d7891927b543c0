"""Shared Pydantic building blocks for RPC inputs and outputs.

RPC payloads travel in camelCase (pageSize, agentId, totalPages) while the
Python side keeps snake_case attributes; RpcModel wires the alias
generator once for every procedure schema.
"""

from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ── Pagination Constants ─────────────────────────────────────────────────────

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100

T = TypeVar("T")


class RpcModel(BaseModel):
    """Base model for RPC payloads (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class IdInput(RpcModel):
    """Input for procedures addressing a single row."""

    id: str = Field(..., min_length=1)


class PaginationInput(RpcModel):
    """Page/pageSize/search triple shared by list procedures.

    Out-of-range values are clamped rather than rejected: page to >= 1 and
    pageSize into [MIN_PAGE_SIZE, MAX_PAGE_SIZE].
    """

    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    search: str | None = None

    @field_validator("page")
    @classmethod
    def _clamp_page(cls, value: int) -> int:
        return max(value, DEFAULT_PAGE)

    @field_validator("page_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return min(max(value, MIN_PAGE_SIZE), MAX_PAGE_SIZE)

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


class Page(RpcModel, Generic[T]):
    """One page of a filtered list plus totals for the pager."""

    items: list[T]
    total: int
    total_pages: int

    @classmethod
    def build(cls, items: list[T], total: int, page_size: int) -> Page[T]:
        return cls(
            items=items,
            total=total,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )
