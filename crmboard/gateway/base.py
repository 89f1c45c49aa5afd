"""Remote Data Gateway interface and the query builder both backends share.

The gateway is the only thing that touches persistence. It exposes
table CRUD with equality / is-null / in / pattern / range / or filters,
row counts without bodies, session lookup, and file storage. Backends
raise RemoteError on any failure; they never return partial results.

Usage:
    q = Query("stages").eq("pipeline_id", pid).eq("empresa_id", tenant).order("position")
    rows = await gateway.select(q)
    total = await gateway.count(Query("leads").eq("stage_id", sid))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Operators understood by every backend (PostgREST names)
OPERATORS = {"eq", "neq", "is", "in", "ilike", "gte", "lte", "gt", "lt"}

Condition = tuple[str, str, Any]


@dataclass
class Query:
    """Fluent, backend-neutral description of a filtered table read/write."""

    table: str
    columns: str = "*"
    filters: list[Condition] = field(default_factory=list)
    or_groups: list[list[Condition]] = field(default_factory=list)
    order_by: list[tuple[str, bool]] = field(default_factory=list)
    limit_n: int | None = None

    def _add(self, column: str, op: str, value: Any) -> "Query":
        self.filters.append((column, op, value))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> "Query":
        return self._add(column, "neq", value)

    def is_null(self, column: str) -> "Query":
        return self._add(column, "is", None)

    def in_(self, column: str, values: list) -> "Query":
        return self._add(column, "in", list(values))

    def ilike(self, column: str, pattern: str) -> "Query":
        """Case-insensitive match; `*` is the wildcard."""
        return self._add(column, "ilike", pattern)

    def gte(self, column: str, value: Any) -> "Query":
        return self._add(column, "gte", value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._add(column, "lte", value)

    def or_(self, *conditions: Condition) -> "Query":
        """Match rows satisfying any of (column, op, value)."""
        for _, op, _ in conditions:
            if op not in OPERATORS:
                raise ValueError(f"Unsupported operator: {op}")
        self.or_groups.append(list(conditions))
        return self

    def order(self, column: str, ascending: bool = True) -> "Query":
        self.order_by.append((column, ascending))
        return self

    def limit(self, n: int) -> "Query":
        self.limit_n = n
        return self


class Gateway(ABC):
    """Opaque BaaS collaborator: CRUD + auth + file storage."""

    @abstractmethod
    async def select(self, query: Query) -> list[dict]:
        ...

    @abstractmethod
    async def count(self, query: Query) -> int:
        ...

    @abstractmethod
    async def insert(self, table: str, rows: dict | list[dict]) -> list[dict]:
        ...

    @abstractmethod
    async def update(self, query: Query, values: dict) -> list[dict]:
        ...

    @abstractmethod
    async def delete(self, query: Query) -> int:
        ...

    @abstractmethod
    async def get_user(self, access_token: str) -> dict | None:
        """Return the authenticated principal (at least `id`) or None."""

    @abstractmethod
    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        ...

    @abstractmethod
    async def remove(self, bucket: str, paths: list[str]) -> None:
        ...

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        ...

    async def select_one(self, query: Query) -> dict | None:
        rows = await self.select(query.limit(1))
        return rows[0] if rows else None

    async def aclose(self) -> None:
        return None
