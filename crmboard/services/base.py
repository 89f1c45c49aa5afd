"""services/base.py — Shared plumbing for the entity accessors.

Every accessor returns Result(data, error). `accessor` turns the
exceptions raised inside one (gateway RemoteError, pydantic
ValidationError, ownership misses) into Result.error so callers never
need try/except for expected failures.

TenantTable gives the five CRUD operations for a tenant-owned table:
every read and write is filtered by the caller's empresa_id, and
update/delete first confirm the row exists for that tenant.

Usage:
    stages = TenantTable("stages", StageCreate, StageUpdate, order_by="position")
    result = await stages.get_by_id(gw, ctx, stage_id)
    if result.error: ...
"""

import functools
import logging

from pydantic import BaseModel, ValidationError

from ..context import TenantContext
from ..errors import CrmError, NotFoundOrForbidden, Result, from_validation_error
from ..gateway import Gateway, Query

log = logging.getLogger("crmboard.services")


def accessor(func):
    """Wrap an async function so its outcome is always a Result."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Result:
        try:
            return Result.success(await func(*args, **kwargs))
        except ValidationError as e:
            return Result.failure(from_validation_error(e))
        except CrmError as e:
            log.warning(f"{func.__module__}.{func.__name__} failed: {e.message}")
            return Result.failure(e)

    return wrapper


def as_payload(data, schema: type[BaseModel], *, partial: bool = False) -> dict:
    """Validate `data` against `schema` and return the JSON-ready dict.

    partial=True keeps only the fields the caller actually sent.
    """
    model = data if isinstance(data, schema) else schema.model_validate(data)
    return model.model_dump(mode="json", exclude_unset=partial)


async def fetch_owned(gw: Gateway, ctx: TenantContext, table: str, row_id: str,
                      label: str = "Record") -> dict:
    """Return the row if it exists and belongs to the tenant, else raise."""
    row = await gw.select_one(Query(table).eq("id", row_id).eq("empresa_id", ctx.empresa_id))
    if not row:
        raise NotFoundOrForbidden(f"{label} not found or access denied")
    return row


class TenantTable:
    """CRUD for one table whose rows carry empresa_id."""

    def __init__(self, table: str, create_schema: type[BaseModel],
                 update_schema: type[BaseModel], label: str = "Record",
                 order_by: str | None = None, ascending: bool = True):
        self.table = table
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.label = label
        self.order_by = order_by
        self.ascending = ascending

    def query(self, ctx: TenantContext) -> Query:
        q = Query(self.table).eq("empresa_id", ctx.empresa_id)
        if self.order_by:
            q.order(self.order_by, self.ascending)
        return q

    @accessor
    async def list(self, gw: Gateway, ctx: TenantContext, **filters) -> list[dict]:
        q = self.query(ctx)
        for column, value in filters.items():
            if value is None:
                q.is_null(column)
            else:
                q.eq(column, value)
        return await gw.select(q)

    @accessor
    async def get_by_id(self, gw: Gateway, ctx: TenantContext, row_id: str) -> dict:
        return await fetch_owned(gw, ctx, self.table, row_id, self.label)

    @accessor
    async def create(self, gw: Gateway, ctx: TenantContext, data) -> dict:
        payload = ctx.scoped(as_payload(data, self.create_schema))
        rows = await gw.insert(self.table, payload)
        log.info(f"Created {self.table} row {rows[0].get('id')} for tenant {ctx.empresa_id}")
        return rows[0]

    @accessor
    async def update(self, gw: Gateway, ctx: TenantContext, row_id: str, data) -> dict:
        payload = as_payload(data, self.update_schema, partial=True)
        await fetch_owned(gw, ctx, self.table, row_id, self.label)
        if not payload:
            return await fetch_owned(gw, ctx, self.table, row_id, self.label)
        rows = await gw.update(
            Query(self.table).eq("id", row_id).eq("empresa_id", ctx.empresa_id), payload
        )
        if not rows:
            raise NotFoundOrForbidden(f"{self.label} not found or access denied")
        return rows[0]

    @accessor
    async def delete(self, gw: Gateway, ctx: TenantContext, row_id: str) -> bool:
        await fetch_owned(gw, ctx, self.table, row_id, self.label)
        await gw.delete(Query(self.table).eq("id", row_id).eq("empresa_id", ctx.empresa_id))
        log.info(f"Deleted {self.table} row {row_id}")
        return True
