"""services/custom_field_service.py — Custom field definitions and their per-lead values.

Business Rules:
- Fields with pipeline_id NULL are global; a pipeline sees global + its own
- Deleting a field deletes all of its values first
- Values are unique per (lead_id, field_id); writes are upserts
- Bulk value reads chunk lead ids by 100 to keep request URLs short

Called by: routers/admin.py, routers/leads.py
Depends on: gateway, services/base.py, schemas/admin.py
"""

import logging

from ..context import TenantContext
from ..gateway import Gateway, Query
from ..schemas.admin import CustomFieldCreate, CustomFieldUpdate, CustomValueUpsert
from .base import TenantTable, accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.custom_fields")

VALUE_CHUNK_SIZE = 100

fields = TenantTable("lead_custom_fields", CustomFieldCreate, CustomFieldUpdate,
                     label="Custom field", order_by="position")


# ── Fields ───────────────────────────────────────────────────────────


@accessor
async def list_for_pipeline(gw: Gateway, ctx: TenantContext, pipeline_id: str | None = None) -> list[dict]:
    q = Query("lead_custom_fields").eq("empresa_id", ctx.empresa_id).order("position")
    if pipeline_id:
        q.or_(("pipeline_id", "is", None), ("pipeline_id", "eq", pipeline_id))
    else:
        q.is_null("pipeline_id")
    return await gw.select(q)


async def create_field(gw: Gateway, ctx: TenantContext, data):
    return await fields.create(gw, ctx, data)


async def update_field(gw: Gateway, ctx: TenantContext, field_id: str, data):
    return await fields.update(gw, ctx, field_id, data)


@accessor
async def delete_field(gw: Gateway, ctx: TenantContext, field_id: str) -> bool:
    await fetch_owned(gw, ctx, "lead_custom_fields", field_id, "Custom field")
    removed = await gw.delete(Query("lead_custom_values").eq("field_id", field_id))
    await gw.delete(
        Query("lead_custom_fields").eq("id", field_id).eq("empresa_id", ctx.empresa_id)
    )
    log.info(f"Custom field {field_id} deleted with {removed} value(s)")
    return True


# ── Values ───────────────────────────────────────────────────────────


@accessor
async def list_by_lead(gw: Gateway, ctx: TenantContext, lead_id: str) -> list[dict]:
    await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    return await gw.select(Query("lead_custom_values").eq("lead_id", lead_id))


@accessor
async def list_by_leads(gw: Gateway, ctx: TenantContext, lead_ids: list[str]) -> list[dict]:
    """Values for many leads. Callers pass ids they already read for this tenant."""
    ids = list(dict.fromkeys(lead_ids))
    values: list[dict] = []
    for start in range(0, len(ids), VALUE_CHUNK_SIZE):
        chunk = ids[start:start + VALUE_CHUNK_SIZE]
        values.extend(await gw.select(Query("lead_custom_values").in_("lead_id", chunk)))
    return values


@accessor
async def upsert_value(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, CustomValueUpsert)
    await fetch_owned(gw, ctx, "leads", payload["lead_id"], "Lead")
    await fetch_owned(gw, ctx, "lead_custom_fields", payload["field_id"], "Custom field")
    key = (
        Query("lead_custom_values")
        .eq("lead_id", payload["lead_id"])
        .eq("field_id", payload["field_id"])
    )
    existing = await gw.select(key)
    if existing:
        rows = await gw.update(key, {"value": payload["value"]})
    else:
        rows = await gw.insert("lead_custom_values", payload)
    return rows[0]


@accessor
async def delete_value(gw: Gateway, ctx: TenantContext, lead_id: str, field_id: str) -> bool:
    await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    await gw.delete(Query("lead_custom_values").eq("lead_id", lead_id).eq("field_id", field_id))
    return True
