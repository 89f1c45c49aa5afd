"""services/lead_service.py — Lead accessor, kanban filtering, loss/sale lifecycle.

Business Rules:
- Lost (lost_at set) and sold (sold_at set) leads are hidden unless asked for
- Kanban list is capped at 200 rows; `reached_limit` tells the UI to narrow filters
- Moving a lead writes stage_id AND the destination stage's pipeline_id
- Every move / loss / sale transition appends a lead_history row
- History writes are best effort: a failure is logged, the move stands
- Reactivating a lost lead clears the loss fields and sets status "warm"

Called by: board/controller.py, routers/leads.py
Depends on: gateway, services/base.py, schemas/lead.py
"""

import logging
from datetime import datetime, timezone

from ..context import TenantContext
from ..errors import NotFoundOrForbidden, RemoteError, ValidationFailure
from ..gateway import Gateway, Query
from ..schemas.lead import LeadCreate, LeadFilters, LeadUpdate, MarkLost, MarkSold
from .base import TenantTable, accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.leads")

KANBAN_LIMIT = 200

leads = TenantTable("leads", LeadCreate, LeadUpdate, label="Lead",
                    order_by="created_at", ascending=False)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _record_history(gw: Gateway, ctx: TenantContext, lead_id: str, change_type: str,
                          **fields) -> None:
    row = ctx.scoped({"lead_id": lead_id, "change_type": change_type,
                      "changed_by": ctx.user_id, **fields})
    try:
        await gw.insert("lead_history", row)
    except RemoteError as e:
        log.warning(f"History write ({change_type}) for lead {lead_id} failed: {e.message}")


def _apply_filters(q: Query, f: LeadFilters) -> Query:
    if not f.show_lost:
        q.is_null("lost_at")
    if not f.show_sold:
        q.is_null("sold_at")
    if f.status:
        q.in_("status", f.status)
    if f.date_from:
        q.gte("created_at", f.date_from)
    if f.date_to:
        end = f.date_to if "T" in f.date_to else f"{f.date_to}T23:59:59"
        q.lte("created_at", end)
    if f.responsible_uuid:
        q.eq("responsible_uuid", f.responsible_uuid)
    if f.origin:
        q.eq("origin", f.origin)
    if f.search and f.search.strip():
        term = f"*{f.search.strip()}*"
        q.or_(
            ("name", "ilike", term),
            ("company", "ilike", term),
            ("email", "ilike", term),
            ("phone", "ilike", term),
        )
    return q


# ── Queries ──────────────────────────────────────────────────────────


@accessor
async def list_by_pipeline(gw: Gateway, ctx: TenantContext, pipeline_id: str,
                           filters: LeadFilters | dict | None = None) -> dict:
    """Kanban / list read. Returns {"leads": [...], "reached_limit": bool}."""
    f = filters if isinstance(filters, LeadFilters) else LeadFilters.model_validate(filters or {})
    q = Query("leads").eq("pipeline_id", pipeline_id).eq("empresa_id", ctx.empresa_id)
    _apply_filters(q, f).order("created_at", ascending=False).limit(KANBAN_LIMIT + 1)
    rows = await gw.select(q)

    # Tag matching stays client-side: any-of semantics over a JSON list
    if f.tags:
        wanted = set(f.tags)
        rows = [r for r in rows if wanted.intersection(r.get("tags") or [])]

    reached = len(rows) > KANBAN_LIMIT
    return {"leads": rows[:KANBAN_LIMIT], "reached_limit": reached}


@accessor
async def list_by_stage(gw: Gateway, ctx: TenantContext, stage_id: str) -> list[dict]:
    q = (
        Query("leads")
        .eq("stage_id", stage_id)
        .eq("empresa_id", ctx.empresa_id)
        .is_null("lost_at")
        .is_null("sold_at")
        .order("created_at", ascending=False)
    )
    return await gw.select(q)


@accessor
async def count_by_stage(gw: Gateway, ctx: TenantContext, stage_id: str) -> int:
    return await gw.count(
        Query("leads").eq("stage_id", stage_id).eq("empresa_id", ctx.empresa_id)
        .is_null("lost_at").is_null("sold_at")
    )


@accessor
async def history(gw: Gateway, ctx: TenantContext, lead_id: str) -> list[dict]:
    await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    return await gw.select(
        Query("lead_history").eq("lead_id", lead_id).order("changed_at", ascending=False)
    )


# ── Writes ───────────────────────────────────────────────────────────


@accessor
async def create_lead(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, LeadCreate)
    stage = await fetch_owned(gw, ctx, "stages", payload["stage_id"], "Stage")
    if stage["pipeline_id"] != payload["pipeline_id"]:
        raise ValidationFailure("Stage does not belong to the selected pipeline")
    if not payload.get("responsible_uuid"):
        payload["responsible_uuid"] = ctx.user_id
    lead = (await gw.insert("leads", ctx.scoped(payload)))[0]
    await _record_history(gw, ctx, lead["id"], "created",
                          pipeline_id=lead["pipeline_id"], stage_id=lead["stage_id"])
    return lead


async def update_lead(gw: Gateway, ctx: TenantContext, lead_id: str, data):
    return await leads.update(gw, ctx, lead_id, data)


@accessor
async def update_lead_stage(gw: Gateway, ctx: TenantContext, lead_id: str, stage_id: str) -> dict:
    """Move a lead to `stage_id`, following the stage into its pipeline."""
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    stage = await fetch_owned(gw, ctx, "stages", stage_id, "Stage")

    rows = await gw.update(
        Query("leads").eq("id", lead_id).eq("empresa_id", ctx.empresa_id),
        {"stage_id": stage_id, "pipeline_id": stage["pipeline_id"]},
    )
    if not rows:
        raise NotFoundOrForbidden("Lead not found or access denied")

    stage_changed = lead["stage_id"] != stage_id
    pipeline_changed = lead["pipeline_id"] != stage["pipeline_id"]
    if stage_changed or pipeline_changed:
        if stage_changed and pipeline_changed:
            change_type = "both_changed"
        elif pipeline_changed:
            change_type = "pipeline_changed"
        else:
            change_type = "stage_changed"
        await _record_history(
            gw, ctx, lead_id, change_type,
            pipeline_id=stage["pipeline_id"], stage_id=stage_id,
            previous_pipeline_id=lead["pipeline_id"], previous_stage_id=lead["stage_id"],
        )
    return rows[0]


@accessor
async def mark_lost(gw: Gateway, ctx: TenantContext, lead_id: str, data) -> dict:
    loss = MarkLost.model_validate(data) if not isinstance(data, MarkLost) else data
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    if lead.get("lost_at"):
        raise ValidationFailure("Lead is already marked as lost")
    rows = await gw.update(
        Query("leads").eq("id", lead_id).eq("empresa_id", ctx.empresa_id),
        {
            "loss_reason_category": loss.category,
            "loss_reason_notes": (loss.notes or "").strip() or None,
            "lost_at": _now(),
        },
    )
    await _record_history(gw, ctx, lead_id, "marked_as_lost",
                          pipeline_id=lead["pipeline_id"], stage_id=lead["stage_id"],
                          notes=loss.category)
    return rows[0]


@accessor
async def reactivate(gw: Gateway, ctx: TenantContext, lead_id: str) -> dict:
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    if not lead.get("lost_at"):
        raise ValidationFailure("Lead is not marked as lost")
    rows = await gw.update(
        Query("leads").eq("id", lead_id).eq("empresa_id", ctx.empresa_id),
        {"loss_reason_category": None, "loss_reason_notes": None, "lost_at": None,
         "status": "warm"},
    )
    await _record_history(gw, ctx, lead_id, "reactivated",
                          pipeline_id=lead["pipeline_id"], stage_id=lead["stage_id"])
    return rows[0]


@accessor
async def mark_sold(gw: Gateway, ctx: TenantContext, lead_id: str, data) -> dict:
    sale = MarkSold.model_validate(data) if not isinstance(data, MarkSold) else data
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    if lead.get("sold_at"):
        raise ValidationFailure("Lead is already marked as sold")
    rows = await gw.update(
        Query("leads").eq("id", lead_id).eq("empresa_id", ctx.empresa_id),
        {"sold_at": _now(), "sold_value": sale.sold_value, "sale_notes": sale.notes},
    )
    await _record_history(gw, ctx, lead_id, "marked_as_sold",
                          pipeline_id=lead["pipeline_id"], stage_id=lead["stage_id"],
                          notes=f"{sale.sold_value:.2f}")
    return rows[0]


@accessor
async def unmark_sale(gw: Gateway, ctx: TenantContext, lead_id: str) -> dict:
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    if not lead.get("sold_at"):
        raise ValidationFailure("Lead is not marked as sold")
    rows = await gw.update(
        Query("leads").eq("id", lead_id).eq("empresa_id", ctx.empresa_id),
        {"sold_at": None, "sold_value": None, "sale_notes": None},
    )
    await _record_history(gw, ctx, lead_id, "sale_unmarked",
                          pipeline_id=lead["pipeline_id"], stage_id=lead["stage_id"])
    return rows[0]


async def delete_lead(gw: Gateway, ctx: TenantContext, lead_id: str):
    return await leads.delete(gw, ctx, lead_id)
