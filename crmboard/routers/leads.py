"""
routers/leads.py — Lead CRUD, kanban listing, loss/sale transitions, custom values

Called by: main.py (router mount)
Depends on: services/lead_service.py, services/custom_field_service.py, dependencies
"""

from fastapi import APIRouter, Depends, Query

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_context
from ..gateway import Gateway
from ..schemas.admin import CustomValueUpsert
from ..schemas.lead import LeadCreate, LeadFilters, LeadUpdate, MarkLost, MarkSold
from ..services import custom_field_service, lead_service

router = APIRouter()


@router.get("/api/pipelines/{pipeline_id}/leads")
async def list_leads(
    pipeline_id: str,
    status: list[str] = Query(default=[]),
    show_lost: bool = False,
    show_sold: bool = False,
    date_from: str | None = None,
    date_to: str | None = None,
    search: str | None = None,
    responsible_uuid: str | None = None,
    tags: list[str] = Query(default=[]),
    origin: str | None = None,
    ctx: TenantContext = Depends(require_context),
    gw: Gateway = Depends(get_tenant_gateway),
):
    filters = LeadFilters(
        status=status, show_lost=show_lost, show_sold=show_sold, date_from=date_from,
        date_to=date_to, search=search, responsible_uuid=responsible_uuid, tags=tags,
        origin=origin,
    )
    return (await lead_service.list_by_pipeline(gw, ctx, pipeline_id, filters)).unwrap()


@router.get("/api/stages/{stage_id}/leads")
async def list_stage_leads(stage_id: str, ctx: TenantContext = Depends(require_context),
                           gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.list_by_stage(gw, ctx, stage_id)).unwrap()


@router.get("/api/stages/{stage_id}/leads/count")
async def count_stage_leads(stage_id: str, ctx: TenantContext = Depends(require_context),
                            gw: Gateway = Depends(get_tenant_gateway)):
    return {"count": (await lead_service.count_by_stage(gw, ctx, stage_id)).unwrap()}


@router.post("/api/leads", status_code=201)
async def create_lead(body: LeadCreate, ctx: TenantContext = Depends(require_context),
                      gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.create_lead(gw, ctx, body)).unwrap()


@router.get("/api/leads/{lead_id}")
async def get_lead(lead_id: str, ctx: TenantContext = Depends(require_context),
                   gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.leads.get_by_id(gw, ctx, lead_id)).unwrap()


@router.patch("/api/leads/{lead_id}")
async def update_lead(lead_id: str, body: LeadUpdate, ctx: TenantContext = Depends(require_context),
                      gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.update_lead(gw, ctx, lead_id, body)).unwrap()


@router.delete("/api/leads/{lead_id}")
async def delete_lead(lead_id: str, ctx: TenantContext = Depends(require_context),
                      gw: Gateway = Depends(get_tenant_gateway)):
    (await lead_service.delete_lead(gw, ctx, lead_id)).unwrap()
    return {"ok": True}


@router.put("/api/leads/{lead_id}/stage/{stage_id}")
async def move_lead(lead_id: str, stage_id: str, ctx: TenantContext = Depends(require_context),
                    gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.update_lead_stage(gw, ctx, lead_id, stage_id)).unwrap()


@router.get("/api/leads/{lead_id}/history")
async def lead_history(lead_id: str, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.history(gw, ctx, lead_id)).unwrap()


# ── Loss / sale ──────────────────────────────────────────────────────


@router.post("/api/leads/{lead_id}/lost")
async def mark_lost(lead_id: str, body: MarkLost, ctx: TenantContext = Depends(require_context),
                    gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.mark_lost(gw, ctx, lead_id, body)).unwrap()


@router.post("/api/leads/{lead_id}/reactivate")
async def reactivate(lead_id: str, ctx: TenantContext = Depends(require_context),
                     gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.reactivate(gw, ctx, lead_id)).unwrap()


@router.post("/api/leads/{lead_id}/sold")
async def mark_sold(lead_id: str, body: MarkSold, ctx: TenantContext = Depends(require_context),
                    gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.mark_sold(gw, ctx, lead_id, body)).unwrap()


@router.delete("/api/leads/{lead_id}/sold")
async def unmark_sale(lead_id: str, ctx: TenantContext = Depends(require_context),
                      gw: Gateway = Depends(get_tenant_gateway)):
    return (await lead_service.unmark_sale(gw, ctx, lead_id)).unwrap()


# ── Custom values ────────────────────────────────────────────────────


@router.get("/api/leads/{lead_id}/custom-values")
async def list_custom_values(lead_id: str, ctx: TenantContext = Depends(require_context),
                             gw: Gateway = Depends(get_tenant_gateway)):
    return (await custom_field_service.list_by_lead(gw, ctx, lead_id)).unwrap()


@router.put("/api/custom-values")
async def upsert_custom_value(body: CustomValueUpsert, ctx: TenantContext = Depends(require_context),
                              gw: Gateway = Depends(get_tenant_gateway)):
    return (await custom_field_service.upsert_value(gw, ctx, body)).unwrap()


@router.delete("/api/leads/{lead_id}/custom-values/{field_id}")
async def delete_custom_value(lead_id: str, field_id: str, ctx: TenantContext = Depends(require_context),
                              gw: Gateway = Depends(get_tenant_gateway)):
    (await custom_field_service.delete_value(gw, ctx, lead_id, field_id)).unwrap()
    return {"ok": True}
