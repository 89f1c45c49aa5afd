"""
routers/campaigns.py — WhatsApp campaign routes

Called by: main.py (router mount)
Depends on: services/campaign_service.py, dependencies
"""

from fastapi import APIRouter, Depends

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_context
from ..gateway import Gateway
from ..schemas.messaging import CampaignCreate, CampaignUpdate
from ..services import campaign_service

router = APIRouter()


@router.get("/api/campaigns")
async def list_campaigns(ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.list_campaigns(gw, ctx)).unwrap()


@router.get("/api/campaigns/stats")
async def campaign_stats(ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.get_campaign_stats(gw, ctx)).unwrap()


@router.post("/api/campaigns", status_code=201)
async def create_campaign(body: CampaignCreate, ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.create_campaign(gw, ctx, body)).unwrap()


@router.get("/api/campaigns/{campaign_id}")
async def get_campaign(campaign_id: str, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.get_campaign(gw, ctx, campaign_id)).unwrap()


@router.patch("/api/campaigns/{campaign_id}")
async def update_campaign(campaign_id: str, body: CampaignUpdate,
                          ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.update_campaign(gw, ctx, campaign_id, body)).unwrap()


@router.delete("/api/campaigns/{campaign_id}")
async def delete_campaign(campaign_id: str, ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    (await campaign_service.delete_campaign(gw, ctx, campaign_id)).unwrap()
    return {"ok": True}


@router.post("/api/campaigns/{campaign_id}/start")
async def start_campaign(campaign_id: str, ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.start_campaign(gw, ctx, campaign_id)).unwrap()


@router.post("/api/campaigns/{campaign_id}/pause")
async def pause_campaign(campaign_id: str, ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.pause_campaign(gw, ctx, campaign_id)).unwrap()


@router.post("/api/campaigns/{campaign_id}/resume")
async def resume_campaign(campaign_id: str, ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.resume_campaign(gw, ctx, campaign_id)).unwrap()


@router.get("/api/campaigns/{campaign_id}/logs")
async def campaign_logs(campaign_id: str, ctx: TenantContext = Depends(require_context),
                        gw: Gateway = Depends(get_tenant_gateway)):
    return (await campaign_service.list_logs(gw, ctx, campaign_id)).unwrap()
