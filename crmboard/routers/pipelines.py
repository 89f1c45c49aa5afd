"""
routers/pipelines.py — Pipelines, stages and pipeline permissions

Business Rules:
- Any user lists the pipelines they are allowed to see
- Creating, editing and deleting pipelines is admin-only
- Granting / revoking pipeline access is admin-only

Called by: main.py (router mount)
Depends on: services/pipeline_service.py, services/stage_service.py, dependencies
"""

from fastapi import APIRouter, Depends
from loguru import logger

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_admin, require_context
from ..gateway import Gateway
from ..schemas.admin import PipelinePermissionSet
from ..schemas.pipeline import PipelineUpdate, PipelineWithStagesCreate, StageCreate, StageUpdate
from ..services import pipeline_service, stage_service

router = APIRouter()


# ── Pipelines ────────────────────────────────────────────────────────


@router.get("/api/pipelines")
async def list_pipelines(ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.list_pipelines(gw, ctx)).unwrap()


@router.post("/api/pipelines", status_code=201)
async def create_pipeline(body: PipelineWithStagesCreate, ctx: TenantContext = Depends(require_admin),
                          gw: Gateway = Depends(get_tenant_gateway)):
    pipeline = (await pipeline_service.create_pipeline_with_stages(gw, ctx, body)).unwrap()
    logger.info(f"Pipeline '{pipeline['name']}' created with {len(pipeline['stages'])} stages")
    return pipeline


@router.get("/api/pipelines/{pipeline_id}")
async def get_pipeline(pipeline_id: str, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.pipelines.get_by_id(gw, ctx, pipeline_id)).unwrap()


@router.patch("/api/pipelines/{pipeline_id}")
async def update_pipeline(pipeline_id: str, body: PipelineUpdate,
                          ctx: TenantContext = Depends(require_admin),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.pipelines.update(gw, ctx, pipeline_id, body)).unwrap()


@router.delete("/api/pipelines/{pipeline_id}")
async def delete_pipeline(pipeline_id: str, ctx: TenantContext = Depends(require_admin),
                          gw: Gateway = Depends(get_tenant_gateway)):
    (await pipeline_service.pipelines.delete(gw, ctx, pipeline_id)).unwrap()
    return {"ok": True}


# ── Stages ───────────────────────────────────────────────────────────


@router.get("/api/pipelines/{pipeline_id}/stages")
async def list_stages(pipeline_id: str, ctx: TenantContext = Depends(require_context),
                      gw: Gateway = Depends(get_tenant_gateway)):
    return (await stage_service.list_by_pipeline(gw, ctx, pipeline_id)).unwrap()


@router.post("/api/stages", status_code=201)
async def create_stage(body: StageCreate, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await stage_service.create_stage(gw, ctx, body)).unwrap()


@router.patch("/api/stages/{stage_id}")
async def update_stage(stage_id: str, body: StageUpdate, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await stage_service.update_stage(gw, ctx, stage_id, body)).unwrap()


@router.delete("/api/stages/{stage_id}")
async def delete_stage(stage_id: str, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    (await stage_service.delete_stage(gw, ctx, stage_id)).unwrap()
    return {"ok": True}


@router.put("/api/pipelines/{pipeline_id}/stages/order")
async def reorder_stages(pipeline_id: str, stage_ids: list[str],
                         ctx: TenantContext = Depends(require_context),
                         gw: Gateway = Depends(get_tenant_gateway)):
    return (await stage_service.reorder_stages(gw, ctx, pipeline_id, stage_ids)).unwrap()


# ── Permissions ──────────────────────────────────────────────────────


@router.get("/api/pipeline-permissions/{user_id}")
async def list_permissions(user_id: str, ctx: TenantContext = Depends(require_admin),
                           gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.list_permissions(gw, ctx, user_id)).unwrap()


@router.put("/api/pipeline-permissions")
async def set_permissions(body: PipelinePermissionSet, ctx: TenantContext = Depends(require_admin),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.set_permissions(gw, ctx, body)).unwrap()


@router.post("/api/pipeline-permissions/{user_id}/{pipeline_id}", status_code=201)
async def grant_permission(user_id: str, pipeline_id: str, ctx: TenantContext = Depends(require_admin),
                           gw: Gateway = Depends(get_tenant_gateway)):
    return (await pipeline_service.grant_permission(gw, ctx, user_id, pipeline_id)).unwrap()


@router.delete("/api/pipeline-permissions/{user_id}/{pipeline_id}")
async def revoke_permission(user_id: str, pipeline_id: str, ctx: TenantContext = Depends(require_admin),
                            gw: Gateway = Depends(get_tenant_gateway)):
    (await pipeline_service.revoke_permission(gw, ctx, user_id, pipeline_id)).unwrap()
    return {"ok": True}
