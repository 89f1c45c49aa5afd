"""
routers/admin.py — Company administration: custom fields, API tokens, users

Business Rules:
- Custom field definitions and API tokens are admin-only
- Any user may read the custom fields that apply to a pipeline
- The full API token value appears only in the create response

Called by: main.py (router mount)
Depends on: services/custom_field_service.py, services/api_token_service.py,
            services/profile_service.py, dependencies
"""

from fastapi import APIRouter, Depends
from loguru import logger

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_admin, require_context
from ..gateway import Gateway
from ..schemas.admin import ApiTokenCreate, ApiTokenToggle, CustomFieldCreate, CustomFieldUpdate
from ..services import api_token_service, custom_field_service, profile_service

router = APIRouter()


# ── Custom fields ────────────────────────────────────────────────────


@router.get("/api/custom-fields")
async def list_custom_fields(pipeline_id: str | None = None,
                             ctx: TenantContext = Depends(require_context),
                             gw: Gateway = Depends(get_tenant_gateway)):
    return (await custom_field_service.list_for_pipeline(gw, ctx, pipeline_id)).unwrap()


@router.post("/api/custom-fields", status_code=201)
async def create_custom_field(body: CustomFieldCreate, ctx: TenantContext = Depends(require_admin),
                              gw: Gateway = Depends(get_tenant_gateway)):
    return (await custom_field_service.create_field(gw, ctx, body)).unwrap()


@router.patch("/api/custom-fields/{field_id}")
async def update_custom_field(field_id: str, body: CustomFieldUpdate,
                              ctx: TenantContext = Depends(require_admin),
                              gw: Gateway = Depends(get_tenant_gateway)):
    return (await custom_field_service.update_field(gw, ctx, field_id, body)).unwrap()


@router.delete("/api/custom-fields/{field_id}")
async def delete_custom_field(field_id: str, ctx: TenantContext = Depends(require_admin),
                              gw: Gateway = Depends(get_tenant_gateway)):
    (await custom_field_service.delete_field(gw, ctx, field_id)).unwrap()
    return {"ok": True}


# ── API tokens ───────────────────────────────────────────────────────


@router.get("/api/api-tokens")
async def list_api_tokens(ctx: TenantContext = Depends(require_admin),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await api_token_service.list_tokens(gw, ctx)).unwrap()


@router.post("/api/api-tokens", status_code=201)
async def create_api_token(body: ApiTokenCreate, ctx: TenantContext = Depends(require_admin),
                           gw: Gateway = Depends(get_tenant_gateway)):
    token = (await api_token_service.create_token(gw, ctx, body)).unwrap()
    logger.info(f"API token {token['id']} issued by {ctx.user_id}")
    return token


@router.patch("/api/api-tokens/{token_id}")
async def toggle_api_token(token_id: str, body: ApiTokenToggle,
                           ctx: TenantContext = Depends(require_admin),
                           gw: Gateway = Depends(get_tenant_gateway)):
    return (await api_token_service.toggle_token(gw, ctx, token_id, body.is_active)).unwrap()


@router.delete("/api/api-tokens/{token_id}")
async def delete_api_token(token_id: str, ctx: TenantContext = Depends(require_admin),
                           gw: Gateway = Depends(get_tenant_gateway)):
    (await api_token_service.delete_token(gw, ctx, token_id)).unwrap()
    return {"ok": True}


# ── Users ────────────────────────────────────────────────────────────


@router.get("/api/users")
async def list_users(ctx: TenantContext = Depends(require_context),
                     gw: Gateway = Depends(get_tenant_gateway)):
    return (await profile_service.list_company_users(gw, ctx)).unwrap()


@router.get("/api/me")
async def me(ctx: TenantContext = Depends(require_context)):
    return {"user_id": ctx.user_id, "empresa_id": ctx.empresa_id, "is_admin": ctx.is_admin}
