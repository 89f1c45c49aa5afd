"""
dependencies.py — Shared FastAPI Dependencies

Business Rules:
- Requests authenticate with "Authorization: Bearer <token>"; the token
  is a BaaS session token or a company API token (adv_live_...)
- require_context raises 401 when the token does not resolve to a
  principal with a company profile
- API tokens get last_used_at stamped on every authenticated request
- require_admin raises 403 unless the profile is a company admin
- get_tenant_gateway forwards the caller's token so row-level security
  applies on the REST backend

Called by: all routers
Depends on: gateway, services/profile_service.py, services/api_token_service.py
"""

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request

from .context import TenantContext
from .gateway import Gateway, RestGateway, build_gateway
from .services import api_token_service, profile_service

log = logging.getLogger("crmboard.auth")


@lru_cache
def get_gateway() -> Gateway:
    return build_gateway()


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_context(request: Request, gw: Gateway = Depends(get_gateway)) -> TenantContext:
    """Dependency: resolve the caller's tenant context or raise 401."""
    token = bearer_token(request)
    if not token:
        raise HTTPException(401, "Not authenticated")
    ctx = await profile_service.resolve_context(gw, token)
    if ctx is None:
        raise HTTPException(401, "Invalid or expired token")
    if token.startswith(api_token_service.TOKEN_PREFIX):
        touched = await api_token_service.touch_token(gw, token)
        if touched.error:
            log.warning(f"Could not record API token use: {touched.error.message}")
    return ctx


def require_admin(ctx: TenantContext = Depends(require_context)) -> TenantContext:
    """Dependency: raises 403 if the caller is not a company admin."""
    if not ctx.is_admin:
        raise HTTPException(403, "Admin access required")
    return ctx


def get_tenant_gateway(
    ctx: TenantContext = Depends(require_context), gw: Gateway = Depends(get_gateway)
) -> Gateway:
    if isinstance(gw, RestGateway):
        return gw.with_token(ctx.access_token)
    return gw
