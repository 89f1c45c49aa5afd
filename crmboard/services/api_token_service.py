"""services/api_token_service.py — Company API tokens for external integrations.

Business Rules:
- Token format: adv_live_ + 32 lowercase hex chars
- The full token is returned only by create_token; every other read is
  masked as adv_live_**** + last 4 chars
- Tokens are listed newest first
- touch_token records last_used_at whenever a token authenticates

Called by: routers/admin.py, dependencies.py (token auth)
Depends on: gateway, services/base.py, schemas/admin.py
"""

import logging
import secrets
from datetime import datetime, timezone

from ..context import TenantContext
from ..gateway import Gateway, Query
from ..schemas.admin import ApiTokenCreate
from .base import accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.api_tokens")

TOKEN_PREFIX = "adv_live_"


def generate_token() -> str:
    return TOKEN_PREFIX + secrets.token_hex(16)


def mask_token(token: str) -> str:
    return f"{TOKEN_PREFIX}****{token[-4:]}"


def _masked(row: dict) -> dict:
    return {**row, "token": mask_token(row["token"])}


@accessor
async def list_tokens(gw: Gateway, ctx: TenantContext) -> list[dict]:
    rows = await gw.select(
        Query("api_tokens").eq("empresa_id", ctx.empresa_id).order("created_at", ascending=False)
    )
    return [_masked(r) for r in rows]


@accessor
async def create_token(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, ApiTokenCreate)
    row = ctx.scoped({
        "name": payload["name"],
        "token": generate_token(),
        "created_by": ctx.user_id,
        "is_active": True,
    })
    created = (await gw.insert("api_tokens", row))[0]
    log.info(f"API token '{payload['name']}' created for tenant {ctx.empresa_id}")
    return created


@accessor
async def toggle_token(gw: Gateway, ctx: TenantContext, token_id: str, is_active: bool) -> dict:
    await fetch_owned(gw, ctx, "api_tokens", token_id, "API token")
    rows = await gw.update(
        Query("api_tokens").eq("id", token_id).eq("empresa_id", ctx.empresa_id),
        {"is_active": is_active, "updated_at": datetime.now(timezone.utc).isoformat()},
    )
    return _masked(rows[0])


@accessor
async def delete_token(gw: Gateway, ctx: TenantContext, token_id: str) -> bool:
    await fetch_owned(gw, ctx, "api_tokens", token_id, "API token")
    await gw.delete(Query("api_tokens").eq("id", token_id).eq("empresa_id", ctx.empresa_id))
    log.info(f"API token {token_id} deleted")
    return True


@accessor
async def touch_token(gw: Gateway, token: str) -> bool:
    """Stamp last_used_at on an active token. False when no such token."""
    rows = await gw.update(
        Query("api_tokens").eq("token", token).eq("is_active", True),
        {"last_used_at": datetime.now(timezone.utc).isoformat()},
    )
    return bool(rows)
