"""services/profile_service.py — Principal → tenant resolution and company users.

Usage:
    ctx = await resolve_context(gw, bearer_token)   # None when unauthenticated
"""

import logging

from ..context import TenantContext
from ..gateway import Gateway, Query
from .base import accessor

log = logging.getLogger("crmboard.profiles")


async def resolve_context(gw: Gateway, access_token: str) -> TenantContext | None:
    """Build the TenantContext for a token, or None if it does not authenticate.

    Raises RemoteError when the auth backend itself is unreachable.
    """
    user = await gw.get_user(access_token)
    if not user or not user.get("id"):
        return None

    profile = await gw.select_one(Query("profiles").eq("uuid", user["id"]))
    empresa_id = (profile or {}).get("empresa_id") or user.get("empresa_id")
    if not empresa_id:
        log.warning(f"User {user['id']} has no company profile")
        return None
    return TenantContext(
        empresa_id=empresa_id,
        user_id=user["id"],
        access_token=access_token,
        is_admin=bool((profile or {}).get("is_admin")),
    )


@accessor
async def list_company_users(gw: Gateway, ctx: TenantContext) -> list[dict]:
    return await gw.select(
        Query("profiles").eq("empresa_id", ctx.empresa_id).order("full_name")
    )
