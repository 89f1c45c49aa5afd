"""services/pipeline_service.py — Pipelines and per-user pipeline permissions.

Business Rules:
- Only active pipelines are listed, ordered by display_order then created_at
- Admins see every pipeline of their company
- Non-admins see only pipelines granted in pipeline_permissions;
  no grants means no pipelines
- create_pipeline_with_stages is all-or-nothing: a failed stage insert
  deletes the freshly created pipeline

Called by: routers/pipelines.py, board/controller.py
Depends on: gateway, services/base.py, schemas/pipeline.py
"""

import logging

from ..context import TenantContext
from ..errors import NotFoundOrForbidden, RemoteError
from ..gateway import Gateway, Query
from ..schemas.admin import PipelinePermissionSet
from ..schemas.pipeline import PipelineCreate, PipelineUpdate, PipelineWithStagesCreate
from .base import TenantTable, accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.pipelines")

pipelines = TenantTable("pipelines", PipelineCreate, PipelineUpdate, label="Pipeline",
                        order_by="display_order")


async def allowed_pipeline_ids(gw: Gateway, ctx: TenantContext) -> set[str] | None:
    """Pipeline ids the user may see; None means unrestricted (admin)."""
    if ctx.is_admin:
        return None
    grants = await gw.select(
        Query("pipeline_permissions").eq("empresa_id", ctx.empresa_id).eq("user_id", ctx.user_id)
    )
    return {g["pipeline_id"] for g in grants}


@accessor
async def list_pipelines(gw: Gateway, ctx: TenantContext) -> list[dict]:
    q = (
        Query("pipelines")
        .eq("empresa_id", ctx.empresa_id)
        .eq("active", True)
        .order("display_order")
        .order("created_at")
    )
    rows = await gw.select(q)
    allowed = await allowed_pipeline_ids(gw, ctx)
    if allowed is None:
        return rows
    return [r for r in rows if r["id"] in allowed]


@accessor
async def create_pipeline_with_stages(gw: Gateway, ctx: TenantContext, data) -> dict:
    """Create a pipeline and its initial stages at positions 0..N-1."""
    payload = as_payload(data, PipelineWithStagesCreate)
    seeds = payload.pop("stages")
    pipeline = (await gw.insert("pipelines", ctx.scoped(payload)))[0]

    if not seeds:
        return {**pipeline, "stages": []}

    rows = [
        ctx.scoped({"pipeline_id": pipeline["id"], "name": s["name"], "color": s["color"],
                    "position": i})
        for i, s in enumerate(seeds)
    ]
    try:
        stages = await gw.insert("stages", rows)
    except RemoteError:
        log.error(f"Stage insert failed, removing pipeline {pipeline['id']}")
        await gw.delete(Query("pipelines").eq("id", pipeline["id"]))
        raise
    return {**pipeline, "stages": stages}


# ── Permissions ──────────────────────────────────────────────────────


@accessor
async def list_permissions(gw: Gateway, ctx: TenantContext, user_id: str) -> list[str]:
    grants = await gw.select(
        Query("pipeline_permissions").eq("empresa_id", ctx.empresa_id).eq("user_id", user_id)
    )
    return [g["pipeline_id"] for g in grants]


@accessor
async def grant_permission(gw: Gateway, ctx: TenantContext, user_id: str, pipeline_id: str) -> dict:
    await fetch_owned(gw, ctx, "pipelines", pipeline_id, "Pipeline")
    existing = await gw.select_one(
        Query("pipeline_permissions").eq("user_id", user_id).eq("pipeline_id", pipeline_id)
    )
    if existing:
        return existing
    rows = await gw.insert(
        "pipeline_permissions", ctx.scoped({"user_id": user_id, "pipeline_id": pipeline_id})
    )
    return rows[0]


@accessor
async def revoke_permission(gw: Gateway, ctx: TenantContext, user_id: str, pipeline_id: str) -> bool:
    removed = await gw.delete(
        Query("pipeline_permissions")
        .eq("empresa_id", ctx.empresa_id)
        .eq("user_id", user_id)
        .eq("pipeline_id", pipeline_id)
    )
    if not removed:
        raise NotFoundOrForbidden("Permission not found")
    return True


@accessor
async def set_permissions(gw: Gateway, ctx: TenantContext, data) -> list[str]:
    """Replace a user's grants with exactly the given pipeline ids."""
    payload = as_payload(data, PipelinePermissionSet)
    wanted = list(dict.fromkeys(payload["pipeline_ids"]))
    for pid in wanted:
        await fetch_owned(gw, ctx, "pipelines", pid, "Pipeline")
    await gw.delete(
        Query("pipeline_permissions").eq("empresa_id", ctx.empresa_id).eq("user_id", payload["user_id"])
    )
    if wanted:
        await gw.insert(
            "pipeline_permissions",
            [ctx.scoped({"user_id": payload["user_id"], "pipeline_id": pid}) for pid in wanted],
        )
    log.info(f"Pipeline permissions for {payload['user_id']} set to {len(wanted)} pipeline(s)")
    return wanted
