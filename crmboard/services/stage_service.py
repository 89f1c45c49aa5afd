"""services/stage_service.py — Stage accessor.

Business Rules:
- A stage can only be created in a pipeline owned by the tenant
- A stage cannot be deleted while leads sit in it
- reorder_stages writes dense positions 0..N-1 and only accepts stages
  belonging to the given pipeline

Called by: board/controller.py, routers/pipelines.py
Depends on: gateway, services/base.py, schemas/pipeline.py
"""

import logging

from pydantic import TypeAdapter

from ..context import TenantContext
from ..errors import NotFoundOrForbidden, ValidationFailure
from ..gateway import Gateway, Query
from ..schemas.pipeline import StageCreate, StagePosition, StageUpdate
from .base import TenantTable, accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.stages")

stages = TenantTable("stages", StageCreate, StageUpdate, label="Stage", order_by="position")

_positions = TypeAdapter(list[StagePosition])


@accessor
async def list_by_pipeline(gw: Gateway, ctx: TenantContext, pipeline_id: str) -> list[dict]:
    q = (
        Query("stages")
        .eq("pipeline_id", pipeline_id)
        .eq("empresa_id", ctx.empresa_id)
        .order("position")
    )
    return await gw.select(q)


@accessor
async def create_stage(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, StageCreate)
    await fetch_owned(gw, ctx, "pipelines", payload["pipeline_id"], "Pipeline")
    rows = await gw.insert("stages", ctx.scoped(payload))
    log.info(f"Stage '{payload['name']}' created in pipeline {payload['pipeline_id']}")
    return rows[0]


async def update_stage(gw: Gateway, ctx: TenantContext, stage_id: str, data):
    return await stages.update(gw, ctx, stage_id, data)


@accessor
async def delete_stage(gw: Gateway, ctx: TenantContext, stage_id: str) -> bool:
    await fetch_owned(gw, ctx, "stages", stage_id, "Stage")
    lead_count = await gw.count(
        Query("leads").eq("stage_id", stage_id).eq("empresa_id", ctx.empresa_id)
    )
    if lead_count:
        raise ValidationFailure(
            f"Cannot delete a stage with {lead_count} lead(s). Move the leads first."
        )
    await gw.delete(Query("stages").eq("id", stage_id).eq("empresa_id", ctx.empresa_id))
    return True


@accessor
async def reorder_stages(gw: Gateway, ctx: TenantContext, pipeline_id: str, ordered_ids: list[str]) -> list[dict]:
    """Persist a full ordering of a pipeline's stages as positions 0..N-1."""
    current = await gw.select(
        Query("stages").eq("pipeline_id", pipeline_id).eq("empresa_id", ctx.empresa_id)
    )
    known = {s["id"]: s for s in current}
    foreign = [sid for sid in ordered_ids if sid not in known]
    if foreign:
        raise NotFoundOrForbidden("Some stages do not belong to this pipeline")
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationFailure("Duplicate stage in ordering")

    updated = []
    for item in _positions.validate_python(
        [{"id": sid, "position": i} for i, sid in enumerate(ordered_ids)]
    ):
        if known[item.id]["position"] == item.position:
            updated.append(known[item.id])
            continue
        rows = await gw.update(
            Query("stages").eq("id", item.id).eq("empresa_id", ctx.empresa_id),
            {"position": item.position},
        )
        updated.extend(rows)
    return updated


@accessor
async def set_position(gw: Gateway, ctx: TenantContext, stage_id: str, position: int) -> dict:
    """Single position write, the unit the board controller persists."""
    payload = as_payload({"position": position}, StageUpdate, partial=True)
    rows = await gw.update(
        Query("stages").eq("id", stage_id).eq("empresa_id", ctx.empresa_id), payload
    )
    if not rows:
        raise NotFoundOrForbidden("Stage not found or access denied")
    return rows[0]
