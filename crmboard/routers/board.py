"""
routers/board.py — Kanban board routes

One BoardController per (company, user, pipeline) is kept open in
memory between requests. Mutations answer with the optimistic state at
once; persistence continues in the background unless ?wait=true is
passed, in which case the response reflects the settled state
(including any rollback) and the errors it produced.

Business Rules:
- A board must be opened (POST /open) before it can be mutated
- Stage reorders and lead moves follow BoardController semantics
- Closing a board cancels in-flight writes; late results are ignored

Called by: main.py (router mount)
Depends on: board/controller.py, board/virtualization.py, dependencies
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from ..board import BoardController, plan_render
from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_context
from ..gateway import Gateway
from ..schemas.board import AddStage, AdjacentMove, BoardOut, MoveLead, RenderWindow, ReorderStages
from ..schemas.lead import LeadFilters

router = APIRouter()

_boards: dict[tuple[str, str, str], BoardController] = {}


def _key(ctx: TenantContext, pipeline_id: str) -> tuple[str, str, str]:
    return (ctx.empresa_id, ctx.user_id, pipeline_id)


def _board(ctx: TenantContext, pipeline_id: str) -> BoardController:
    board = _boards.get(_key(ctx, pipeline_id))
    if board is None:
        raise HTTPException(404, "Board is not open")
    return board


async def _respond(board: BoardController, task, wait: bool) -> BoardOut:
    seen = len(board.notifications)
    if wait and task is not None:
        try:
            await task
        except asyncio.CancelledError:
            # only a board closed mid-request is answered; our own cancellation propagates
            if not (board.closed and task.cancelled()):
                raise
            logger.info(f"Board {board.pipeline_id} closed while a write was pending")
    errors = [n.message for n in board.notifications[seen:]] if wait else []
    return BoardOut(**board.snapshot(), errors=errors)


# ── Lifecycle ────────────────────────────────────────────────────────


@router.post("/api/boards/{pipeline_id}/open", response_model=BoardOut)
async def open_board(
    pipeline_id: str,
    filters: LeadFilters | None = None,
    ctx: TenantContext = Depends(require_context),
    gw: Gateway = Depends(get_tenant_gateway),
):
    previous = _boards.pop(_key(ctx, pipeline_id), None)
    if previous is not None:
        previous.close()
    board = await BoardController(gw, ctx, pipeline_id).load(filters)
    _boards[_key(ctx, pipeline_id)] = board
    logger.info(f"Board {pipeline_id} opened by {ctx.user_id}")
    return BoardOut(**board.snapshot())


@router.get("/api/boards/{pipeline_id}", response_model=BoardOut)
async def get_board(pipeline_id: str, ctx: TenantContext = Depends(require_context)):
    return BoardOut(**_board(ctx, pipeline_id).snapshot())


@router.post("/api/boards/{pipeline_id}/close")
async def close_board(pipeline_id: str, ctx: TenantContext = Depends(require_context)):
    board = _boards.pop(_key(ctx, pipeline_id), None)
    if board is not None:
        await board.aclose()
    return {"ok": True}


# ── Mutations ────────────────────────────────────────────────────────


@router.post("/api/boards/{pipeline_id}/stages/reorder", response_model=BoardOut)
async def reorder_stages(pipeline_id: str, body: ReorderStages, wait: bool = False,
                         ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    task = board.reorder_stages_within_pipeline(body.pipeline_id, body.from_index, body.to_index)
    return await _respond(board, task, wait)


@router.post("/api/boards/{pipeline_id}/stages", response_model=BoardOut)
async def add_stage(pipeline_id: str, body: AddStage, wait: bool = False,
                    ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    task = board.add_stage(body.name, body.color)
    return await _respond(board, task, wait)


@router.delete("/api/boards/{pipeline_id}/stages/{stage_id}", response_model=BoardOut)
async def remove_stage(pipeline_id: str, stage_id: str, wait: bool = False,
                       ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    task = board.remove_stage(stage_id)
    return await _respond(board, task, wait)


@router.post("/api/boards/{pipeline_id}/leads/move", response_model=BoardOut)
async def move_lead(pipeline_id: str, body: MoveLead, wait: bool = False,
                    ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    task = board.move_lead_between_stages(
        body.lead_id, body.from_stage_id, body.to_stage_id, body.to_index
    )
    return await _respond(board, task, wait)


@router.post("/api/boards/{pipeline_id}/leads/move-adjacent", response_model=BoardOut)
async def move_lead_adjacent(pipeline_id: str, body: AdjacentMove, wait: bool = False,
                             ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    task = board.move_lead_adjacent_stage(body.lead_id, body.direction)
    return await _respond(board, task, wait)


# ── Rendering ────────────────────────────────────────────────────────


@router.post("/api/boards/{pipeline_id}/stages/{stage_id}/render-plan")
async def render_plan(pipeline_id: str, stage_id: str, body: RenderWindow,
                      ctx: TenantContext = Depends(require_context)):
    board = _board(ctx, pipeline_id)
    leads = board.leads_by_stage.get(stage_id)
    if leads is None:
        raise HTTPException(404, "Stage is not on this board")
    plan = plan_render(leads, viewport_height=body.viewport_height, scroll_offset=body.scroll_offset)
    return {
        "strategy": plan.strategy,
        "total": len(plan.leads),
        "start": plan.start,
        "end": plan.end,
        "total_height": plan.total_height,
        "lead_ids": [lead["id"] for lead in plan.visible],
    }
