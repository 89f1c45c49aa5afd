"""
board/controller.py — Kanban board state with optimistic, reversible writes

One BoardController owns one open board (one pipeline): the ordered
stage list and the ordered lead list of every stage. Every operation
updates that local state synchronously and returns an asyncio.Task for
the persistence work (None when nothing needs persisting).

Business Rules:
- Stage positions are always dense 0..N-1 after a reorder
- Temporary stages (id "temp-...") are never written by a reorder;
  their creation task writes their position once the insert succeeds
- Leads only move between stages of this board (no cross-pipeline moves)
- Same-stage lead moves are local only
- Each intent takes a sequence number per entity key ("stages",
  "lead:<id>"). Only the latest intent for a key may confirm or roll back
- Remote writes for one lead are serialized by a per-lead lock; all
  stage position writes share one lock
- Every remote call is bounded by persistence_timeout_seconds; expiry is
  a PersistenceTimeout, handled like any other persistence failure
- On failure the last server-confirmed state is restored locally, writes
  that already landed are compensated, and the error is surfaced
- After close(), late responses change nothing

Called by: routers/board.py
Depends on: services/stage_service.py, services/lead_service.py, board/ordering.py
"""

import asyncio
import copy
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from ..config import settings
from ..context import TenantContext
from ..errors import CrmError, PersistenceTimeout, Result, ValidationFailure, from_validation_error
from ..gateway import Gateway
from ..schemas.pipeline import DEFAULT_STAGE_COLOR, PipelineStageSeed
from ..services import lead_service, stage_service
from .ordering import (
    array_move,
    find_lead,
    is_temporary_stage,
    name_taken,
    reindex,
    temp_stage_id,
)

log = logging.getLogger("crmboard.board")

STAGES_KEY = "stages"


def _lead_key(lead_id: str) -> str:
    return f"lead:{lead_id}"


class BoardController:
    def __init__(
        self,
        gw: Gateway,
        ctx: TenantContext,
        pipeline_id: str,
        *,
        timeout: float | None = None,
        on_error: Callable[[CrmError], None] | None = None,
    ):
        self.gw = gw
        self.ctx = ctx
        self.pipeline_id = pipeline_id
        self.timeout = timeout if timeout is not None else settings.persistence_timeout_seconds
        self.on_error = on_error

        self.stages: list[dict] = []
        self.leads_by_stage: dict[str, list[dict]] = {}
        self.reached_limit = False
        self.notifications: list[CrmError] = []
        self.closed = False

        self._seq: dict[str, int] = defaultdict(int)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: set[asyncio.Task] = set()

        # Last state the server is known to hold
        self._confirmed_positions: dict[str, int | None] = {}
        self._stage_baseline: list[dict] | None = None
        self._lead_baseline: dict[str, tuple[str, int]] = {}
        self._creating: set[str] = set()

    # ── Loading & inspection ────────────────────────────────────────

    async def load(self, filters=None) -> "BoardController":
        stages = (await stage_service.list_by_pipeline(self.gw, self.ctx, self.pipeline_id)).unwrap()
        page = (
            await lead_service.list_by_pipeline(self.gw, self.ctx, self.pipeline_id, filters)
        ).unwrap()

        self.stages = stages
        self.leads_by_stage = {s["id"]: [] for s in stages}
        for lead in page["leads"]:
            if lead["stage_id"] in self.leads_by_stage:
                self.leads_by_stage[lead["stage_id"]].append(lead)
        self.reached_limit = page["reached_limit"]
        self._confirmed_positions = {s["id"]: s["position"] for s in stages}
        reindex(self.stages)
        log.debug(
            f"Board {self.pipeline_id} loaded: {len(stages)} stages, {len(page['leads'])} leads"
        )
        return self

    def snapshot(self) -> dict:
        return {
            "pipeline_id": self.pipeline_id,
            "stages": copy.deepcopy(self.stages),
            "leads_by_stage": copy.deepcopy(self.leads_by_stage),
            "reached_limit": self.reached_limit,
        }

    def stage_index(self, stage_id: str) -> int | None:
        for i, s in enumerate(self.stages):
            if s["id"] == stage_id:
                return i
        return None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ── Stage operations ────────────────────────────────────────────

    def reorder_stages_within_pipeline(self, pipeline_id: str, from_index: int,
                                       to_index: int) -> asyncio.Task | None:
        self._check_open()
        if pipeline_id != self.pipeline_id:
            raise ValidationFailure("Stages can only be reordered within the open pipeline")
        size = len(self.stages)
        if not (0 <= from_index < size and 0 <= to_index < size):
            raise ValidationFailure(f"Stage index out of range (0..{size - 1})")
        if from_index == to_index:
            return None

        if self._stage_baseline is None:
            self._stage_baseline = copy.deepcopy(self.stages)
        self.stages = array_move(self.stages, from_index, to_index)
        changed = reindex(self.stages)
        seq = self._next(STAGES_KEY)
        log.debug(f"Stage reorder #{seq}: {from_index} -> {to_index}, changed {changed}")
        # writes whatever differs from the server when it runs; temporary
        # stages are skipped until their creation lands
        return self._spawn(self._persist_stage_order(seq))

    def add_stage(self, name: str, color: str = DEFAULT_STAGE_COLOR) -> asyncio.Task:
        self._check_open()
        try:
            seed = PipelineStageSeed(name=name, color=color)
        except ValidationError as e:
            raise from_validation_error(e) from None
        if name_taken(self.stages, seed.name):
            raise ValidationFailure(f'A stage named "{seed.name}" already exists in this pipeline')

        temp_id = temp_stage_id()
        stage = {
            "id": temp_id,
            "pipeline_id": self.pipeline_id,
            "empresa_id": self.ctx.empresa_id,
            "name": seed.name,
            "color": seed.color,
            "position": len(self.stages),
        }
        self.stages.append(stage)
        self.leads_by_stage[temp_id] = []
        self._creating.add(temp_id)
        return self._spawn(self._persist_new_stage(temp_id))

    def remove_stage(self, stage_id: str) -> asyncio.Task | None:
        self._check_open()
        index = self.stage_index(stage_id)
        if index is None:
            raise ValidationFailure("Stage is not on this board")
        if stage_id in self._creating:
            raise ValidationFailure("Stage is still being created")
        if self.leads_by_stage.get(stage_id):
            raise ValidationFailure("Cannot remove a stage that still has leads. Move them first.")
        if any(origin == stage_id for origin, _ in self._lead_baseline.values()):
            raise ValidationFailure("A lead is still being moved out of this stage")

        removed = self.stages.pop(index)
        self.leads_by_stage.pop(stage_id, None)
        reindex(self.stages)
        return self._spawn(self._persist_stage_removal(removed, index))

    # ── Lead operations ─────────────────────────────────────────────

    def move_lead_between_stages(self, lead_id: str, from_stage_id: str, to_stage_id: str,
                                 to_index: int) -> asyncio.Task | None:
        self._check_open()
        source = self.leads_by_stage.get(from_stage_id)
        if source is None:
            raise ValidationFailure("Source stage is not on this board")
        from_index = next((i for i, lead in enumerate(source) if lead["id"] == lead_id), None)
        if from_index is None:
            raise ValidationFailure("Lead is not in the source stage")
        if to_stage_id not in self.leads_by_stage:
            raise ValidationFailure("Leads can only move between stages of the same pipeline")

        if from_stage_id == to_stage_id:
            if not 0 <= to_index < len(source):
                raise ValidationFailure(f"Target index out of range (0..{len(source) - 1})")
            self.leads_by_stage[from_stage_id] = array_move(source, from_index, to_index)
            return None

        if to_stage_id in self._creating:
            raise ValidationFailure("Stage is still being created")
        destination = self.leads_by_stage[to_stage_id]
        if not 0 <= to_index <= len(destination):
            raise ValidationFailure(f"Target index out of range (0..{len(destination)})")

        self._lead_baseline.setdefault(lead_id, (from_stage_id, from_index))
        lead = source.pop(from_index)
        lead["stage_id"] = to_stage_id
        destination.insert(to_index, lead)
        seq = self._next(_lead_key(lead_id))
        return self._spawn(self._persist_lead_move(lead_id, to_stage_id, to_index, seq))

    def move_lead_adjacent_stage(self, lead_id: str, direction: str) -> asyncio.Task | None:
        self._check_open()
        if direction not in ("prev", "next"):
            raise ValidationFailure('Direction must be "prev" or "next"')
        found = find_lead(self.leads_by_stage, lead_id)
        if found is None:
            raise ValidationFailure("Lead is not on this board")
        stage_id, _ = found
        index = self.stage_index(stage_id)
        target = index - 1 if direction == "prev" else index + 1
        if not 0 <= target < len(self.stages):
            return None
        to_stage_id = self.stages[target]["id"]
        return self.move_lead_between_stages(
            lead_id, stage_id, to_stage_id, len(self.leads_by_stage[to_stage_id])
        )

    # ── Lifecycle ───────────────────────────────────────────────────

    def close(self) -> None:
        """Stop accepting intents and cancel in-flight persistence."""
        self.closed = True
        for task in list(self._tasks):
            task.cancel()

    async def aclose(self) -> None:
        self.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every in-flight persistence task has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Persistence tasks ───────────────────────────────────────────

    async def _persist_stage_order(self, seq: int) -> bool | None:
        async with self._locks[STAGES_KEY]:
            if self.closed:
                return None
            if not self._is_latest(STAGES_KEY, seq):
                log.debug(f"Stage reorder #{seq} superseded before writing")
                return None
            try:
                await self._sync_positions()
            except CrmError as e:
                if self.closed:
                    return None
                if not self._is_latest(STAGES_KEY, seq):
                    log.info(f"Stage reorder #{seq} failed after being superseded: {e.message}")
                    return False
                await self._rollback_stages()
                self._surface(e, "Could not save the new stage order. Changes were undone.")
                return False
            if self._is_latest(STAGES_KEY, seq):
                self._stage_baseline = None
            return True

    async def _persist_new_stage(self, temp_id: str) -> bool | None:
        async with self._locks[STAGES_KEY]:
            if self.closed:
                return None
            stage = next((s for s in self.stages if s["id"] == temp_id), None)
            if stage is None:
                self._creating.discard(temp_id)
                return None
            payload = {
                "pipeline_id": self.pipeline_id,
                "name": stage["name"],
                "color": stage["color"],
                "position": stage["position"],
            }
            try:
                created = await self._call(stage_service.create_stage(self.gw, self.ctx, payload))
            except CrmError as e:
                self._creating.discard(temp_id)
                if self.closed:
                    return None
                self._drop_temp_stage(temp_id)
                self._surface(e, f'Could not create stage "{payload["name"]}".')
                return False

            self._creating.discard(temp_id)
            if self.closed:
                return None
            self._replace_stage_id(temp_id, created)
            self._confirmed_positions[created["id"]] = created["position"]
            try:
                # the deferred position write
                await self._sync_positions()
            except CrmError as e:
                if self.closed:
                    return None
                self._surface(e, "Stage created, but its position could not be saved.")
                return False
            return True

    async def _persist_stage_removal(self, removed: dict, index: int) -> bool | None:
        async with self._locks[STAGES_KEY]:
            if self.closed:
                return None
            try:
                await self._call(stage_service.delete_stage(self.gw, self.ctx, removed["id"]))
            except CrmError as e:
                if self.closed:
                    return None
                self.stages.insert(min(index, len(self.stages)), removed)
                self.leads_by_stage.setdefault(removed["id"], [])
                reindex(self.stages)
                self._surface(e, f'Could not remove stage "{removed["name"]}".')
                return False

            self._confirmed_positions.pop(removed["id"], None)
            if self._stage_baseline is not None:
                self._stage_baseline = [s for s in self._stage_baseline if s["id"] != removed["id"]]
            try:
                await self._sync_positions()
            except CrmError as e:
                if not self.closed:
                    self._surface(e, "Stage removed, but the remaining order could not be saved.")
                return False
            return True

    async def _persist_lead_move(self, lead_id: str, to_stage_id: str, to_index: int,
                                 seq: int) -> bool | None:
        key = _lead_key(lead_id)
        async with self._locks[key]:
            if self.closed:
                return None
            if not self._is_latest(key, seq):
                log.debug(f"Move #{seq} of lead {lead_id} superseded before writing")
                return None
            try:
                row = await self._call(
                    lead_service.update_lead_stage(self.gw, self.ctx, lead_id, to_stage_id)
                )
            except CrmError as e:
                if self.closed:
                    return None
                if not self._is_latest(key, seq):
                    log.info(f"Move #{seq} of lead {lead_id} failed after being superseded")
                    return False
                if isinstance(e, PersistenceTimeout):
                    await self._compensate_lead(lead_id)
                self._rollback_lead(lead_id)
                self._surface(e, "Could not move the lead. It was returned to its stage.")
                return False

            if self.closed:
                return None
            if self._is_latest(key, seq):
                self._lead_baseline.pop(lead_id, None)
                found = find_lead(self.leads_by_stage, lead_id)
                if found:
                    stage_id, i = found
                    self.leads_by_stage[stage_id][i]["pipeline_id"] = row.get("pipeline_id")
            else:
                self._lead_baseline[lead_id] = (to_stage_id, to_index)
            return True

    # ── Helpers ─────────────────────────────────────────────────────

    def _check_open(self) -> None:
        if self.closed:
            raise ValidationFailure("Board is closed")

    def _next(self, key: str) -> int:
        self._seq[key] += 1
        return self._seq[key]

    def _is_latest(self, key: str, seq: int) -> bool:
        return self._seq[key] == seq

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _call(self, awaitable: Awaitable[Result]):
        try:
            result = await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError:
            raise PersistenceTimeout(f"No response from server after {self.timeout:g}s") from None
        return result.unwrap()

    def _unsaved_positions(self) -> list[tuple[str, int]]:
        return [
            (s["id"], s["position"])
            for s in self.stages
            if not is_temporary_stage(s["id"])
            and self._confirmed_positions.get(s["id"]) != s["position"]
        ]

    async def _write_position(self, stage_id: str, position: int) -> None:
        try:
            await self._call(stage_service.set_position(self.gw, self.ctx, stage_id, position))
        except PersistenceTimeout:
            # the write may or may not have landed
            self._confirmed_positions[stage_id] = None
            raise
        self._confirmed_positions[stage_id] = position

    async def _sync_positions(self) -> None:
        for stage_id, position in self._unsaved_positions():
            await self._write_position(stage_id, position)

    async def _rollback_stages(self) -> None:
        baseline = self._stage_baseline or []
        self._stage_baseline = None
        current = {s["id"]: s for s in self.stages}
        restored = [current[s["id"]] for s in baseline if s["id"] in current]
        known = {s["id"] for s in restored}
        restored += [s for s in self.stages if s["id"] not in known]
        self.stages = restored
        reindex(self.stages)

        for stage_id, position in self._unsaved_positions():
            try:
                await self._write_position(stage_id, position)
            except CrmError as e:
                log.warning(f"Compensating position write for stage {stage_id} failed: {e.message}")

    def _rollback_lead(self, lead_id: str) -> None:
        baseline = self._lead_baseline.pop(lead_id, None)
        found = find_lead(self.leads_by_stage, lead_id)
        if baseline is None or found is None:
            return
        stage_id, index = found
        origin_stage, origin_index = baseline
        if origin_stage not in self.leads_by_stage:
            return
        lead = self.leads_by_stage[stage_id].pop(index)
        lead["stage_id"] = origin_stage
        origin = self.leads_by_stage[origin_stage]
        origin.insert(min(origin_index, len(origin)), lead)

    async def _compensate_lead(self, lead_id: str) -> None:
        baseline = self._lead_baseline.get(lead_id)
        if baseline is None:
            return
        try:
            await self._call(lead_service.update_lead_stage(self.gw, self.ctx, lead_id, baseline[0]))
        except CrmError as e:
            log.warning(f"Compensating move for lead {lead_id} failed: {e.message}")

    def _drop_temp_stage(self, temp_id: str) -> None:
        self.stages = [s for s in self.stages if s["id"] != temp_id]
        self.leads_by_stage.pop(temp_id, None)
        reindex(self.stages)

    def _replace_stage_id(self, temp_id: str, created: dict) -> None:
        for stage in self.stages:
            if stage["id"] == temp_id:
                stage["id"] = created["id"]
                stage["created_at"] = created.get("created_at")
        self.leads_by_stage[created["id"]] = self.leads_by_stage.pop(temp_id, [])
        if self._stage_baseline is not None:
            for stage in self._stage_baseline:
                if stage["id"] == temp_id:
                    stage["id"] = created["id"]

    def _surface(self, error: CrmError, message: str) -> None:
        log.warning(f"{message} ({error.message})")
        notice = type(error)(message, detail=error.message)
        self.notifications.append(notice)
        if self.on_error is not None:
            self.on_error(notice)
