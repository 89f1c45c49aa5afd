"""
test_board_controller.py — Tests for BoardController

Optimistic local state, dense stage positions, lead moves, rollback on
failure and timeout, supersession by later intents, closing, and
temporary stages. Runs against the SQL gateway on in-memory SQLite;
failures are injected by patching the stage/lead accessors.

Called by: pytest
Depends on: conftest.py (gw, ctx, board_data), crmboard/board/controller.py
"""

import asyncio
import threading
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest

from crmboard.board import BoardController
from crmboard.errors import PersistenceTimeout, RemoteError, Result, ValidationFailure
from crmboard.gateway import Query
from crmboard.services import lead_service, stage_service


async def _open(gw, ctx, **kwargs) -> BoardController:
    return await BoardController(gw, ctx, "pipe-1", **kwargs).load()


async def _positions(gw) -> dict:
    rows = await gw.select(Query("stages").eq("pipeline_id", "pipe-1"))
    return {r["id"]: r["position"] for r in rows}


async def _stage_of(gw, lead_id) -> str:
    row = await gw.select_one(Query("leads").eq("id", lead_id))
    return row["stage_id"]


def _ids(board, stage_id):
    return [lead["id"] for lead in board.leads_by_stage[stage_id]]


def _stage_ids(board):
    return [s["id"] for s in board.stages]


def _recording_set_position(calls, fail_at=None):
    """Wrap set_position, logging each call; call number `fail_at` fails."""
    real = stage_service.set_position

    async def fake(gw, ctx, stage_id, position):
        calls.append((stage_id, position))
        if fail_at is not None and len(calls) == fail_at:
            return Result.failure(RemoteError("connection reset"))
        return await real(gw, ctx, stage_id, position)

    return fake


# ── Loading ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_load_groups_leads_by_stage(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert _stage_ids(board) == ["st-prosp", "st-qual", "st-prop"]
    assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]
    assert _ids(board, "st-qual") == []
    assert _ids(board, "st-prop") == ["L4", "L5"]
    assert board.reached_limit is False


# ── Stage reorder ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reorder_writes_only_changed_positions(gw, ctx, board_data):
    board = await _open(gw, ctx)
    calls = []
    with patch.object(stage_service, "set_position", _recording_set_position(calls)):
        task = board.reorder_stages_within_pipeline("pipe-1", 1, 0)
        # local state is updated before anything is persisted
        assert _stage_ids(board) == ["st-qual", "st-prosp", "st-prop"]
        assert [s["position"] for s in board.stages] == [0, 1, 2]
        assert await task is True

    assert calls == [("st-qual", 0), ("st-prosp", 1)]
    assert await _positions(gw) == {"st-qual": 0, "st-prosp": 1, "st-prop": 2}


@pytest.mark.asyncio
async def test_reorder_same_index_is_noop(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert board.reorder_stages_within_pipeline("pipe-1", 2, 2) is None
    assert board.pending == 0


@pytest.mark.asyncio
async def test_reorders_keep_a_dense_permutation(gw, ctx, board_data):
    board = await _open(gw, ctx)
    for src, dst in [(0, 2), (2, 1), (1, 0), (0, 1)]:
        board.reorder_stages_within_pipeline("pipe-1", src, dst)
    await board.drain()

    assert sorted(_stage_ids(board)) == sorted(board_data["stages"])
    assert [s["position"] for s in board.stages] == [0, 1, 2]
    stored = await _positions(gw)
    assert sorted(stored.values()) == [0, 1, 2]
    assert stored == {s["id"]: s["position"] for s in board.stages}


@pytest.mark.asyncio
async def test_reorder_rejects_other_pipeline_and_bad_index(gw, ctx, board_data):
    board = await _open(gw, ctx)
    with pytest.raises(ValidationFailure):
        board.reorder_stages_within_pipeline("pipe-2", 0, 1)
    with pytest.raises(ValidationFailure):
        board.reorder_stages_within_pipeline("pipe-1", 0, 3)
    assert _stage_ids(board) == ["st-prosp", "st-qual", "st-prop"]


@pytest.mark.asyncio
async def test_reorder_failure_rolls_back_and_compensates(gw, ctx, board_data):
    errors = []
    board = await _open(gw, ctx, on_error=errors.append)
    calls = []
    with patch.object(stage_service, "set_position", _recording_set_position(calls, fail_at=2)):
        assert await board.reorder_stages_within_pipeline("pipe-1", 1, 0) is False

    # Qualification -> 0 landed, Prospecting -> 1 failed, Qualification put back
    assert calls == [("st-qual", 0), ("st-prosp", 1), ("st-qual", 1)]
    assert _stage_ids(board) == ["st-prosp", "st-qual", "st-prop"]
    assert await _positions(gw) == {"st-prosp": 0, "st-qual": 1, "st-prop": 2}
    assert len(board.notifications) == 1
    assert isinstance(board.notifications[0], RemoteError)
    assert errors == board.notifications


# ── Lead moves ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_move_lead_between_stages(gw, ctx, board_data):
    board = await _open(gw, ctx)
    task = board.move_lead_between_stages("L1", "st-prosp", "st-prop", 1)
    assert _ids(board, "st-prosp") == ["L2", "L3"]
    assert _ids(board, "st-prop") == ["L4", "L1", "L5"]
    assert await task is True

    assert await _stage_of(gw, "L1") == "st-prop"
    history = await gw.select(Query("lead_history").eq("lead_id", "L1"))
    assert [h["change_type"] for h in history] == ["stage_changed"]
    assert history[0]["previous_stage_id"] == "st-prosp"


@pytest.mark.asyncio
async def test_moves_preserve_lead_count(gw, ctx, board_data):
    board = await _open(gw, ctx)
    board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0)
    board.move_lead_between_stages("L4", "st-prop", "st-qual", 1)
    board.move_lead_between_stages("L2", "st-prosp", "st-prop", 0)
    await board.drain()
    total = sum(len(v) for v in board.leads_by_stage.values())
    assert total == 5
    assert _ids(board, "st-qual") == ["L1", "L4"]


@pytest.mark.asyncio
async def test_same_stage_move_is_local_only(gw, ctx, board_data):
    board = await _open(gw, ctx)
    with patch.object(lead_service, "update_lead_stage") as update:
        assert board.move_lead_between_stages("L3", "st-prosp", "st-prosp", 0) is None
    update.assert_not_called()
    assert _ids(board, "st-prosp") == ["L3", "L1", "L2"]


@pytest.mark.asyncio
async def test_move_rejects_foreign_stage_and_unknown_lead(gw, ctx, board_data):
    board = await _open(gw, ctx)
    with pytest.raises(ValidationFailure):
        board.move_lead_between_stages("L1", "st-prosp", "st-renew", 0)
    with pytest.raises(ValidationFailure):
        board.move_lead_between_stages("L9", "st-prosp", "st-qual", 0)
    with pytest.raises(ValidationFailure):
        board.move_lead_between_stages("L1", "st-prosp", "st-prop", 5)
    assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]


@pytest.mark.asyncio
async def test_move_failure_restores_lead(gw, ctx, board_data):
    on_error = MagicMock()
    board = await _open(gw, ctx, on_error=on_error)

    async def failing(gw_, ctx_, lead_id, stage_id):
        return Result.failure(RemoteError("503 Service Unavailable", status_code=503))

    with patch.object(lead_service, "update_lead_stage", failing):
        assert await board.move_lead_between_stages("L1", "st-prosp", "st-prop", 1) is False

    assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]
    assert _ids(board, "st-prop") == ["L4", "L5"]
    assert board.leads_by_stage["st-prosp"][0]["stage_id"] == "st-prosp"
    assert await _stage_of(gw, "L1") == "st-prosp"
    on_error.assert_called_once()
    notice = on_error.call_args.args[0]
    assert "returned to its stage" in notice.message
    assert notice.detail == "503 Service Unavailable"


@pytest.mark.asyncio
async def test_move_timeout_rolls_back(gw, ctx, board_data):
    board = await _open(gw, ctx, timeout=0.05)

    async def hanging(*args):
        await asyncio.sleep(5)
        return Result.success({})

    with patch.object(lead_service, "update_lead_stage", hanging):
        assert await board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0) is False

    assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]
    assert isinstance(board.notifications[0], PersistenceTimeout)


@pytest.mark.asyncio
async def test_slow_database_times_out_and_rolls_back(gw, ctx, board_data):
    """A stuck SQL session must not hold up the loop past the board timeout."""
    board = await _open(gw, ctx, timeout=0.05)
    real = gw.session_factory
    release, finished = threading.Event(), threading.Event()
    calls = []

    @contextmanager
    def stuck_session():
        calls.append(1)
        release.wait(5)
        try:
            with real() as db:
                yield db
        finally:
            if len(calls) >= 2:
                finished.set()

    gw.session_factory = stuck_session
    try:
        # the move's ownership read and the compensating read both time out
        assert await board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0) is False
        assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]
        assert isinstance(board.notifications[0], PersistenceTimeout)
    finally:
        release.set()
        await asyncio.to_thread(finished.wait, 5)
        gw.session_factory = real

    assert await _stage_of(gw, "L1") == "st-prosp"


# ── Adjacent moves ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_adjacent_move_appends_to_neighbour(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert await board.move_lead_adjacent_stage("L4", "prev") is True
    assert _ids(board, "st-qual") == ["L4"]
    assert await _stage_of(gw, "L4") == "st-qual"


@pytest.mark.asyncio
async def test_adjacent_move_at_boundary_is_noop(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert board.move_lead_adjacent_stage("L1", "prev") is None
    assert board.move_lead_adjacent_stage("L5", "next") is None
    assert _ids(board, "st-prosp") == ["L1", "L2", "L3"]
    assert _ids(board, "st-prop") == ["L4", "L5"]


# ── Supersession ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_superseded_move_skips_its_write(gw, ctx, board_data):
    board = await _open(gw, ctx)
    first = board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0)
    second = board.move_lead_between_stages("L1", "st-qual", "st-prop", 0)

    assert await first is None
    assert await second is True
    assert await _stage_of(gw, "L1") == "st-prop"
    history = await gw.select(Query("lead_history").eq("lead_id", "L1"))
    assert len(history) == 1


@pytest.mark.asyncio
async def test_stale_failure_does_not_roll_back(gw, ctx, board_data):
    board = await _open(gw, ctx)
    started, release = asyncio.Event(), asyncio.Event()
    real = lead_service.update_lead_stage
    calls = []

    async def gated(gw_, ctx_, lead_id, stage_id):
        calls.append(stage_id)
        if len(calls) == 1:
            started.set()
            await release.wait()
            return Result.failure(RemoteError("timeout upstream"))
        return await real(gw_, ctx_, lead_id, stage_id)

    with patch.object(lead_service, "update_lead_stage", gated):
        first = board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0)
        await started.wait()
        second = board.move_lead_between_stages("L1", "st-qual", "st-prop", 0)
        release.set()
        assert await first is False
        assert await second is True

    assert calls == ["st-qual", "st-prop"]
    assert _ids(board, "st-prop") == ["L1", "L4", "L5"]
    assert board.notifications == []
    assert await _stage_of(gw, "L1") == "st-prop"


# ── Closing ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_late_failure_after_close_changes_nothing(gw, ctx, board_data):
    board = await _open(gw, ctx)
    started, release = asyncio.Event(), asyncio.Event()

    async def gated(*args):
        started.set()
        await release.wait()
        return Result.failure(RemoteError("boom"))

    with patch.object(lead_service, "update_lead_stage", gated):
        task = board.move_lead_between_stages("L1", "st-prosp", "st-prop", 0)
        await started.wait()
        board.closed = True
        release.set()
        assert await task is None

    assert _ids(board, "st-prop") == ["L1", "L4", "L5"]
    assert board.notifications == []


@pytest.mark.asyncio
async def test_close_cancels_and_blocks_new_intents(gw, ctx, board_data):
    board = await _open(gw, ctx)
    task = board.move_lead_between_stages("L1", "st-prosp", "st-prop", 0)
    await board.aclose()

    assert task.cancelled()
    assert board.pending == 0
    assert await _stage_of(gw, "L1") == "st-prosp"
    with pytest.raises(ValidationFailure, match="closed"):
        board.reorder_stages_within_pipeline("pipe-1", 0, 1)


# ── Temporary stages ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_add_stage_swaps_temp_id_after_creation(gw, ctx, board_data):
    board = await _open(gw, ctx)
    task = board.add_stage("Closing", "#10B981")
    temp_id = board.stages[-1]["id"]
    assert temp_id.startswith("temp-")
    assert board.stages[-1]["position"] == 3

    assert await task is True
    real_id = board.stages[-1]["id"]
    assert not real_id.startswith("temp-")
    assert real_id in board.leads_by_stage
    assert temp_id not in board.leads_by_stage
    assert (await _positions(gw))[real_id] == 3


@pytest.mark.asyncio
async def test_reorder_skips_temp_stage_until_created(gw, ctx, board_data):
    board = await _open(gw, ctx)
    board.add_stage("Closing")
    board.reorder_stages_within_pipeline("pipe-1", 3, 0)

    unsaved = board._unsaved_positions()
    assert [sid for sid, _ in unsaved] == ["st-prosp", "st-qual", "st-prop"]

    await board.drain()
    stored = await _positions(gw)
    closing = board.stages[0]["id"]
    assert stored == {closing: 0, "st-prosp": 1, "st-qual": 2, "st-prop": 3}


@pytest.mark.asyncio
async def test_lead_cannot_move_into_stage_being_created(gw, ctx, board_data):
    board = await _open(gw, ctx)
    board.add_stage("Closing")
    temp_id = board.stages[-1]["id"]
    with pytest.raises(ValidationFailure, match="being created"):
        board.move_lead_between_stages("L1", "st-prosp", temp_id, 0)
    await board.drain()


@pytest.mark.asyncio
async def test_add_stage_rejects_duplicate_and_bad_color(gw, ctx, board_data):
    board = await _open(gw, ctx)
    with pytest.raises(ValidationFailure, match="already exists"):
        board.add_stage("  prospecting ")
    with pytest.raises(ValidationFailure, match="color"):
        board.add_stage("Closing", "green")
    assert len(board.stages) == 3


@pytest.mark.asyncio
async def test_failed_stage_creation_drops_temp(gw, ctx, board_data):
    board = await _open(gw, ctx)

    async def failing(*args):
        return Result.failure(RemoteError("insert failed"))

    with patch.object(stage_service, "create_stage", failing):
        assert await board.add_stage("Closing") is False

    assert _stage_ids(board) == ["st-prosp", "st-qual", "st-prop"]
    assert "Closing" in board.notifications[0].message


# ── Stage removal ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_remove_stage_with_leads_is_refused(gw, ctx, board_data):
    board = await _open(gw, ctx)
    with pytest.raises(ValidationFailure, match="still has leads"):
        board.remove_stage("st-prosp")


@pytest.mark.asyncio
async def test_remove_stage_refused_while_lead_moves_out(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert await board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0) is True

    async def failing(gw_, ctx_, lead_id, stage_id):
        return Result.failure(RemoteError("connection reset"))

    with patch.object(lead_service, "update_lead_stage", failing):
        task = board.move_lead_between_stages("L1", "st-qual", "st-prop", 0)
        assert _ids(board, "st-qual") == []
        with pytest.raises(ValidationFailure, match="still being moved"):
            board.remove_stage("st-qual")
        assert await task is False

    assert _stage_ids(board) == ["st-prosp", "st-qual", "st-prop"]
    assert _ids(board, "st-qual") == ["L1"]
    assert await _stage_of(gw, "L1") == "st-qual"


@pytest.mark.asyncio
async def test_remove_empty_stage_compacts_positions(gw, ctx, board_data):
    board = await _open(gw, ctx)
    assert await board.remove_stage("st-qual") is True
    assert _stage_ids(board) == ["st-prosp", "st-prop"]
    assert await _positions(gw) == {"st-prosp": 0, "st-prop": 1}
