"""
test_routers_board.py — Tests for the kanban board HTTP surface

Covers open / get / close, stage reorder and lead moves with ?wait=true,
error mapping of controller failures, and the render-plan endpoint.

Called by: pytest
Depends on: conftest.py (client, board_data), crmboard/routers/board.py
"""

import asyncio
from unittest.mock import patch

import pytest

from crmboard.board import BoardController
from crmboard.errors import RemoteError, Result
from crmboard.routers import board as board_routes
from crmboard.services import lead_service

OPEN = "/api/boards/pipe-1/open"


def _lead_ids(body, stage_id):
    return [lead["id"] for lead in body["leads_by_stage"][stage_id]]


# ── Lifecycle ────────────────────────────────────────────────────────


def test_open_returns_board(client, board_data):
    resp = client.post(OPEN)
    assert resp.status_code == 200
    body = resp.json()
    assert [s["id"] for s in body["stages"]] == ["st-prosp", "st-qual", "st-prop"]
    assert _lead_ids(body, "st-prosp") == ["L1", "L2", "L3"]
    assert body["reached_limit"] is False


def test_open_with_filters(client, board_data):
    resp = client.post(OPEN, json={"tags": ["vip"]})
    body = resp.json()
    assert _lead_ids(body, "st-prosp") == ["L1"]
    assert _lead_ids(body, "st-prop") == ["L4"]


def test_board_must_be_open(client, board_data):
    assert client.get("/api/boards/pipe-1").status_code == 404
    resp = client.post("/api/boards/pipe-1/leads/move", json={
        "lead_id": "L1", "from_stage_id": "st-prosp", "to_stage_id": "st-qual", "to_index": 0,
    })
    assert resp.status_code == 404


def test_close_forgets_board(client, board_data):
    client.post(OPEN)
    assert client.post("/api/boards/pipe-1/close").json() == {"ok": True}
    assert client.get("/api/boards/pipe-1").status_code == 404


# ── Mutations ────────────────────────────────────────────────────────


def test_move_lead_and_wait(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/leads/move?wait=true", json={
        "lead_id": "L1", "from_stage_id": "st-prosp", "to_stage_id": "st-prop", "to_index": 1,
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["errors"] == []
    assert _lead_ids(body, "st-prop") == ["L4", "L1", "L5"]

    lead = client.get("/api/leads/L1").json()
    assert lead["stage_id"] == "st-prop"


def test_failed_move_reports_rollback(client, board_data):
    client.post(OPEN)

    async def failing(*args):
        return Result.failure(RemoteError("503 from BaaS", status_code=503))

    with patch.object(lead_service, "update_lead_stage", failing):
        resp = client.post("/api/boards/pipe-1/leads/move?wait=true", json={
            "lead_id": "L1", "from_stage_id": "st-prosp", "to_stage_id": "st-prop", "to_index": 0,
        })
    body = resp.json()
    assert resp.status_code == 200
    assert len(body["errors"]) == 1
    assert _lead_ids(body, "st-prosp") == ["L1", "L2", "L3"]


def test_cross_pipeline_move_is_422(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/leads/move", json={
        "lead_id": "L1", "from_stage_id": "st-prosp", "to_stage_id": "st-renew", "to_index": 0,
    })
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "Leads can only move between stages of the same pipeline"
    assert body["status_code"] == 422
    assert body["request_id"]


def test_reorder_stages_and_wait(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/stages/reorder?wait=true",
                       json={"pipeline_id": "pipe-1", "from_index": 2, "to_index": 0})
    assert [s["id"] for s in resp.json()["stages"]] == ["st-prop", "st-prosp", "st-qual"]

    stored = client.get("/api/pipelines/pipe-1/stages").json()
    assert [(s["id"], s["position"]) for s in stored] == [
        ("st-prop", 0), ("st-prosp", 1), ("st-qual", 2),
    ]


def test_negative_index_rejected_by_schema(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/stages/reorder",
                       json={"pipeline_id": "pipe-1", "from_index": -1, "to_index": 0})
    assert resp.status_code == 422


def test_adjacent_move(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/leads/move-adjacent?wait=true",
                       json={"lead_id": "L2", "direction": "next"})
    assert _lead_ids(resp.json(), "st-qual") == ["L2"]


def test_add_and_remove_stage(client, board_data):
    client.post(OPEN)
    added = client.post("/api/boards/pipe-1/stages?wait=true", json={"name": "Closing"}).json()
    new_stage = added["stages"][-1]
    assert new_stage["name"] == "Closing"
    assert not new_stage["id"].startswith("temp-")

    removed = client.delete(f"/api/boards/pipe-1/stages/{new_stage['id']}?wait=true").json()
    assert [s["id"] for s in removed["stages"]] == ["st-prosp", "st-qual", "st-prop"]


def test_duplicate_stage_name_is_422(client, board_data):
    client.post(OPEN)
    resp = client.post("/api/boards/pipe-1/stages", json={"name": "proposal"})
    assert resp.status_code == 422


# ── Rendering ────────────────────────────────────────────────────────


def test_render_plan(client, board_data):
    client.post(OPEN)
    plan = client.post("/api/boards/pipe-1/stages/st-prosp/render-plan", json={}).json()
    assert plan["strategy"] == "full"
    assert plan["lead_ids"] == ["L1", "L2", "L3"]

    missing = client.post("/api/boards/pipe-1/stages/nope/render-plan", json={})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_wait_survives_board_closed_mid_request(gw, ctx, board_data):
    board = await BoardController(gw, ctx, "pipe-1").load()

    async def hanging(*args):
        await asyncio.sleep(5)
        return Result.success({})

    with patch.object(lead_service, "update_lead_stage", hanging):
        task = board.move_lead_between_stages("L1", "st-prosp", "st-qual", 0)
        asyncio.get_running_loop().call_later(0.05, board.close)
        out = await board_routes._respond(board, task, wait=True)

    assert task.cancelled()
    assert out.errors == []
    assert [lead["id"] for lead in out.leads_by_stage["st-qual"]] == ["L1"]
