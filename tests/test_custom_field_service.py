"""
test_custom_field_service.py — Tests for custom fields and per-lead values.

Called by: pytest
Depends on: conftest.py, crmboard/services/custom_field_service.py
"""

import asyncio
from unittest.mock import AsyncMock

from crmboard.errors import NotFoundOrForbidden, ValidationFailure
from crmboard.gateway import Query
from crmboard.services import custom_field_service as cfs


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _field(gw, ctx, **overrides):
    data = {"name": "Budget", "type": "number", **overrides}
    result = _run(cfs.create_field(gw, ctx, data))
    assert result.ok, result.error
    return result.data


# ── Fields ───────────────────────────────────────────────────────────


def test_pipeline_sees_global_and_own_fields(gw, ctx, board_data):
    _field(gw, ctx, name="CPF", type="text", position=0)
    _field(gw, ctx, name="Vehicle", type="vehicle", pipeline_id="pipe-1", position=1)
    _field(gw, ctx, name="Renewal date", type="date", pipeline_id="pipe-2", position=2)

    names = [f["name"] for f in _run(cfs.list_for_pipeline(gw, ctx, "pipe-1")).data]
    assert names == ["CPF", "Vehicle"]
    assert [f["name"] for f in _run(cfs.list_for_pipeline(gw, ctx)).data] == ["CPF"]


def test_select_field_needs_options(gw, ctx):
    result = _run(cfs.create_field(gw, ctx, {"name": "Source", "type": "select", "options": [" ", ""]}))
    assert isinstance(result.error, ValidationFailure)
    assert "at least one option" in result.error.message


def test_unknown_field_type(gw, ctx):
    result = _run(cfs.create_field(gw, ctx, {"name": "Mood", "type": "emoji"}))
    assert isinstance(result.error, ValidationFailure)


def test_delete_field_removes_values(gw, ctx, board_data):
    field = _field(gw, ctx)
    _run(cfs.upsert_value(gw, ctx, {"lead_id": "L1", "field_id": field["id"], "value": "1000"}))
    _run(cfs.upsert_value(gw, ctx, {"lead_id": "L2", "field_id": field["id"], "value": "2000"}))

    assert _run(cfs.delete_field(gw, ctx, field["id"])).data is True
    assert _run(gw.count(Query("lead_custom_values").eq("field_id", field["id"]))) == 0


def test_delete_field_other_tenant(gw, ctx, other_ctx):
    field = _field(gw, ctx)
    assert isinstance(_run(cfs.delete_field(gw, other_ctx, field["id"])).error, NotFoundOrForbidden)


# ── Values ───────────────────────────────────────────────────────────


def test_upsert_updates_existing_value(gw, ctx, board_data):
    field = _field(gw, ctx)
    first = _run(cfs.upsert_value(gw, ctx, {"lead_id": "L1", "field_id": field["id"], "value": "10"})).data
    second = _run(cfs.upsert_value(gw, ctx, {"lead_id": "L1", "field_id": field["id"], "value": "20"})).data
    assert first["id"] == second["id"]
    values = _run(cfs.list_by_lead(gw, ctx, "L1")).data
    assert [v["value"] for v in values] == ["20"]


def test_upsert_unknown_lead(gw, ctx, board_data):
    field = _field(gw, ctx)
    result = _run(cfs.upsert_value(gw, ctx, {"lead_id": "missing", "field_id": field["id"], "value": "x"}))
    assert isinstance(result.error, NotFoundOrForbidden)


def test_delete_value(gw, ctx, board_data):
    field = _field(gw, ctx)
    _run(cfs.upsert_value(gw, ctx, {"lead_id": "L1", "field_id": field["id"], "value": "10"}))
    _run(cfs.delete_value(gw, ctx, "L1", field["id"]))
    assert _run(cfs.list_by_lead(gw, ctx, "L1")).data == []


def test_bulk_values_are_chunked(ctx):
    gw = AsyncMock()
    gw.select.return_value = [{"lead_id": "x", "field_id": "f", "value": "1"}]
    ids = [f"lead-{i}" for i in range(250)] + ["lead-0"]

    result = _run(cfs.list_by_leads(gw, ctx, ids))

    assert gw.select.await_count == 3
    sizes = [len(call.args[0].filters[0][2]) for call in gw.select.await_args_list]
    assert sizes == [100, 100, 50]
    assert len(result.data) == 3
