"""
test_routers_api.py — HTTP tests for the CRUD routers

Covers status codes and error bodies for pipelines, leads, campaigns,
admin and preferences endpoints. Board routes live in test_routers_board.py.

Called by: pytest
Depends on: conftest.py (client, board_data), crmboard/main.py
"""

import json
import re
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from crmboard.config import settings
from crmboard.dependencies import get_gateway, require_context
from crmboard.main import app


@pytest.fixture()
def seller_client(gw, seller_ctx):
    app.dependency_overrides[get_gateway] = lambda: gw
    app.dependency_overrides[require_context] = lambda: seller_ctx
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_unauthenticated_request_is_401(gw):
    app.dependency_overrides[get_gateway] = lambda: gw
    try:
        resp = TestClient(app).get("/api/pipelines")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Not authenticated"


# ── Pipelines ────────────────────────────────────────────────────────


def test_list_pipelines(client, board_data):
    names = [p["name"] for p in client.get("/api/pipelines").json()]
    assert names == ["Sales", "Renewals"]


def test_create_pipeline_as_admin(client):
    resp = client.post("/api/pipelines", json={
        "name": "Partners", "stages": [{"name": "Intro"}, {"name": "Signed"}],
    })
    assert resp.status_code == 201
    assert [s["position"] for s in resp.json()["stages"]] == [0, 1]


def test_create_pipeline_requires_admin(seller_client):
    resp = seller_client.post("/api/pipelines", json={"name": "Partners", "stages": []})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Admin access required"


# ── Leads ────────────────────────────────────────────────────────────


def test_unknown_lead_is_404(client, board_data):
    resp = client.get("/api/leads/unknown")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Lead not found or access denied"


def test_create_lead_invalid_email(client, board_data):
    resp = client.post("/api/leads", json={
        "pipeline_id": "pipe-1", "stage_id": "st-prosp", "name": "New one", "email": "not-an-email",
    })
    assert resp.status_code == 422
    assert resp.json()["error"] == "Invalid email"


def test_create_lead(client, board_data):
    resp = client.post("/api/leads", json={
        "pipeline_id": "pipe-1", "stage_id": "st-qual", "name": "New one",
    })
    assert resp.status_code == 201
    assert resp.json()["stage_id"] == "st-qual"


def test_move_lead_records_history(client, board_data):
    resp = client.put("/api/leads/L1/stage/st-qual")
    assert resp.status_code == 200
    assert resp.json()["stage_id"] == "st-qual"

    changes = [h["change_type"] for h in client.get("/api/leads/L1/history").json()]
    assert "stage_changed" in changes


def test_mark_lost_validation(client, board_data):
    resp = client.post("/api/leads/L2/lost", json={"category": "outro"})
    assert resp.status_code == 422
    assert "outro" in resp.json()["error"]


def test_mark_lost_then_twice(client, board_data):
    first = client.post("/api/leads/L2/lost", json={"category": "timing"})
    assert first.status_code == 200
    assert first.json()["loss_reason_category"] == "timing"

    again = client.post("/api/leads/L2/lost", json={"category": "timing"})
    assert again.status_code == 422
    assert again.json()["error"] == "Lead is already marked as lost"


def test_delete_lead(client, board_data):
    assert client.delete("/api/leads/L5").json() == {"ok": True}
    assert client.get("/api/leads/L5").status_code == 404


# ── Campaigns ────────────────────────────────────────────────────────


def test_campaign_stats_empty(client):
    stats = client.get("/api/campaigns/stats").json()
    assert stats["total_campaigns"] == 0
    assert stats["success_rate"] == 0.0


# ── Admin ────────────────────────────────────────────────────────────


def test_api_token_lifecycle(client):
    created = client.post("/api/api-tokens", json={"name": "Zapier"})
    assert created.status_code == 201
    token = created.json()
    assert re.fullmatch(r"adv_live_[0-9a-f]{32}", token["token"])

    listed = client.get("/api/api-tokens").json()
    assert listed[0]["token"].startswith("adv_live_****")

    assert client.delete(f"/api/api-tokens/{token['id']}").json() == {"ok": True}
    assert client.get("/api/api-tokens").json() == []


def test_api_tokens_admin_only(seller_client):
    assert seller_client.get("/api/api-tokens").status_code == 403


def test_me(client):
    assert client.get("/api/me").json() == {
        "user_id": "user-admin", "empresa_id": "empresa-1", "is_admin": True,
    }


# ── Preferences ──────────────────────────────────────────────────────


@pytest.fixture()
def prefs_root(tmp_path):
    with patch.object(settings, "preferences_path", str(tmp_path / "prefs" / "preferences.json")):
        yield tmp_path / "prefs"


def test_preferences_defaults(client, prefs_root):
    assert client.get("/api/preferences").json() == {
        "leads-view-mode": "kanban", "leads-stats-collapsed": False,
    }


def test_preferences_saved_per_user(client, prefs_root):
    resp = client.put("/api/preferences/leads-view-mode", json={"value": "grid"})
    assert resp.status_code == 200
    assert resp.json()["leads-view-mode"] == "grid"

    client.put("/api/preferences/leads-stats-collapsed", json={"value": True})
    stored = json.loads((prefs_root / "empresa-1" / "user-admin.json").read_text(encoding="utf-8"))
    assert stored == {"leads-view-mode": "grid", "leads-stats-collapsed": True}
    assert client.get("/api/preferences").json()["leads-stats-collapsed"] is True


def test_preferences_reject_bad_values(client, prefs_root):
    bad_mode = client.put("/api/preferences/leads-view-mode", json={"value": "table"})
    assert bad_mode.status_code == 422
    assert bad_mode.json()["error"] == "leads-view-mode must be one of kanban, list, grid"

    unknown = client.put("/api/preferences/theme", json={"value": "dark"})
    assert unknown.status_code == 422
    assert not (prefs_root / "empresa-1" / "user-admin.json").exists()


def test_preferences_reset(client, prefs_root):
    client.put("/api/preferences/leads-view-mode", json={"value": "list"})
    assert client.delete("/api/preferences").json()["leads-view-mode"] == "kanban"
