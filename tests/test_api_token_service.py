"""
test_api_token_service.py — Tests for company API tokens.

Business Rules tested:
- Tokens look like adv_live_ + 32 hex chars
- Only create_token returns the full token; lists and toggles are masked
- touch_token stamps last_used_at on active tokens only
- The SQL gateway authenticates with an active token

Called by: pytest
Depends on: conftest.py, crmboard/services/api_token_service.py
"""

import asyncio
import re

from crmboard.errors import ValidationFailure
from crmboard.services import api_token_service as tokens
from crmboard.services.profile_service import resolve_context

TOKEN_RE = re.compile(r"^adv_live_[0-9a-f]{32}$")


def _run(coro):
    """Run an async coroutine synchronously in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def test_generate_token_format():
    assert TOKEN_RE.match(tokens.generate_token())
    assert tokens.generate_token() != tokens.generate_token()


def test_mask_token():
    assert tokens.mask_token("adv_live_0123456789abcdef0123456789abcdef") == "adv_live_****cdef"


def test_create_returns_full_token_list_masks_it(gw, ctx):
    created = _run(tokens.create_token(gw, ctx, {"name": "  Zapier  "})).data
    assert TOKEN_RE.match(created["token"])
    assert created["name"] == "Zapier"
    assert created["created_by"] == ctx.user_id

    listed = _run(tokens.list_tokens(gw, ctx)).data
    assert listed[0]["token"] == f"adv_live_****{created['token'][-4:]}"


def test_blank_name_rejected(gw, ctx):
    result = _run(tokens.create_token(gw, ctx, {"name": " "}))
    assert isinstance(result.error, ValidationFailure)


def test_toggle_masks_and_disables_auth(gw, ctx):
    created = _run(tokens.create_token(gw, ctx, {"name": "n8n"})).data
    assert _run(resolve_context(gw, created["token"])) is not None

    toggled = _run(tokens.toggle_token(gw, ctx, created["id"], False)).data
    assert toggled["is_active"] is False
    assert toggled["token"].startswith("adv_live_****")
    assert _run(resolve_context(gw, created["token"])) is None
    assert _run(tokens.touch_token(gw, created["token"])).data is False


def test_touch_token_stamps_last_use(gw, ctx):
    created = _run(tokens.create_token(gw, ctx, {"name": "n8n"})).data
    assert created["last_used_at"] is None
    assert _run(tokens.touch_token(gw, created["token"])).data is True
    listed = _run(tokens.list_tokens(gw, ctx)).data
    assert listed[0]["last_used_at"] is not None


def test_resolved_context_carries_profile(gw, ctx):
    created = _run(tokens.create_token(gw, ctx, {"name": "n8n"})).data
    resolved = _run(resolve_context(gw, created["token"]))
    assert resolved.empresa_id == "empresa-1"
    assert resolved.user_id == ctx.user_id
    assert resolved.is_admin is True


def test_delete_token_other_tenant(gw, ctx, other_ctx):
    created = _run(tokens.create_token(gw, ctx, {"name": "n8n"})).data
    assert _run(tokens.delete_token(gw, other_ctx, created["id"])).error is not None
    assert _run(tokens.delete_token(gw, ctx, created["id"])).data is True
