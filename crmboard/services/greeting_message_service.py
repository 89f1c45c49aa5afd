"""services/greeting_message_service.py — Per-seller automatic greeting messages.

Business Rules:
- Each seller manages their own greetings (profile_uuid = current user);
  admins can read any seller's list
- Text greetings need text_content; media greetings need media_url + media_type
- Media is uploaded through a workflow webhook (multipart) that writes to
  the chatmedia bucket with elevated credentials; the response must carry `url`
- delete_media takes the object path after "chatmedia" (or "public") in the URL

Called by: routers/greetings.py
Depends on: gateway (storage), http_client (upload webhook), schemas/messaging.py
"""

import logging
import secrets
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx

from ..config import settings
from ..context import TenantContext
from ..errors import NotFoundOrForbidden, RemoteError, ValidationFailure
from ..gateway import Gateway, Query
from ..http_client import http
from ..schemas.messaging import GreetingMessageCreate, GreetingMessageUpdate
from .base import accessor, as_payload

log = logging.getLogger("crmboard.greetings")


def _mine(ctx: TenantContext, message_id: str) -> Query:
    return (
        Query("greeting_messages")
        .eq("id", message_id)
        .eq("profile_uuid", ctx.user_id)
        .eq("empresa_id", ctx.empresa_id)
    )


def random_key() -> str:
    """Six-digit upload correlation key (100000..999999)."""
    return str(100000 + secrets.randbelow(900000))


def media_path_from_url(media_url: str) -> str:
    parts = urlparse(media_url).path.split("/")
    for marker in (settings.media_bucket, "public"):
        if marker in parts:
            return "/".join(parts[parts.index(marker) + 1:])
    raise ValidationFailure("Invalid media URL: bucket not found")


# ── CRUD ─────────────────────────────────────────────────────────────


@accessor
async def list_mine(gw: Gateway, ctx: TenantContext) -> list[dict]:
    return await gw.select(
        Query("greeting_messages")
        .eq("profile_uuid", ctx.user_id)
        .eq("empresa_id", ctx.empresa_id)
        .order("created_at", ascending=False)
    )


@accessor
async def list_by_profile(gw: Gateway, ctx: TenantContext, profile_uuid: str) -> list[dict]:
    if not ctx.is_admin and profile_uuid != ctx.user_id:
        raise NotFoundOrForbidden("Only admins can view other sellers' greetings")
    return await gw.select(
        Query("greeting_messages")
        .eq("profile_uuid", profile_uuid)
        .eq("empresa_id", ctx.empresa_id)
        .order("created_at", ascending=False)
    )


@accessor
async def create_greeting(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, GreetingMessageCreate)
    payload["profile_uuid"] = ctx.user_id
    return (await gw.insert("greeting_messages", ctx.scoped(payload)))[0]


@accessor
async def update_greeting(gw: Gateway, ctx: TenantContext, message_id: str, data) -> dict:
    payload = as_payload(data, GreetingMessageUpdate, partial=True)
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    rows = await gw.update(_mine(ctx, message_id), payload)
    if not rows:
        raise NotFoundOrForbidden("Greeting message not found or access denied")
    return rows[0]


async def toggle_greeting(gw: Gateway, ctx: TenantContext, message_id: str, is_active: bool):
    return await update_greeting(gw, ctx, message_id, {"is_active": is_active})


@accessor
async def delete_greeting(gw: Gateway, ctx: TenantContext, message_id: str) -> bool:
    removed = await gw.delete(_mine(ctx, message_id))
    if not removed:
        raise NotFoundOrForbidden("Greeting message not found or access denied")
    return True


@accessor
async def increment_usage(gw: Gateway, ctx: TenantContext, message_id: str) -> dict:
    q = Query("greeting_messages").eq("id", message_id).eq("empresa_id", ctx.empresa_id)
    row = await gw.select_one(q)
    if not row:
        raise NotFoundOrForbidden("Greeting message not found or access denied")
    rows = await gw.update(
        Query("greeting_messages").eq("id", message_id).eq("empresa_id", ctx.empresa_id),
        {"usage_count": (row.get("usage_count") or 0) + 1,
         "last_used_at": datetime.now(timezone.utc).isoformat()},
    )
    return rows[0]


# ── Media ────────────────────────────────────────────────────────────


@accessor
async def upload_media(ctx: TenantContext, filename: str, content: bytes,
                       content_type: str | None = None) -> dict:
    """Send a file to the upload webhook. Returns {url, filename, size}."""
    content_type = content_type or "application/octet-stream"
    form = {
        "filename": filename,
        "content_type": content_type,
        "size": str(len(content)),
        "user_id": ctx.user_id,
        "empresa_id": ctx.empresa_id,
        "random_key": random_key(),
    }
    log.info(f"Uploading greeting media {filename} ({len(content)} bytes)")
    try:
        resp = await http.post(
            settings.greeting_upload_webhook_url,
            data=form,
            files={"file": (filename, content, content_type)},
        )
    except httpx.HTTPError as e:
        raise RemoteError(f"Upload webhook unreachable: {e}") from e
    if resp.status_code >= 300:
        raise RemoteError(
            f"Upload failed: {resp.status_code} - {resp.text[:200]}", status_code=resp.status_code
        )
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict) or not body.get("url"):
        raise RemoteError("Upload webhook did not return a valid URL", detail=resp.text[:200])
    return {"url": body["url"], "filename": filename, "size": len(content)}


@accessor
async def delete_media(gw: Gateway, media_url: str) -> bool:
    path = media_path_from_url(media_url)
    await gw.remove(settings.media_bucket, [path])
    log.info(f"Deleted media object {path}")
    return True
