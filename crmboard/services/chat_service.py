"""services/chat_service.py — WhatsApp chat data layer.

Business Rules:
- Conversations list newest activity first; filter by status, instance,
  lead and free text (lead name / phone / last message)
- Messages read in ascending time; append-only
- send_message stores the outbound row first, then hands it to the
  message webhook when one is configured. A webhook failure flips the
  stored row to "failed" and the error is returned
- mark_read zeroes unread_count

Called by: routers/chat.py
Depends on: gateway, http_client (message webhook), schemas/messaging.py
"""

import logging
import secrets
from datetime import datetime, timezone

import httpx

from ..config import settings
from ..context import TenantContext
from ..errors import NotFoundOrForbidden, RemoteError
from ..gateway import Gateway, Query
from ..http_client import http
from ..schemas.messaging import ConversationFilters, SendMessage
from .base import accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.chat")

MESSAGE_PAGE_SIZE = 50


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@accessor
async def list_conversations(gw: Gateway, ctx: TenantContext,
                             filters: ConversationFilters | dict | None = None) -> list[dict]:
    f = filters if isinstance(filters, ConversationFilters) else ConversationFilters.model_validate(filters or {})
    q = Query("chat_conversations").eq("empresa_id", ctx.empresa_id)
    if f.status:
        q.eq("status", f.status)
    if f.instance_id:
        q.eq("instance_id", f.instance_id)
    if f.lead_id:
        q.eq("lead_id", f.lead_id)
    if f.search and f.search.strip():
        term = f"*{f.search.strip()}*"
        q.or_(
            ("lead_name", "ilike", term),
            ("lead_phone", "ilike", term),
            ("last_message", "ilike", term),
        )
    return await gw.select(q.order("last_message_time", ascending=False))


@accessor
async def list_messages(gw: Gateway, ctx: TenantContext, conversation_id: str,
                        limit: int = MESSAGE_PAGE_SIZE) -> list[dict]:
    await fetch_owned(gw, ctx, "chat_conversations", conversation_id, "Conversation")
    # newest page, returned oldest-first
    rows = await gw.select(
        Query("chat_messages")
        .eq("conversation_id", conversation_id)
        .order("timestamp", ascending=False)
        .limit(limit)
    )
    return list(reversed(rows))


@accessor
async def link_to_lead(gw: Gateway, ctx: TenantContext, conversation_id: str, lead_id: str) -> dict:
    await fetch_owned(gw, ctx, "chat_conversations", conversation_id, "Conversation")
    lead = await fetch_owned(gw, ctx, "leads", lead_id, "Lead")
    rows = await gw.update(
        Query("chat_conversations").eq("id", conversation_id).eq("empresa_id", ctx.empresa_id),
        {"lead_id": lead_id, "lead_name": lead["name"], "updated_at": _now()},
    )
    return rows[0]


@accessor
async def mark_read(gw: Gateway, ctx: TenantContext, conversation_id: str) -> dict:
    rows = await gw.update(
        Query("chat_conversations").eq("id", conversation_id).eq("empresa_id", ctx.empresa_id),
        {"unread_count": 0},
    )
    if not rows:
        raise NotFoundOrForbidden("Conversation not found or access denied")
    return rows[0]


async def _dispatch(ctx: TenantContext, message: dict) -> None:
    body = {
        "action": "send_message",
        "conversation_id": message["conversation_id"],
        "instance_id": message["instance_id"],
        "message_type": message["message_type"],
        "content": message.get("content"),
        "media_url": message.get("media_url"),
        "empresa_id": ctx.empresa_id,
        "alet_num": 100000 + secrets.randbelow(900000),
    }
    try:
        resp = await http.post(settings.message_webhook_url, json=body)
    except httpx.HTTPError as e:
        raise RemoteError(f"Message webhook unreachable: {e}") from e
    if resp.status_code >= 300:
        raise RemoteError(f"Message webhook returned {resp.status_code}", status_code=resp.status_code)


@accessor
async def send_message(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, SendMessage)
    conversation = await fetch_owned(
        gw, ctx, "chat_conversations", payload["conversation_id"], "Conversation"
    )
    now = _now()
    message = (await gw.insert("chat_messages", {
        **payload, "direction": "outbound", "status": "sent", "timestamp": now,
    }))[0]
    await gw.update(
        Query("chat_conversations").eq("id", conversation["id"]),
        {"last_message": payload["content"] or payload["message_type"],
         "last_message_time": now, "updated_at": now},
    )

    if settings.message_webhook_url:
        try:
            await _dispatch(ctx, message)
        except RemoteError:
            log.error(f"Message {message['id']} not delivered to webhook, marking failed")
            await gw.update(Query("chat_messages").eq("id", message["id"]), {"status": "failed"})
            raise
    return message
