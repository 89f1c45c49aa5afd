"""
routers/chat.py — Conversations and messages

Called by: main.py (router mount)
Depends on: services/chat_service.py, dependencies
"""

from fastapi import APIRouter, Depends

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_context
from ..gateway import Gateway
from ..schemas.messaging import ConversationFilters, SendMessage
from ..services import chat_service

router = APIRouter()


@router.get("/api/conversations")
async def list_conversations(
    search: str | None = None,
    status: str | None = None,
    instance_id: str | None = None,
    lead_id: str | None = None,
    ctx: TenantContext = Depends(require_context),
    gw: Gateway = Depends(get_tenant_gateway),
):
    filters = ConversationFilters(search=search, status=status, instance_id=instance_id,
                                  lead_id=lead_id)
    return (await chat_service.list_conversations(gw, ctx, filters)).unwrap()


@router.get("/api/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: int = 50,
                        ctx: TenantContext = Depends(require_context),
                        gw: Gateway = Depends(get_tenant_gateway)):
    return (await chat_service.list_messages(gw, ctx, conversation_id, limit)).unwrap()


@router.post("/api/messages", status_code=201)
async def send_message(body: SendMessage, ctx: TenantContext = Depends(require_context),
                       gw: Gateway = Depends(get_tenant_gateway)):
    return (await chat_service.send_message(gw, ctx, body)).unwrap()


@router.post("/api/conversations/{conversation_id}/read")
async def mark_read(conversation_id: str, ctx: TenantContext = Depends(require_context),
                    gw: Gateway = Depends(get_tenant_gateway)):
    return (await chat_service.mark_read(gw, ctx, conversation_id)).unwrap()


@router.put("/api/conversations/{conversation_id}/lead/{lead_id}")
async def link_lead(conversation_id: str, lead_id: str, ctx: TenantContext = Depends(require_context),
                    gw: Gateway = Depends(get_tenant_gateway)):
    return (await chat_service.link_to_lead(gw, ctx, conversation_id, lead_id)).unwrap()
