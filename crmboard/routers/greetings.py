"""
routers/greetings.py — Greeting message routes and media upload

Business Rules:
- Sellers manage their own greetings; admins may list anyone's
- Uploads go through the upload webhook; the stored URL comes back in `url`

Called by: main.py (router mount)
Depends on: services/greeting_message_service.py, dependencies
"""

from fastapi import APIRouter, Depends, File, UploadFile
from loguru import logger
from pydantic import BaseModel

from ..context import TenantContext
from ..dependencies import get_tenant_gateway, require_context
from ..gateway import Gateway
from ..schemas.messaging import GreetingMessageCreate, GreetingMessageUpdate, UploadedMedia
from ..services import greeting_message_service as greetings

router = APIRouter()


class MediaRef(BaseModel):
    media_url: str


@router.get("/api/greetings")
async def list_my_greetings(ctx: TenantContext = Depends(require_context),
                            gw: Gateway = Depends(get_tenant_gateway)):
    return (await greetings.list_mine(gw, ctx)).unwrap()


@router.get("/api/greetings/profile/{profile_uuid}")
async def list_profile_greetings(profile_uuid: str, ctx: TenantContext = Depends(require_context),
                                 gw: Gateway = Depends(get_tenant_gateway)):
    return (await greetings.list_by_profile(gw, ctx, profile_uuid)).unwrap()


@router.post("/api/greetings", status_code=201)
async def create_greeting(body: GreetingMessageCreate, ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await greetings.create_greeting(gw, ctx, body)).unwrap()


@router.patch("/api/greetings/{message_id}")
async def update_greeting(message_id: str, body: GreetingMessageUpdate,
                          ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    return (await greetings.update_greeting(gw, ctx, message_id, body)).unwrap()


@router.delete("/api/greetings/{message_id}")
async def delete_greeting(message_id: str, ctx: TenantContext = Depends(require_context),
                          gw: Gateway = Depends(get_tenant_gateway)):
    (await greetings.delete_greeting(gw, ctx, message_id)).unwrap()
    return {"ok": True}


@router.post("/api/greetings/{message_id}/used")
async def greeting_used(message_id: str, ctx: TenantContext = Depends(require_context),
                        gw: Gateway = Depends(get_tenant_gateway)):
    return (await greetings.increment_usage(gw, ctx, message_id)).unwrap()


@router.post("/api/greetings/media", response_model=UploadedMedia)
async def upload_greeting_media(file: UploadFile = File(...),
                                ctx: TenantContext = Depends(require_context)):
    content = await file.read()
    result = (
        await greetings.upload_media(ctx, file.filename or "upload", content, file.content_type)
    ).unwrap()
    logger.info(f"Greeting media uploaded for {ctx.user_id}: {result['filename']}")
    return result


@router.post("/api/greetings/media/delete")
async def delete_greeting_media(body: MediaRef, ctx: TenantContext = Depends(require_context),
                                gw: Gateway = Depends(get_tenant_gateway)):
    (await greetings.delete_media(gw, body.media_url)).unwrap()
    return {"ok": True}
