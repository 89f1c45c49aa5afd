"""services/campaign_service.py — WhatsApp bulk campaigns.

Sending is done by an external workflow: this module only keeps the
campaign row, its logs and triggers the workflow webhook.

Business Rules:
- New campaigns start as "draft" with total_recipients counted from the
  selection (stage or tags; lost and sold leads excluded)
- start: status -> running, "started" log, POST webhook. Restarting a
  completed campaign resets sent/failed counters
- resume: status -> running, "resumed" log, POST webhook
- pause: status -> paused only; the workflow notices and stops
- Webhook body: {empresa_id, campaign_id, timestamp}; URL by selection_mode
- Non-2xx webhook: start reverts to "failed", resume to "paused", and a
  RemoteError is raised
- Stats count message_sent / message_failed log events

Called by: routers/campaigns.py
Depends on: gateway, http_client (webhooks), schemas/messaging.py
"""

import logging
import re
from datetime import datetime, timezone

import httpx

from ..config import settings
from ..context import TenantContext
from ..errors import RemoteError
from ..gateway import Gateway, Query
from ..http_client import http
from ..schemas.messaging import CampaignCreate, CampaignUpdate
from .base import TenantTable, accessor, as_payload, fetch_owned

log = logging.getLogger("crmboard.campaigns")

campaigns = TenantTable("whatsapp_campaigns", CampaignCreate, CampaignUpdate,
                        label="Campaign", order_by="created_at", ascending=False)

_VARIABLES = {
    "nome": lambda lead: lead.get("name") or "",
    "empresa": lambda lead: lead.get("company") or "",
    "valor": lambda lead: f"R$ {lead['value']:.2f}" if lead.get("value") else "",
    "telefone": lambda lead: lead.get("phone") or "",
    "email": lambda lead: lead.get("email") or "",
}
_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def replace_variables(template: str, lead: dict) -> str:
    """Preview substitution of {{nome}}, {{empresa}}, {{valor}}, {{telefone}}, {{email}}.

    Unknown placeholders are left untouched.
    """

    def sub(match: re.Match) -> str:
        fn = _VARIABLES.get(match.group(1))
        return fn(lead) if fn else match.group(0)

    return _VARIABLE_RE.sub(sub, template)


def webhook_url(campaign: dict) -> str:
    if campaign.get("selection_mode") == "tags":
        return settings.campaign_webhook_url_tags
    return settings.campaign_webhook_url_stage


async def _count_recipients(gw: Gateway, ctx: TenantContext, payload: dict) -> int:
    q = (
        Query("leads")
        .eq("empresa_id", ctx.empresa_id)
        .eq("pipeline_id", payload["pipeline_id"])
        .is_null("loss_reason_category")
        .is_null("sold_at")
    )
    try:
        if payload.get("selection_mode") == "tags":
            wanted = set(payload.get("selected_tags") or [])
            rows = await gw.select(q)
            return sum(1 for r in rows if wanted.intersection(r.get("tags") or []))
        if payload.get("from_stage_id"):
            q.eq("stage_id", payload["from_stage_id"])
        return await gw.count(q)
    except RemoteError as e:
        log.warning(f"Recipient count failed, defaulting to 0: {e.message}")
        return 0


async def _trigger_webhook(ctx: TenantContext, campaign: dict) -> None:
    url = webhook_url(campaign)
    body = {"empresa_id": ctx.empresa_id, "campaign_id": campaign["id"], "timestamp": _now()}
    log.info(f"Triggering campaign webhook for {campaign['id']} ({campaign.get('selection_mode')})")
    try:
        resp = await http.post(url, json=body)
    except httpx.HTTPError as e:
        raise RemoteError(f"Campaign webhook unreachable: {e}") from e
    if resp.status_code >= 300:
        raise RemoteError(
            f"Campaign webhook returned {resp.status_code}: {resp.text[:200]}",
            status_code=resp.status_code,
        )


async def _set_status(gw: Gateway, ctx: TenantContext, campaign_id: str, values: dict) -> dict:
    rows = await gw.update(
        Query("whatsapp_campaigns").eq("id", campaign_id).eq("empresa_id", ctx.empresa_id),
        {**values, "updated_at": _now()},
    )
    return rows[0]


async def _log_event(gw: Gateway, ctx: TenantContext, campaign_id: str, event_type: str,
                     message: str | None = None) -> dict:
    row = ctx.scoped({"campaign_id": campaign_id, "event_type": event_type, "message": message})
    return (await gw.insert("whatsapp_campaign_logs", row))[0]


# ── CRUD ─────────────────────────────────────────────────────────────


async def list_campaigns(gw: Gateway, ctx: TenantContext):
    return await campaigns.list(gw, ctx)


async def get_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str):
    return await campaigns.get_by_id(gw, ctx, campaign_id)


@accessor
async def create_campaign(gw: Gateway, ctx: TenantContext, data) -> dict:
    payload = as_payload(data, CampaignCreate)
    await fetch_owned(gw, ctx, "pipelines", payload["pipeline_id"], "Pipeline")
    if payload["selection_mode"] == "tags":
        payload["from_stage_id"] = None
    else:
        payload["selected_tags"] = []
        payload["selected_lead_ids"] = []
    payload.update(
        created_by=ctx.user_id,
        responsible_uuid=payload.get("responsible_uuid") or ctx.user_id,
        total_recipients=await _count_recipients(gw, ctx, payload),
        messages_sent=0,
        messages_failed=0,
        status="draft",
    )
    campaign = (await gw.insert("whatsapp_campaigns", ctx.scoped(payload)))[0]
    log.info(f"Campaign '{campaign['name']}' created with {campaign['total_recipients']} recipient(s)")
    return campaign


async def update_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str, data):
    return await campaigns.update(gw, ctx, campaign_id, data)


async def delete_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str):
    return await campaigns.delete(gw, ctx, campaign_id)


# ── Execution ────────────────────────────────────────────────────────


@accessor
async def start_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str) -> dict:
    campaign = await fetch_owned(gw, ctx, "whatsapp_campaigns", campaign_id, "Campaign")
    reactivation = campaign.get("status") == "completed"

    values = {"status": "running", "started_at": _now()}
    if reactivation:
        values.update(messages_sent=0, messages_failed=0, completed_at=None)
        log.info(f"Reactivating completed campaign {campaign_id}, stats reset")
    updated = await _set_status(gw, ctx, campaign_id, values)
    await _log_event(
        gw, ctx, campaign_id, "started",
        "Campaign reactivated by user" if reactivation else "Campaign started by user",
    )

    try:
        await _trigger_webhook(ctx, campaign)
    except RemoteError:
        log.error(f"Campaign {campaign_id} webhook failed, marking as failed")
        await _set_status(gw, ctx, campaign_id, {"status": "failed"})
        raise
    return updated


@accessor
async def pause_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str) -> dict:
    await fetch_owned(gw, ctx, "whatsapp_campaigns", campaign_id, "Campaign")
    return await _set_status(gw, ctx, campaign_id, {"status": "paused"})


@accessor
async def resume_campaign(gw: Gateway, ctx: TenantContext, campaign_id: str) -> dict:
    campaign = await fetch_owned(gw, ctx, "whatsapp_campaigns", campaign_id, "Campaign")
    updated = await _set_status(gw, ctx, campaign_id, {"status": "running"})
    await _log_event(gw, ctx, campaign_id, "resumed", "Campaign resumed by user")

    try:
        await _trigger_webhook(ctx, campaign)
    except RemoteError:
        log.error(f"Campaign {campaign_id} resume webhook failed, reverting to paused")
        await _set_status(gw, ctx, campaign_id, {"status": "paused"})
        raise
    return updated


# ── Logs & stats ─────────────────────────────────────────────────────


@accessor
async def list_logs(gw: Gateway, ctx: TenantContext, campaign_id: str) -> list[dict]:
    return await gw.select(
        Query("whatsapp_campaign_logs")
        .eq("campaign_id", campaign_id)
        .eq("empresa_id", ctx.empresa_id)
        .order("created_at", ascending=False)
    )


@accessor
async def get_campaign_stats(gw: Gateway, ctx: TenantContext) -> dict:
    rows = await gw.select(Query("whatsapp_campaigns").eq("empresa_id", ctx.empresa_id))
    sent = failed = 0
    if rows:
        events = await gw.select(
            Query("whatsapp_campaign_logs")
            .eq("empresa_id", ctx.empresa_id)
            .in_("event_type", ["message_sent", "message_failed"])
        )
        sent = sum(1 for e in events if e["event_type"] == "message_sent")
        failed = len(events) - sent

    total = sent + failed
    return {
        "total_campaigns": len(rows),
        "active_campaigns": sum(1 for r in rows if r["status"] == "running"),
        "completed_campaigns": sum(1 for r in rows if r["status"] == "completed"),
        "total_messages_sent": sent,
        "total_messages_failed": failed,
        "success_rate": (sent / total * 100) if total else 0.0,
    }
