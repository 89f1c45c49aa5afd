"""
schemas/messaging.py — Chat, WhatsApp campaigns, greeting messages

Business Rules:
- Messages are append-only; there is no update schema for them
- Campaign selection_mode "stage" needs from_stage_id; "tags" needs tags
- Campaign interval_min_minutes <= interval_max_minutes
- Text greetings need text_content; media greetings need media_url

Called by: services/chat_service.py, services/campaign_service.py,
           services/greeting_message_service.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MessageType = Literal["text", "image", "audio", "document", "video"]
CampaignStatus = Literal["draft", "scheduled", "running", "paused", "completed", "failed", "cancelled"]
CampaignEvent = Literal[
    "started", "paused", "resumed", "completed", "failed", "message_sent", "message_failed"
]
ScheduleType = Literal["always", "commercial_hours", "after_hours"]


# ── Chat ─────────────────────────────────────────────────────────────


class Conversation(BaseModel, extra="ignore"):
    id: str
    empresa_id: str | None = None
    lead_id: str | None = None
    instance_id: str
    lead_name: str | None = None
    lead_phone: str | None = None
    last_message: str | None = None
    last_message_time: datetime | None = None
    unread_count: int = 0
    status: str = "active"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Message(BaseModel, extra="ignore"):
    id: str
    conversation_id: str
    instance_id: str
    message_type: str = "text"
    content: str | None = None
    media_url: str | None = None
    direction: Literal["inbound", "outbound"]
    status: str = "sent"
    timestamp: datetime | None = None


class SendMessage(BaseModel):
    conversation_id: str
    instance_id: str
    message_type: MessageType = "text"
    content: str = ""
    media_url: str | None = None

    @model_validator(mode="after")
    def body_present(self):
        if self.message_type == "text" and not self.content.strip():
            raise ValueError("Message text is required")
        if self.message_type != "text" and not self.media_url:
            raise ValueError("Media messages need a media_url")
        return self


class ConversationFilters(BaseModel):
    search: str | None = None
    status: Literal["active", "archived"] | None = None
    instance_id: str | None = None
    lead_id: str | None = None


# ── Campaigns ────────────────────────────────────────────────────────


class Campaign(BaseModel, extra="ignore"):
    id: str
    empresa_id: str | None = None
    name: str
    description: str | None = None
    instance_id: str
    responsible_uuid: str | None = None
    message_type: str = "text"
    message_text: str | None = None
    media_url: str | None = None
    media_filename: str | None = None
    media_size_bytes: int | None = None
    selection_mode: str = "stage"
    selected_tags: list[str] = Field(default_factory=list)
    selected_lead_ids: list[str] = Field(default_factory=list)
    pipeline_id: str
    from_stage_id: str | None = None
    to_stage_id: str | None = None
    status: str = "draft"
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_recipients: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    messages_per_batch: int = 10
    interval_min_minutes: int = 1
    interval_max_minutes: int = 5
    created_at: datetime | None = None


class CampaignCreate(BaseModel):
    name: str
    description: str | None = None
    instance_id: str
    responsible_uuid: str | None = None
    message_type: MessageType = "text"
    message_text: str | None = None
    media_url: str | None = None
    media_filename: str | None = None
    media_size_bytes: int | None = None
    selection_mode: Literal["stage", "tags"] = "stage"
    selected_tags: list[str] = Field(default_factory=list)
    selected_lead_ids: list[str] = Field(default_factory=list)
    pipeline_id: str
    from_stage_id: str | None = None
    to_stage_id: str | None = None
    scheduled_at: datetime | None = None
    messages_per_batch: int = Field(10, ge=1)
    interval_min_minutes: int = Field(1, ge=0)
    interval_max_minutes: int = Field(5, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Campaign name is required")
        return v

    @model_validator(mode="after")
    def selection_consistent(self):
        if self.selection_mode == "stage" and not self.from_stage_id:
            raise ValueError("Stage campaigns need a source stage")
        if self.selection_mode == "tags" and not self.selected_tags:
            raise ValueError("Tag campaigns need at least one tag")
        if self.interval_min_minutes > self.interval_max_minutes:
            raise ValueError("Minimum interval cannot exceed maximum interval")
        if self.message_type == "text" and not (self.message_text or "").strip():
            raise ValueError("Message text is required")
        if self.message_type != "text" and not self.media_url:
            raise ValueError("Media campaigns need a media_url")
        return self


class CampaignUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    instance_id: str | None = None
    responsible_uuid: str | None = None
    message_text: str | None = None
    media_url: str | None = None
    from_stage_id: str | None = None
    to_stage_id: str | None = None
    scheduled_at: datetime | None = None
    messages_per_batch: int | None = Field(None, ge=1)
    interval_min_minutes: int | None = Field(None, ge=0)
    interval_max_minutes: int | None = Field(None, ge=0)


class CampaignLog(BaseModel, extra="ignore"):
    id: str
    campaign_id: str
    lead_id: str | None = None
    event_type: str
    message: str | None = None
    created_at: datetime | None = None


class CampaignStats(BaseModel):
    total_campaigns: int = 0
    active_campaigns: int = 0
    completed_campaigns: int = 0
    total_messages_sent: int = 0
    total_messages_failed: int = 0
    success_rate: float = 0.0


# ── Greeting Messages ────────────────────────────────────────────────


class GreetingMessage(BaseModel, extra="ignore"):
    id: str
    profile_uuid: str
    empresa_id: str | None = None
    message_type: Literal["text", "media"]
    media_type: str | None = None
    text_content: str | None = None
    media_url: str | None = None
    media_filename: str | None = None
    media_size_bytes: int | None = None
    pipeline_id: str | None = None
    schedule_type: str = "always"
    is_active: bool = True
    usage_count: int = 0
    last_used_at: datetime | None = None


class GreetingMessageCreate(BaseModel):
    message_type: Literal["text", "media"]
    media_type: Literal["image", "video", "audio", "document"] | None = None
    text_content: str | None = None
    media_url: str | None = None
    media_filename: str | None = None
    media_size_bytes: int | None = None
    pipeline_id: str | None = None
    schedule_type: ScheduleType = "always"
    is_active: bool = True

    @model_validator(mode="after")
    def content_present(self):
        if self.message_type == "text" and not (self.text_content or "").strip():
            raise ValueError("Greeting text is required")
        if self.message_type == "media" and not (self.media_url and self.media_type):
            raise ValueError("Media greetings need media_url and media_type")
        return self


class GreetingMessageUpdate(BaseModel):
    text_content: str | None = None
    schedule_type: ScheduleType | None = None
    is_active: bool | None = None
    pipeline_id: str | None = None


class UploadedMedia(BaseModel):
    url: str
    filename: str
    size: int
