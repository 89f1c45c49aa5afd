"""Messaging models — chat, WhatsApp campaigns, greeting messages."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base, new_id, utcnow


class ChatConversation(Base):
    __tablename__ = "chat_conversations"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    lead_id = Column(String(36))
    instance_id = Column(String(36), nullable=False)
    lead_name = Column(String(255))
    lead_phone = Column(String(20))
    last_message = Column(Text)
    last_message_time = Column(UTCDateTime)
    unread_count = Column(Integer, default=0)
    status = Column(String(20), default="active")
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)


class ChatMessage(Base):
    """Append-only message row."""

    __tablename__ = "chat_messages"
    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("chat_conversations.id", ondelete="CASCADE"), nullable=False
    )
    instance_id = Column(String(36), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    content = Column(Text)
    media_url = Column(String(1000))
    direction = Column(String(10), nullable=False)
    status = Column(String(20), default="sent")
    timestamp = Column(UTCDateTime, default=utcnow)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (Index("ix_chat_messages_conv_ts", "conversation_id", "timestamp"),)


class WhatsAppCampaign(Base):
    __tablename__ = "whatsapp_campaigns"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    instance_id = Column(String(36), nullable=False)
    responsible_uuid = Column(String(36))
    message_type = Column(String(20), nullable=False, default="text")
    message_text = Column(Text)
    media_url = Column(String(1000))
    media_filename = Column(String(255))
    media_size_bytes = Column(Integer)
    selection_mode = Column(String(10), default="stage")
    selected_tags = Column(JSON, default=list)
    selected_lead_ids = Column(JSON, default=list)
    pipeline_id = Column(String(36), nullable=False)
    from_stage_id = Column(String(36))
    to_stage_id = Column(String(36))
    status = Column(String(20), default="draft")
    scheduled_at = Column(UTCDateTime)
    started_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    total_recipients = Column(Integer, default=0)
    messages_sent = Column(Integer, default=0)
    messages_failed = Column(Integer, default=0)
    messages_per_batch = Column(Integer, default=10)
    interval_min_minutes = Column(Integer, default=1)
    interval_max_minutes = Column(Integer, default=5)
    created_by = Column(String(36))
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)


class WhatsAppCampaignLog(Base):
    __tablename__ = "whatsapp_campaign_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    campaign_id = Column(
        String(36), ForeignKey("whatsapp_campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    empresa_id = Column(String(36))
    lead_id = Column(String(36))
    event_type = Column(String(30), nullable=False)
    message = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow)


class GreetingMessage(Base):
    __tablename__ = "greeting_messages"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    profile_uuid = Column(String(36), nullable=False, index=True)
    message_type = Column(String(10), nullable=False)
    media_type = Column(String(20))
    text_content = Column(Text)
    media_url = Column(String(1000))
    media_filename = Column(String(255))
    media_size_bytes = Column(Integer)
    pipeline_id = Column(String(36))
    schedule_type = Column(String(20), default="always")
    is_active = Column(Boolean, default=True)
    usage_count = Column(Integer, default=0)
    last_used_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)
