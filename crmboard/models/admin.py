"""Company administration models — profiles, custom fields, API tokens."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base, new_id, utcnow


class Profile(Base):
    """Authenticated principal → company (tenant) mapping."""

    __tablename__ = "profiles"
    uuid = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String(255))
    email = Column(String(255))
    is_admin = Column(Boolean, default=False)
    created_at = Column(UTCDateTime, default=utcnow)


class LeadCustomField(Base):
    """Tenant-defined field. pipeline_id NULL means the field is global."""

    __tablename__ = "lead_custom_fields"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    pipeline_id = Column(String(36))
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    options = Column(JSON, default=list)
    required = Column(Boolean, default=False)
    position = Column(Integer, default=0)
    created_at = Column(UTCDateTime, default=utcnow)


class LeadCustomValue(Base):
    __tablename__ = "lead_custom_values"
    id = Column(String(36), primary_key=True, default=new_id)
    lead_id = Column(String(36), nullable=False)
    field_id = Column(String(36), ForeignKey("lead_custom_fields.id", ondelete="CASCADE"), nullable=False)
    value = Column(Text)

    __table_args__ = (
        Index("ix_custom_values_lead_field", "lead_id", "field_id", unique=True),
    )


class ApiToken(Base):
    __tablename__ = "api_tokens"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    created_by = Column(String(36))
    name = Column(String(100), nullable=False)
    token = Column(String(64), nullable=False, unique=True)
    is_active = Column(Boolean, default=True)
    last_used_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)
