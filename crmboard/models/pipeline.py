"""Pipeline models — pipelines, stages, leads and lead history."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from ..database import UTCDateTime
from .base import Base, new_id, utcnow


class Pipeline(Base):
    """A named sales funnel owned by one company."""

    __tablename__ = "pipelines"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500))
    active = Column(Boolean, default=True)
    display_order = Column(Integer)
    created_at = Column(UTCDateTime, default=utcnow)


class PipelinePermission(Base):
    """Grants one non-admin user visibility of one pipeline."""

    __tablename__ = "pipeline_permissions"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=False)
    pipeline_id = Column(String(36), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_pipeline_perm_user_pipeline", "user_id", "pipeline_id", unique=True),
    )


class Stage(Base):
    """One ordered step of a pipeline. Positions are rewritten 0..N-1 on reorder."""

    __tablename__ = "stages"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    pipeline_id = Column(String(36), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)
    color = Column(String(7), nullable=False, default="#3B82F6")
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (Index("ix_stages_pipeline_position", "pipeline_id", "position"),)


class Lead(Base):
    __tablename__ = "leads"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False, index=True)
    pipeline_id = Column(String(36), ForeignKey("pipelines.id"), nullable=False)
    stage_id = Column(String(36), ForeignKey("stages.id"), nullable=False, index=True)
    responsible_uuid = Column(String(36))
    name = Column(String(100), nullable=False)
    company = Column(String(100))
    email = Column(String(255))
    phone = Column(String(20))
    value = Column(Float)
    status = Column(String(10))  # hot, warm, cold
    origin = Column(String(30))
    notes = Column(Text)
    tags = Column(JSON, default=list)
    created_at = Column(UTCDateTime, default=utcnow)
    last_contact_at = Column(UTCDateTime)

    # Loss / sale
    loss_reason_category = Column(String(50))
    loss_reason_notes = Column(Text)
    lost_at = Column(UTCDateTime)
    sold_at = Column(UTCDateTime)
    sold_value = Column(Float)
    sale_notes = Column(Text)


class LeadHistory(Base):
    """Audit trail of stage/pipeline moves and loss/sale transitions."""

    __tablename__ = "lead_history"
    id = Column(String(36), primary_key=True, default=new_id)
    empresa_id = Column(String(36), nullable=False)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    change_type = Column(String(30), nullable=False)
    pipeline_id = Column(String(36))
    stage_id = Column(String(36))
    previous_pipeline_id = Column(String(36))
    previous_stage_id = Column(String(36))
    changed_by = Column(String(36))
    notes = Column(Text)
    changed_at = Column(UTCDateTime, default=utcnow)
