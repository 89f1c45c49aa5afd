"""
schemas/lead.py — Pydantic models for leads and kanban filters

Business Rules:
- Lead name required, max 100 chars; company max 100; notes max 1000
- Email must look like an address
- Phones normalise to Brazilian format 55 + DDD (11..99) + 8/9 digits
- Value and sold value cannot be negative
- Loss category "outro" requires notes

Called by: services/lead_service.py, board/controller.py, routers/
Depends on: pydantic
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

LeadStatus = Literal["hot", "warm", "cold"]
LeadOrigin = Literal[
    "website", "whatsapp", "instagram", "facebook", "referral",
    "phone", "email", "event", "import", "api", "other",
]
LOSS_CATEGORIES = (
    "negociacao",
    "concorrencia",
    "timing",
    "sem_budget",
    "financiamento_nao_aprovado",
    "sem_interesse",
    "nao_qualificado",
    "sem_resposta",
    "outro",
)
LOSS_REASON_LABELS = {
    "negociacao": "Negotiation failed",
    "concorrencia": "Lost to competitor",
    "timing": "Bad timing",
    "sem_budget": "No budget",
    "financiamento_nao_aprovado": "Financing not approved",
    "sem_interesse": "No interest",
    "nao_qualificado": "Not qualified",
    "sem_resposta": "No response",
    "outro": "Other",
}

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_phone(phone: str) -> str:
    """Strip formatting and prefix the 55 country code when missing."""
    digits = re.sub(r"\D", "", phone)
    return digits if digits.startswith("55") else f"55{digits}"


def is_valid_brazilian_phone(phone: str) -> bool:
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 10 or not digits.startswith("55"):
        return False
    ddd, number = digits[2:4], digits[4:]
    if not ddd.isdigit() or not 11 <= int(ddd) <= 99:
        return False
    return 8 <= len(number) <= 9


def _check_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Lead name is required")
    if len(v) > 100:
        raise ValueError("Lead name cannot exceed 100 characters")
    return v


def _check_email(v: str | None) -> str | None:
    if not v:
        return None
    v = v.strip()
    if not _EMAIL.match(v):
        raise ValueError("Invalid email")
    return v


def _check_phone(v: str | None) -> str | None:
    if not v:
        return None
    formatted = normalize_phone(v)
    if not is_valid_brazilian_phone(formatted):
        raise ValueError("Invalid phone, expected 55 + DDD + number (e.g. 5511999999999)")
    return formatted


def _check_company(v: str | None) -> str | None:
    if v and len(v) > 100:
        raise ValueError("Company name cannot exceed 100 characters")
    return v


def _check_notes(v: str | None) -> str | None:
    if v and len(v) > 1000:
        raise ValueError("Notes cannot exceed 1000 characters")
    return v


LeadName = Annotated[str, AfterValidator(_check_name)]
Email = Annotated[str | None, AfterValidator(_check_email)]
Phone = Annotated[str | None, AfterValidator(_check_phone)]
CompanyName = Annotated[str | None, AfterValidator(_check_company)]
Notes = Annotated[str | None, AfterValidator(_check_notes)]


class Lead(BaseModel, extra="ignore"):
    id: str
    pipeline_id: str
    stage_id: str
    empresa_id: str | None = None
    responsible_uuid: str | None = None
    name: str
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    value: float | None = None
    status: str | None = None
    origin: str | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    last_contact_at: datetime | None = None
    loss_reason_category: str | None = None
    loss_reason_notes: str | None = None
    lost_at: datetime | None = None
    sold_at: datetime | None = None
    sold_value: float | None = None
    sale_notes: str | None = None


class LeadCreate(BaseModel):
    pipeline_id: str
    stage_id: str
    name: LeadName
    responsible_uuid: str | None = None
    company: CompanyName = None
    email: Email = None
    phone: Phone = None
    value: float | None = Field(None, ge=0)
    status: LeadStatus | None = None
    origin: LeadOrigin | None = None
    notes: Notes = None
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def placement_required(self):
        if not self.pipeline_id:
            raise ValueError("Pipeline is required")
        if not self.stage_id:
            raise ValueError("Stage is required")
        return self


class LeadUpdate(BaseModel):
    name: LeadName | None = None
    responsible_uuid: str | None = None
    company: CompanyName = None
    email: Email = None
    phone: Phone = None
    value: float | None = Field(None, ge=0)
    status: LeadStatus | None = None
    origin: LeadOrigin | None = None
    notes: Notes = None
    tags: list[str] | None = None
    last_contact_at: datetime | None = None


class MarkLost(BaseModel):
    category: str
    notes: str | None = None

    @model_validator(mode="after")
    def category_valid(self):
        if self.category not in LOSS_CATEGORIES:
            raise ValueError("Invalid loss reason category")
        if self.category == "outro" and not (self.notes or "").strip():
            raise ValueError('Details are required for the "outro" loss category')
        return self


class MarkSold(BaseModel):
    sold_value: float = Field(ge=0)
    notes: str | None = None


class LeadFilters(BaseModel):
    """Kanban / list filters. Lost and sold leads are hidden unless asked for."""

    status: list[str] = Field(default_factory=list)
    show_lost: bool = False
    show_sold: bool = False
    date_from: str | None = None
    date_to: str | None = None
    search: str | None = None
    responsible_uuid: str | None = None
    tags: list[str] = Field(default_factory=list)
    origin: str | None = None
