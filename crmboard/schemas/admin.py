"""
schemas/admin.py — Custom fields, custom values, API tokens, permissions, preferences

Business Rules:
- Custom field type is one of text/number/date/select/multiselect/link/vehicle
- select / multiselect need at least one option
- pipeline_id None means the field applies to every pipeline
- API tokens are shown in full only in the create response

Called by: services/custom_field_service.py, services/api_token_service.py, routers/preferences.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

FieldType = Literal["text", "number", "date", "select", "multiselect", "link", "vehicle"]
OPTION_TYPES = ("select", "multiselect")


# ── Custom Fields ────────────────────────────────────────────────────


class CustomField(BaseModel, extra="ignore"):
    id: str
    empresa_id: str | None = None
    pipeline_id: str | None = None
    name: str
    type: str
    options: list[str] = Field(default_factory=list)
    required: bool = False
    position: int = 0


class CustomFieldCreate(BaseModel):
    name: str
    type: FieldType
    pipeline_id: str | None = None
    options: list[str] = Field(default_factory=list)
    required: bool = False
    position: int = Field(0, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field name is required")
        return v

    @model_validator(mode="after")
    def options_for_enumerations(self):
        self.options = [o.strip() for o in self.options if o and o.strip()]
        if self.type in OPTION_TYPES and not self.options:
            raise ValueError(f"Fields of type {self.type} need at least one option")
        return self


class CustomFieldUpdate(BaseModel):
    name: str | None = None
    options: list[str] | None = None
    required: bool | None = None
    position: int | None = Field(None, ge=0)
    pipeline_id: str | None = None


class CustomValue(BaseModel, extra="ignore"):
    id: str
    lead_id: str
    field_id: str
    value: str | None = None


class CustomValueUpsert(BaseModel):
    lead_id: str
    field_id: str
    value: str | None = None


# ── API Tokens ───────────────────────────────────────────────────────


class ApiToken(BaseModel, extra="ignore"):
    id: str
    empresa_id: str | None = None
    created_by: str | None = None
    name: str
    token: str
    is_active: bool = True
    last_used_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApiTokenCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Token name is required")
        if len(v) > 100:
            raise ValueError("Token name cannot exceed 100 characters")
        return v


class ApiTokenToggle(BaseModel):
    is_active: bool


# ── Pipeline Permissions ─────────────────────────────────────────────


class PipelinePermissionSet(BaseModel):
    user_id: str
    pipeline_ids: list[str] = Field(default_factory=list)


# ── Preferences ──────────────────────────────────────────────────────


class PreferenceValue(BaseModel):
    value: bool | str
