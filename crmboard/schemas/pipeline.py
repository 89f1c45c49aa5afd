"""
schemas/pipeline.py — Pydantic models for pipelines and stages

Business Rules:
- Pipeline name required, max 100 chars; description max 500
- Stage name required, max 50 chars
- Stage color must be #RRGGBB
- Stage position is a non-negative integer

Called by: services/pipeline_service.py, services/stage_service.py, board/
Depends on: pydantic
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
DEFAULT_STAGE_COLOR = "#3B82F6"


def _check_color(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Stage color is required")
    if not HEX_COLOR.match(v):
        raise ValueError("Invalid color format, use hexadecimal #RRGGBB")
    return v


def _check_stage_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Stage name is required")
    if len(v) > 50:
        raise ValueError("Stage name cannot exceed 50 characters")
    return v


def _check_pipeline_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Pipeline name is required")
    if len(v) > 100:
        raise ValueError("Pipeline name cannot exceed 100 characters")
    return v


def _check_description(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if len(v) > 500:
        raise ValueError("Pipeline description cannot exceed 500 characters")
    return v or None


def _check_required_id(v: str) -> str:
    if not v.strip():
        raise ValueError("Pipeline is required")
    return v


StageName = Annotated[str, AfterValidator(_check_stage_name)]
HexColor = Annotated[str, AfterValidator(_check_color)]
PipelineName = Annotated[str, AfterValidator(_check_pipeline_name)]
Description = Annotated[str | None, AfterValidator(_check_description)]


# ── Pipelines ────────────────────────────────────────────────────────


class Pipeline(BaseModel, extra="ignore"):
    id: str
    empresa_id: str | None = None
    name: str
    description: str | None = None
    active: bool = True
    display_order: int | None = None
    created_at: datetime | None = None


class PipelineCreate(BaseModel):
    name: PipelineName
    description: Description = None
    active: bool = True
    display_order: int | None = None


class PipelineUpdate(BaseModel):
    name: PipelineName | None = None
    description: Description = None
    active: bool | None = None
    display_order: int | None = None


class PipelineStageSeed(BaseModel):
    name: StageName
    color: HexColor = DEFAULT_STAGE_COLOR


class PipelineWithStagesCreate(PipelineCreate):
    stages: list[PipelineStageSeed] = Field(default_factory=list)


# ── Stages ───────────────────────────────────────────────────────────


class Stage(BaseModel, extra="ignore"):
    id: str
    pipeline_id: str
    empresa_id: str | None = None
    name: str
    color: str = DEFAULT_STAGE_COLOR
    position: int = 0
    created_at: datetime | None = None


class StageCreate(BaseModel):
    pipeline_id: Annotated[str, AfterValidator(_check_required_id)]
    name: StageName
    color: HexColor = DEFAULT_STAGE_COLOR
    position: int = Field(0, ge=0)


class StageUpdate(BaseModel):
    name: StageName | None = None
    color: HexColor | None = None
    position: int | None = Field(None, ge=0)
    pipeline_id: str | None = None


class StagePosition(BaseModel):
    id: str
    position: int = Field(ge=0)
