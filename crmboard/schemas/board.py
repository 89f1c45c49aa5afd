"""Request/response bodies for the board endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from .pipeline import DEFAULT_STAGE_COLOR


class ReorderStages(BaseModel):
    pipeline_id: str
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class MoveLead(BaseModel):
    lead_id: str
    from_stage_id: str
    to_stage_id: str
    to_index: int = Field(ge=0)


class AdjacentMove(BaseModel):
    lead_id: str
    direction: Literal["prev", "next"]


class AddStage(BaseModel):
    name: str
    color: str = DEFAULT_STAGE_COLOR


class RenderWindow(BaseModel):
    viewport_height: int = Field(600, ge=0)
    scroll_offset: int = Field(0, ge=0)


class BoardOut(BaseModel):
    pipeline_id: str
    stages: list[dict]
    leads_by_stage: dict[str, list[dict]]
    reached_limit: bool = False
    errors: list[str] = Field(default_factory=list)
