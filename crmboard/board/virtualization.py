"""Render planning for long stage columns.

A column with more than `threshold` leads is windowed: only rows that
intersect the viewport, plus `overscan` rows on each side, are
materialized. Heights are estimated until real measurements arrive.
The logical lead list is never reordered or trimmed; a plan only says
which slice of it to draw and where.
"""

from dataclasses import dataclass, field

from ..config import settings


@dataclass
class RenderPlan:
    strategy: str                  # "full" | "windowed"
    leads: list                    # the full logical list, untouched
    start: int = 0                 # first materialized index
    end: int = 0                   # one past the last materialized index
    offsets: list[int] = field(default_factory=list)
    total_height: int = 0

    @property
    def visible(self) -> list:
        return self.leads[self.start:self.end]


def compute_virtualization_threshold(stage_lead_count: int, threshold: int | None = None) -> str:
    """'full' when the column has at most `threshold` leads, else 'windowed'."""
    limit = settings.virtualization_threshold if threshold is None else threshold
    return "full" if stage_lead_count <= limit else "windowed"


def plan_render(
    leads: list,
    viewport_height: int = 600,
    scroll_offset: int = 0,
    measured_heights: dict[int, int] | None = None,
    estimated_row_height: int | None = None,
    overscan: int | None = None,
    threshold: int | None = None,
) -> RenderPlan:
    row = estimated_row_height or settings.estimated_row_height
    extra = settings.virtualization_overscan if overscan is None else overscan
    measured = measured_heights or {}

    offsets = []
    y = 0
    for i in range(len(leads)):
        offsets.append(y)
        y += measured.get(i, row)

    strategy = compute_virtualization_threshold(len(leads), threshold)
    if strategy == "full":
        return RenderPlan("full", leads, 0, len(leads), offsets, y)

    top = max(scroll_offset, 0)
    bottom = top + max(viewport_height, 0)
    first = next((i for i, o in enumerate(offsets) if o + measured.get(i, row) > top), len(leads))
    last = first
    while last < len(leads) and offsets[last] < bottom:
        last += 1

    start = max(first - extra, 0)
    end = min(last + extra, len(leads))
    return RenderPlan("windowed", leads, start, end, offsets, y)
