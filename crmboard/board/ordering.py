"""Pure list helpers behind the kanban board — no I/O.

  - array_move([a, b, c], 1, 0) → [b, a, c]
  - reindex(stages) rewrites position as 0..N-1
  - temporary stage ids look like "temp-1718000000000-4821"
"""

import secrets
import time
from typing import TypeVar

T = TypeVar("T")

TEMP_PREFIX = "temp-"


def array_move(items: list[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy with the item at from_index reinserted at to_index.

    Items strictly between the two indices shift by one.
    """
    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return moved


def reindex(stages: list[dict]) -> list[str]:
    """Set each stage's position to its index. Returns ids whose position changed."""
    changed = []
    for i, stage in enumerate(stages):
        if stage.get("position") != i:
            stage["position"] = i
            changed.append(stage["id"])
    return changed


def is_temporary_stage(stage_id: str) -> bool:
    return stage_id.startswith(TEMP_PREFIX)


def temp_stage_id() -> str:
    return f"{TEMP_PREFIX}{int(time.time() * 1000)}-{secrets.randbelow(10000)}"


def name_taken(stages: list[dict], name: str, ignore_id: str | None = None) -> bool:
    """Case-insensitive, whitespace-trimmed name collision check."""
    wanted = name.strip().lower()
    return any(
        s["name"].strip().lower() == wanted for s in stages if s["id"] != ignore_id
    )


def find_lead(leads_by_stage: dict[str, list[dict]], lead_id: str) -> tuple[str, int] | None:
    """(stage_id, index) of a lead on the board, or None."""
    for stage_id, leads in leads_by_stage.items():
        for i, lead in enumerate(leads):
            if lead["id"] == lead_id:
                return stage_id, i
    return None
