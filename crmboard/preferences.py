"""View preferences persisted as a small JSON file, one per user.

Known keys and their allowed values:
  leads-view-mode        "kanban" | "list" | "grid"  (default "kanban")
  leads-stats-collapsed  bool                        (default False)

Unknown keys are rejected. A missing or unreadable file falls back to
defaults; a corrupt file is logged and replaced on the next write.
"""

import json
import logging
from pathlib import Path

from .config import settings
from .errors import ValidationFailure

log = logging.getLogger("crmboard.preferences")

VIEW_MODE_KEY = "leads-view-mode"
STATS_COLLAPSED_KEY = "leads-stats-collapsed"

DEFAULTS = {VIEW_MODE_KEY: "kanban", STATS_COLLAPSED_KEY: False}
VIEW_MODES = ("kanban", "list", "grid")


def _validate(key: str, value):
    if key == VIEW_MODE_KEY:
        if value not in VIEW_MODES:
            raise ValidationFailure(f"{key} must be one of {', '.join(VIEW_MODES)}")
        return value
    if key == STATS_COLLAPSED_KEY:
        if not isinstance(value, bool):
            raise ValidationFailure(f"{key} must be true or false")
        return value
    raise ValidationFailure(f"Unknown preference: {key}")


class Preferences:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.preferences_path)

    @classmethod
    def for_user(cls, empresa_id: str, user_id: str, root: str | Path | None = None) -> "Preferences":
        """One file per user, next to the configured preferences path."""
        base = Path(root) if root else Path(settings.preferences_path).parent
        return cls(base / empresa_id / f"{user_id}.json")

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def all(self) -> dict:
        stored = self._read()
        out = dict(DEFAULTS)
        for key, value in stored.items():
            try:
                out[key] = _validate(key, value)
            except ValidationFailure:
                log.debug(f"Dropping invalid stored preference {key}={value!r}")
        return out

    def get(self, key: str):
        if key not in DEFAULTS:
            raise ValidationFailure(f"Unknown preference: {key}")
        return self.all()[key]

    def set(self, key: str, value) -> None:
        value = _validate(key, value)
        data = self.all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def reset(self) -> None:
        self.path.unlink(missing_ok=True)
