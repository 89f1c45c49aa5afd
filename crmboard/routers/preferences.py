"""
routers/preferences.py — Per-user view preferences

Business Rules:
- Each user reads and writes only their own preferences file
- Only the known keys are accepted (leads-view-mode, leads-stats-collapsed)
- DELETE resets every preference to its default

Called by: main.py (router mount)
Depends on: preferences.py, dependencies
"""

from fastapi import APIRouter, Depends

from ..context import TenantContext
from ..dependencies import require_context
from ..preferences import Preferences
from ..schemas.admin import PreferenceValue

router = APIRouter()


def get_preferences(ctx: TenantContext = Depends(require_context)) -> Preferences:
    return Preferences.for_user(ctx.empresa_id, ctx.user_id)


@router.get("/api/preferences")
async def read_preferences(prefs: Preferences = Depends(get_preferences)):
    return prefs.all()


@router.put("/api/preferences/{key}")
async def write_preference(key: str, body: PreferenceValue,
                           prefs: Preferences = Depends(get_preferences)):
    prefs.set(key, body.value)
    return prefs.all()


@router.delete("/api/preferences")
async def reset_preferences(prefs: Preferences = Depends(get_preferences)):
    prefs.reset()
    return prefs.all()
