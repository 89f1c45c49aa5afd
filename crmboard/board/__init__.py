"""Kanban board state: optimistic stage/lead moves and render planning."""

from .controller import BoardController  # noqa: F401
from .virtualization import RenderPlan, compute_virtualization_threshold, plan_render  # noqa: F401
