"""Content hierarchy and progress aggregation services."""

from .access import is_visible, resolve_visible_videos, visible_categories
from .dashboard import Dashboard, build_dashboard
from .editor import TreeEditor
from .errors import (
    DeletionBlockedError,
    HasChildrenError,
    HasVideosError,
    NotFoundError,
    PartialOrderSwapError,
    PortalError,
    ValidationError,
)
from .guard import can_delete, check_can_delete
from .hierarchy import ModuleForest, sibling_sort_key, sort_siblings
from .ordering import MoveDirection, OrderManager
from .progress import ProgressStats, aggregate_forest, rollup, video_percentage
from .storage import PortalRepository

__all__ = [
    "Dashboard",
    "DeletionBlockedError",
    "HasChildrenError",
    "HasVideosError",
    "ModuleForest",
    "MoveDirection",
    "NotFoundError",
    "OrderManager",
    "PartialOrderSwapError",
    "PortalError",
    "PortalRepository",
    "ProgressStats",
    "TreeEditor",
    "ValidationError",
    "aggregate_forest",
    "build_dashboard",
    "can_delete",
    "check_can_delete",
    "is_visible",
    "resolve_visible_videos",
    "rollup",
    "sibling_sort_key",
    "sort_siblings",
    "video_percentage",
    "visible_categories",
]
