"""Assemble per-user dashboard statistics from the repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .access import resolve_visible_videos, visible_categories
from .errors import NotFoundError
from .progress import (
    ContinueWatchingItem,
    OverallProgress,
    ProgressStats,
    aggregate_forest,
    category_progress,
    continue_watching,
    index_records,
    overall_progress,
)
from .storage import CategoryRecord, ModuleRecord, PortalRepository, UserRecord, VideoRecord


LOGGER = logging.getLogger(__name__)


@dataclass
class ModuleProgress:
    module: ModuleRecord
    stats: ProgressStats


@dataclass
class CategoryProgress:
    category: CategoryRecord
    stats: ProgressStats
    modules: List[ModuleProgress] = field(default_factory=list)


@dataclass
class Dashboard:
    user: UserRecord
    overall: OverallProgress
    categories: List[CategoryProgress]
    videos: List[VideoRecord]
    continue_watching: List[ContinueWatchingItem]


def build_dashboard(
    repository: PortalRepository,
    user_id: int,
    *,
    module_filter: Optional[int] = None,
) -> Dashboard:
    """Resolve what ``user_id`` can see and roll up their progress.

    Module statistics are listed per category in post-order. Only visible
    videos are counted anywhere, so a module grant on its own never leaks the
    rest of a category into the numbers.
    """

    user = repository.get_user(user_id)
    if user is None:
        raise NotFoundError("user", user_id)

    categories = list(repository.iter_categories())
    modules_by_category: Dict[int, List[ModuleRecord]] = {
        category.id: repository.list_modules(category.id) for category in categories
    }

    filter_modules: List[ModuleRecord] = []
    if module_filter is not None:
        selected = repository.get_module(module_filter)
        if selected is None:
            raise NotFoundError("module", module_filter)
        filter_modules = modules_by_category.get(selected.category_id, [])

    visible = resolve_visible_videos(
        user,
        repository.iter_videos(),
        module_filter=module_filter,
        modules=filter_modules,
    )
    records = index_records(repository.list_watch_records(user.id))

    category_entries: List[CategoryProgress] = []
    for category in visible_categories(user, categories, visible):
        modules = modules_by_category.get(category.id, [])
        module_stats = aggregate_forest(modules, visible, records)
        by_id = {module.id: module for module in modules}
        category_entries.append(
            CategoryProgress(
                category=category,
                stats=category_progress(category.id, visible, records),
                modules=[
                    ModuleProgress(module=by_id[module_id], stats=stats)
                    for module_id, stats in module_stats.items()
                ],
            )
        )

    LOGGER.debug(
        "Built dashboard for user id=%s (videos=%s categories=%s filter=%s)",
        user.id,
        len(visible),
        len(category_entries),
        module_filter,
    )
    return Dashboard(
        user=user,
        overall=overall_progress(visible, records),
        categories=category_entries,
        videos=visible,
        continue_watching=continue_watching(visible, records),
    )


__all__ = ["CategoryProgress", "Dashboard", "ModuleProgress", "build_dashboard"]
