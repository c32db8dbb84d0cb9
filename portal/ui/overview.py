"""Shared helpers for building overview snapshots of the module catalogue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..services.dashboard import build_dashboard
from ..services.hierarchy import ModuleForest
from ..services.progress import OverallProgress, ProgressStats
from ..services.storage import (
    CategoryRecord,
    ModuleRecord,
    PortalRepository,
    UserRecord,
    VideoRecord,
)


@dataclass
class ModuleOverview:
    record: ModuleRecord
    depth: int
    videos: List[VideoRecord]
    stats: Optional[ProgressStats] = None


@dataclass
class CategoryOverview:
    record: CategoryRecord
    modules: List[ModuleOverview]
    loose_videos: List[VideoRecord] = field(default_factory=list)
    stats: Optional[ProgressStats] = None


@dataclass
class OverviewSnapshot:
    categories: List[CategoryOverview]
    category_count: int
    module_count: int
    video_count: int
    document_count: int
    viewer: Optional[UserRecord] = None
    overall: Optional[OverallProgress] = None


def collect_overview(
    repository: PortalRepository, *, user_id: Optional[int] = None
) -> OverviewSnapshot:
    """Aggregate repository data into a snapshot for UIs.

    Without ``user_id`` the whole catalogue is listed. With it, only what that
    user can see is kept and every category and module carries progress.
    """

    viewer: Optional[UserRecord] = None
    overall: Optional[OverallProgress] = None
    category_stats: Dict[int, ProgressStats] = {}
    module_stats: Dict[int, ProgressStats] = {}

    if user_id is None:
        categories = list(repository.iter_categories())
        videos = list(repository.iter_videos())
    else:
        dashboard = build_dashboard(repository, user_id)
        viewer = dashboard.user
        overall = dashboard.overall
        categories = [entry.category for entry in dashboard.categories]
        videos = dashboard.videos
        for entry in dashboard.categories:
            category_stats[entry.category.id] = entry.stats
            for item in entry.modules:
                module_stats[item.module.id] = item.stats

    videos_by_module: Dict[int, List[VideoRecord]] = {}
    for video in videos:
        if video.module_id is not None:
            videos_by_module.setdefault(video.module_id, []).append(video)

    overviews: List[CategoryOverview] = []
    module_count = 0
    for category in categories:
        forest = ModuleForest(repository.list_modules(category.id))
        modules = [
            ModuleOverview(
                record=view.record,
                depth=view.depth,
                videos=videos_by_module.get(view.record.id, []),
                stats=module_stats.get(view.record.id),
            )
            for view in forest.walk()
        ]
        module_count += len(modules)
        loose = [
            video
            for video in videos
            if category.id in video.category_ids and video.module_id is None
        ]
        overviews.append(
            CategoryOverview(
                record=category,
                modules=modules,
                loose_videos=loose,
                stats=category_stats.get(category.id),
            )
        )

    return OverviewSnapshot(
        categories=overviews,
        category_count=len(overviews),
        module_count=module_count,
        video_count=sum(1 for video in videos if not video.is_document),
        document_count=sum(1 for video in videos if video.is_document),
        viewer=viewer,
        overall=overall,
    )


def format_duration(seconds: float) -> str:
    total = int(max(0.0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m {secs:02d}s"


__all__ = [
    "CategoryOverview",
    "ModuleOverview",
    "OverviewSnapshot",
    "collect_overview",
    "format_duration",
]
