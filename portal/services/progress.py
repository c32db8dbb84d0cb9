"""Watch progress percentages and roll-ups over videos, modules and categories."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .hierarchy import ModuleForest
from .storage import ModuleRecord, VideoRecord, WatchRecord


def _clamp_percentage(value: float) -> float:
    return max(0.0, min(value, 100.0))


def round_percentage(value: float) -> int:
    """Round half-up, as dashboards display it (``50.5`` -> ``51``)."""

    return int(math.floor(_clamp_percentage(value) + 0.5))


def index_records(records: Iterable[WatchRecord]) -> Dict[int, WatchRecord]:
    """Key a user's watch records by video id."""

    return {record.video_id: record for record in records}


def video_percentage(video: VideoRecord, record: Optional[WatchRecord]) -> float:
    """Return how much of ``video`` has been consumed, in ``[0, 100]``.

    Items without playable duration only count as 0 or 100 depending on
    their completion flag.
    """

    if record is None:
        return 0.0
    if video.duration > 0:
        return _clamp_percentage(record.watched_duration / video.duration * 100.0)
    return 100.0 if record.completed else 0.0


@dataclass
class ProgressStats:
    percentage: int
    completed_count: int
    in_progress_count: int
    video_count: int
    total_duration: float
    watched_duration: float

    @classmethod
    def empty(cls) -> "ProgressStats":
        return cls(0, 0, 0, 0, 0.0, 0.0)


def rollup(videos: Sequence[VideoRecord], records: Mapping[int, WatchRecord]) -> ProgressStats:
    """Aggregate progress over ``videos``.

    Weighted by duration when the set has any playable duration: each video
    contributes at most its own duration, so overshooting records cannot
    inflate the result. Sets made only of zero-duration items fall back to
    the share of completed items.
    """

    if not videos:
        return ProgressStats.empty()

    total_duration = 0.0
    watched_sum = 0.0
    completed = 0
    in_progress = 0
    for video in videos:
        record = records.get(video.id)
        total_duration += video.duration
        if record is None:
            continue
        watched = max(0.0, record.watched_duration)
        watched_sum += min(video.duration, watched)
        if record.completed:
            completed += 1
        elif watched > 0:
            in_progress += 1

    if total_duration > 0:
        percentage = round_percentage(watched_sum / total_duration * 100.0)
    else:
        percentage = round_percentage(completed / len(videos) * 100.0)

    return ProgressStats(
        percentage=percentage,
        completed_count=completed,
        in_progress_count=in_progress,
        video_count=len(videos),
        total_duration=total_duration,
        watched_duration=watched_sum,
    )


def aggregate_forest(
    modules: Sequence[ModuleRecord],
    videos: Sequence[VideoRecord],
    records: Mapping[int, WatchRecord],
) -> Dict[int, ProgressStats]:
    """Return stats for every module, children listed before their parents.

    A module covers the videos attached to it and to all of its
    descendants. Each module is aggregated from that raw video set, never
    from its children's percentages.
    """

    forest = ModuleForest(modules)
    videos_by_module: Dict[int, List[VideoRecord]] = {}
    for video in videos:
        if video.module_id is not None:
            videos_by_module.setdefault(video.module_id, []).append(video)

    subtree: Dict[int, Set[int]] = {}
    stats: Dict[int, ProgressStats] = {}
    for module in forest.post_order():
        members = {module.id}
        for child in forest.children(module.id):
            members.update(subtree.get(child.id, ()))
        subtree[module.id] = members
        covered = [video for member in members for video in videos_by_module.get(member, ())]
        stats[module.id] = rollup(covered, records)
    return stats


def category_progress(
    category_id: int,
    videos: Iterable[VideoRecord],
    records: Mapping[int, WatchRecord],
) -> ProgressStats:
    return rollup([video for video in videos if category_id in video.category_ids], records)


@dataclass
class OverallProgress:
    stats: ProgressStats
    total_watch_time: float


def overall_progress(
    videos: Sequence[VideoRecord], records: Mapping[int, WatchRecord]
) -> OverallProgress:
    """Roll up every given video and sum the seconds watched on them."""

    total_watch_time = sum(
        max(0.0, records[video.id].watched_duration) for video in videos if video.id in records
    )
    return OverallProgress(stats=rollup(videos, records), total_watch_time=total_watch_time)


@dataclass
class ContinueWatchingItem:
    video: VideoRecord
    percentage: float
    last_watched_at: datetime


def continue_watching(
    videos: Iterable[VideoRecord], records: Mapping[int, WatchRecord]
) -> List[ContinueWatchingItem]:
    """Started but unfinished items, most recently watched first."""

    items: List[ContinueWatchingItem] = []
    for video in videos:
        record = records.get(video.id)
        if record is None or record.completed:
            continue
        percentage = video_percentage(video, record)
        if percentage >= 100.0:
            continue
        items.append(ContinueWatchingItem(video, percentage, record.last_watched_at))
    items.sort(key=lambda item: item.last_watched_at, reverse=True)
    return items


__all__ = [
    "ContinueWatchingItem",
    "OverallProgress",
    "ProgressStats",
    "aggregate_forest",
    "category_progress",
    "continue_watching",
    "index_records",
    "overall_progress",
    "rollup",
    "round_percentage",
    "video_percentage",
]
