from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from portal.services.progress import (
    aggregate_forest,
    category_progress,
    continue_watching,
    index_records,
    overall_progress,
    rollup,
    round_percentage,
    video_percentage,
)
from portal.services.storage import ContentKind, ModuleRecord, VideoRecord, WatchRecord


_STAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _video(video_id: int, duration: float, module_id=None, categories=(1,)) -> VideoRecord:
    return VideoRecord(
        id=video_id,
        title=f"Item {video_id}",
        duration=duration,
        kind=ContentKind.for_duration(duration),
        category_ids=frozenset(categories),
        module_id=module_id,
    )


def _record(video_id: int, watched: float, completed: bool = False, minutes: int = 0) -> WatchRecord:
    return WatchRecord(
        user_id=1,
        video_id=video_id,
        watched_duration=watched,
        completed=completed,
        last_watched_at=_STAMP + timedelta(minutes=minutes),
    )


def _module(module_id: int, parent_id=None, order: int = 0) -> ModuleRecord:
    return ModuleRecord(module_id, 1, parent_id, f"Module {module_id}", "", order, _STAMP, _STAMP)


def test_duration_weighted_rollup() -> None:
    videos = [_video(1, 100), _video(2, 100)]
    records = index_records([_record(1, 50), _record(2, 100, completed=True)])

    stats = rollup(videos, records)

    assert stats.percentage == 75
    assert stats.completed_count == 1
    assert stats.in_progress_count == 1
    assert stats.video_count == 2
    assert stats.total_duration == 200
    assert stats.watched_duration == 150


def test_zero_duration_set_falls_back_to_completion_count() -> None:
    videos = [_video(1, 0), _video(2, 0)]
    records = index_records([_record(1, 0, completed=True), _record(2, 0)])

    stats = rollup(videos, records)

    assert stats.percentage == 50
    assert stats.completed_count == 1
    assert stats.in_progress_count == 0


@pytest.mark.parametrize(
    "videos, records",
    [
        ([], []),
        ([_video(1, 0)], []),
        ([_video(1, 10)], [_record(1, 500, completed=True)]),
        ([_video(1, 10), _video(2, 0)], [_record(1, -30), _record(2, 0, completed=True)]),
    ],
)
def test_rollup_percentage_is_bounded(videos, records) -> None:
    stats = rollup(videos, index_records(records))

    assert isinstance(stats.percentage, int)
    assert 0 <= stats.percentage <= 100


def test_overshooting_record_does_not_inflate_other_videos() -> None:
    videos = [_video(1, 100), _video(2, 100)]
    records = index_records([_record(1, 1000)])

    assert rollup(videos, records).percentage == 50


def test_round_percentage_rounds_half_up() -> None:
    assert round_percentage(50.5) == 51
    assert round_percentage(49.49) == 49
    assert round_percentage(120) == 100
    assert round_percentage(-3) == 0


def test_video_percentage_for_documents_and_videos() -> None:
    assert video_percentage(_video(1, 200), _record(1, 50)) == 25.0
    assert video_percentage(_video(1, 200), None) == 0.0
    assert video_percentage(_video(2, 0), _record(2, 0, completed=True)) == 100.0
    assert video_percentage(_video(2, 0), _record(2, 0)) == 0.0


def test_aggregate_forest_covers_descendants_in_post_order() -> None:
    modules = [_module(1), _module(2, parent_id=1), _module(3, order=1)]
    videos = [_video(10, 100, module_id=1), _video(11, 100, module_id=2), _video(12, 50, module_id=3)]
    records = index_records([_record(11, 100, completed=True)])

    stats = aggregate_forest(modules, videos, records)

    assert list(stats) == [2, 1, 3]
    assert stats[2].percentage == 100
    assert stats[1].percentage == 50
    assert stats[1].video_count == 2
    assert stats[3].percentage == 0


def test_category_and_overall_progress() -> None:
    videos = [_video(1, 100, categories=(1,)), _video(2, 100, categories=(2,))]
    records = index_records([_record(1, 40), _record(2, 100, completed=True)])

    assert category_progress(1, videos, records).percentage == 40
    overall = overall_progress(videos, records)
    assert overall.stats.percentage == 70
    assert overall.total_watch_time == 140


def test_continue_watching_lists_unfinished_items_latest_first() -> None:
    videos = [_video(1, 100), _video(2, 100), _video(3, 100), _video(4, 0)]
    records = index_records(
        [
            _record(1, 30, minutes=1),
            _record(2, 60, minutes=5),
            _record(3, 100, completed=True, minutes=9),
        ]
    )

    items = continue_watching(videos, records)

    assert [item.video.id for item in items] == [2, 1]
    assert items[0].percentage == 60.0


def test_aggregate_forest_handles_deep_chains() -> None:
    depth = 1500
    modules = [_module(1)] + [_module(level, parent_id=level - 1) for level in range(2, depth + 1)]
    videos = [_video(1, 100, module_id=depth)]
    records = index_records([_record(1, 25)])

    stats = aggregate_forest(modules, videos, records)

    assert len(stats) == depth
    assert next(iter(stats)) == depth
    assert stats[1].percentage == 25
    assert stats[1].video_count == 1
