"""Plain console rendering of the module catalogue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ..services.progress import ProgressStats
from ..services.storage import PortalRepository, VideoRecord
from .overview import CategoryOverview, collect_overview


@dataclass
class ConsoleSection:
    title: str
    entries: Iterable[str]


class ConsoleUI:
    """Minimal console UI that prints categories, modules and their content."""

    def __init__(self, repository: PortalRepository, *, user_id: Optional[int] = None) -> None:
        self._repository = repository
        self._user_id = user_id

    def run(self) -> None:
        snapshot = collect_overview(self._repository, user_id=self._user_id)

        print("Training Portal – Console Overview")
        print("=" * 40)
        if snapshot.viewer is not None and snapshot.overall is not None:
            print(
                f"Viewer: {snapshot.viewer.name} ({snapshot.viewer.role.value})"
                + self._format_stats(snapshot.overall.stats)
            )
            print()
        for section in self._build_sections(snapshot.categories):
            print(section.title)
            print("-" * len(section.title))
            has_entries = False
            for entry in section.entries:
                has_entries = True
                print(entry)
            if not has_entries:
                print("(empty)")
            print()

    def _build_sections(self, categories: Iterable[CategoryOverview]) -> Iterable[ConsoleSection]:
        for category in categories:
            yield ConsoleSection(
                title=f"Category: {category.record.name}" + self._format_stats(category.stats),
                entries=self._format_modules(category),
            )

    def _format_modules(self, category: CategoryOverview) -> Iterable[str]:
        if not category.modules and not category.loose_videos:
            yield "  No modules registered"
            return

        for module in category.modules:
            indent = "  " * (module.depth + 1)
            yield f"{indent}Module: {module.record.title}" + self._format_stats(module.stats)
            for video in module.videos:
                yield f"{indent}  {self._format_video(video)}"
        for video in category.loose_videos:
            yield f"  {self._format_video(video)}"

    @staticmethod
    def _format_video(video: VideoRecord) -> str:
        if video.is_document:
            return f"Document: {video.title}"
        return f"Video: {video.title} ({int(video.duration)}s)"

    @staticmethod
    def _format_stats(stats: Optional[ProgressStats]) -> str:
        if stats is None:
            return ""
        return f" [{stats.percentage}% · {stats.completed_count}/{stats.video_count} done]"


__all__ = ["ConsoleUI"]
