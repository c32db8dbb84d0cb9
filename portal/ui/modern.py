"""A Rich-powered console front-end for browsing module forests and progress."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.progress import ProgressStats
from ..services.storage import CategoryRecord, ModuleRecord, PortalRepository, VideoRecord
from .overview import CategoryOverview, OverviewSnapshot, collect_overview, format_duration


class ModernUI:
    """Render the catalogue, optionally scoped to one viewer, using Rich widgets."""

    def __init__(
        self,
        repository: PortalRepository,
        *,
        user_id: Optional[int] = None,
        console: Optional[Console] = None,
    ) -> None:
        self._repository = repository
        self._user_id = user_id
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        snapshot = collect_overview(self._repository, user_id=self._user_id)
        console = self._console

        console.rule("[bold magenta]Training Portal Overview")

        if snapshot.category_count == 0:
            message = (
                "No categories are visible to this user."
                if snapshot.viewer is not None
                else "No categories have been created yet."
            )
            console.print(Panel(message, border_style="yellow", box=box.ROUNDED))
            return

        tree_panel = Panel(
            self._build_tree(snapshot.categories),
            title="Catalogue",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True, equal=True))

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _build_tree(self, categories: Iterable[CategoryOverview]) -> Tree:
        tree = Tree("[bold cyan]Categories", guide_style="cyan")

        for category in categories:
            category_node = tree.add(self._build_category_label(category.record, category.stats))
            if not category.modules and not category.loose_videos:
                category_node.add("[dim]No modules yet")
                continue

            # walk order lists a parent before its children, so the node for
            # depth d - 1 is always the latest one registered at that depth
            parents: Dict[int, Tree] = {-1: category_node}
            for module in category.modules:
                parent_node = parents[module.depth - 1]
                module_node = parent_node.add(self._build_module_label(module.record, module.stats))
                parents[module.depth] = module_node
                for video in module.videos:
                    module_node.add(self._build_video_label(video))

            for video in category.loose_videos:
                category_node.add(self._build_video_label(video))

        return tree

    @staticmethod
    def _append_stats(label: Text, stats: Optional[ProgressStats]) -> None:
        if stats is None:
            return
        style = "green" if stats.percentage >= 100 else "yellow" if stats.percentage > 0 else "dim"
        label.append(f"  {stats.percentage}%", style=style)

    def _build_category_label(self, record: CategoryRecord, stats: Optional[ProgressStats]) -> Text:
        label = Text(record.name, style="bold")
        self._append_stats(label, stats)
        if record.description:
            label.append("\n")
            label.append(record.description, style="dim")
        return label

    def _build_module_label(self, record: ModuleRecord, stats: Optional[ProgressStats]) -> Text:
        label = Text(record.title, style="bright_cyan")
        self._append_stats(label, stats)
        if record.description:
            label.append("\n")
            label.append(record.description, style="dim")
        return label

    @staticmethod
    def _build_video_label(video: VideoRecord) -> Text:
        if video.is_document:
            return Text(f"📄 {video.title}", style="white")
        label = Text(f"🎬 {video.title}", style="white")
        label.append(f"  {format_duration(video.duration)}", style="dim")
        return label

    def _build_stats_panel(self, snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Categories", str(snapshot.category_count))
        metrics.add_row("Modules", str(snapshot.module_count))
        metrics.add_row("Videos", str(snapshot.video_count))
        metrics.add_row("Documents", str(snapshot.document_count))

        if snapshot.viewer is None or snapshot.overall is None:
            return Panel(metrics, title="At a glance", border_style="magenta", box=box.ROUNDED)

        stats = snapshot.overall.stats
        progress = Table.grid(expand=True, padding=(0, 1))
        progress.add_column(style="dim")
        progress.add_column(justify="right", style="bold")
        progress.add_row("Viewer", snapshot.viewer.name)
        progress.add_row("Overall", f"{stats.percentage}%")
        progress.add_row("Completed", f"{stats.completed_count}/{stats.video_count}")
        progress.add_row("In progress", str(stats.in_progress_count))
        progress.add_row("Watch time", format_duration(snapshot.overall.total_watch_time))

        body = Group(
            metrics,
            Rule(style="magenta"),
            progress,
            ProgressBar(total=100, completed=stats.percentage),
        )
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)


__all__ = ["ModernUI"]
