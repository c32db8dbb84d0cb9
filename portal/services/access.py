"""Visibility rules for videos under category and module grants.

A regular user sees a video when *either* grant applies:

* one of the video's categories is assigned to the user, or
* the video's module is assigned to the user.

The two mechanisms are independent, so a module grant can expose a video
whose categories are not assigned to the user. Administrators see everything.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .errors import NotFoundError
from .hierarchy import ModuleForest
from .storage import CategoryRecord, ModuleRecord, UserRecord, VideoRecord


def is_visible(video: VideoRecord, user: UserRecord) -> bool:
    if user.is_admin:
        return True
    if video.category_ids & user.assigned_categories:
        return True
    return video.module_id is not None and video.module_id in user.assigned_modules


def resolve_visible_videos(
    user: UserRecord,
    catalog: Iterable[VideoRecord],
    *,
    module_filter: Optional[int] = None,
    modules: Sequence[ModuleRecord] = (),
) -> List[VideoRecord]:
    """Return the videos of ``catalog`` that ``user`` may see.

    ``module_filter`` narrows the result to the selected module and its
    sub-modules; ``modules`` must then contain that module's forest. The
    filter is applied after the grants and never adds videos.
    """

    visible = [video for video in catalog if is_visible(video, user)]
    if module_filter is None:
        return visible

    forest = ModuleForest(modules)
    if module_filter not in forest:
        raise NotFoundError("module", module_filter)
    selected = forest.subtree_ids(module_filter)
    return [video for video in visible if video.module_id in selected]


def visible_categories(
    user: UserRecord,
    categories: Iterable[CategoryRecord],
    visible_videos: Iterable[VideoRecord],
) -> List[CategoryRecord]:
    """Return the categories the user can browse.

    Assigned categories always show up, even when empty. Other categories
    appear only when a visible video (reached through a module grant) belongs
    to them.
    """

    categories = list(categories)
    if user.is_admin:
        return categories
    reachable = set(user.assigned_categories)
    for video in visible_videos:
        reachable.update(video.category_ids)
    return [category for category in categories if category.id in reachable]


__all__ = ["is_visible", "resolve_visible_videos", "visible_categories"]
