"""Structural checks run before a module is deleted."""

from __future__ import annotations

from .errors import DeletionBlockedError, HasChildrenError, HasVideosError
from .storage import ModuleStore


def check_can_delete(store: ModuleStore, module_id: int) -> None:
    """Raise when ``module_id`` still has sub-modules or attached videos.

    Both checks are existence queries. They run before, and separately from,
    the delete itself, so a concurrent writer can still attach something in
    between.
    """

    if store.module_has_children(module_id):
        raise HasChildrenError(module_id)
    if store.module_has_videos(module_id):
        raise HasVideosError(module_id)


def can_delete(store: ModuleStore, module_id: int) -> bool:
    try:
        check_can_delete(store, module_id)
    except DeletionBlockedError:
        return False
    return True


__all__ = ["can_delete", "check_can_delete"]
