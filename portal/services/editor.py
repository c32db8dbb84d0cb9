"""Administrative editing of module forests."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .errors import NotFoundError, ValidationError
from .guard import check_can_delete
from .storage import ModuleRecord, ModuleStore


LOGGER = logging.getLogger(__name__)


def _require_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Module title is required")
    return cleaned


def _next_order(siblings: Iterable[ModuleRecord]) -> int:
    orders = [module.order for module in siblings]
    return max(orders) + 1 if orders else 0


class TreeEditor:
    """Create, rename and delete module nodes through a :class:`ModuleStore`."""

    def __init__(self, store: ModuleStore) -> None:
        self._store = store

    def create_root(self, category_id: int, title: str, description: str = "") -> ModuleRecord:
        cleaned = _require_title(title)
        if self._store.get_category(category_id) is None:
            raise NotFoundError("category", category_id)

        roots = [module for module in self._store.list_modules(category_id) if module.is_root]
        order = _next_order(roots)
        module = self._store.insert_module(
            category_id,
            cleaned,
            parent_id=None,
            order=order,
            description=description.strip(),
        )
        LOGGER.info(
            "Created root module id=%s '%s' in category_id=%s at order=%s",
            module.id,
            cleaned,
            category_id,
            order,
        )
        return module

    def create_child(self, parent_id: int, title: str, description: str = "") -> ModuleRecord:
        cleaned = _require_title(title)
        parent = self._require(parent_id)

        children = [
            module
            for module in self._store.list_modules(parent.category_id)
            if module.parent_id == parent.id
        ]
        order = _next_order(children)
        module = self._store.insert_module(
            parent.category_id,
            cleaned,
            parent_id=parent.id,
            order=order,
            description=description.strip(),
        )
        LOGGER.info(
            "Created module id=%s '%s' under parent_id=%s at order=%s",
            module.id,
            cleaned,
            parent.id,
            order,
        )
        return module

    def rename(self, module_id: int, new_title: str) -> ModuleRecord:
        cleaned = _require_title(new_title)
        updated = self._store.update_module(module_id, title=cleaned)
        if updated is None:
            raise NotFoundError("module", module_id)
        LOGGER.info("Renamed module id=%s to '%s'", module_id, cleaned)
        return updated

    def describe(self, module_id: int, description: str) -> ModuleRecord:
        updated = self._store.update_module(module_id, description=(description or "").strip())
        if updated is None:
            raise NotFoundError("module", module_id)
        return updated

    def delete(self, module_id: int) -> ModuleRecord:
        """Delete an empty module and return the removed record.

        Raises :class:`HasChildrenError` or :class:`HasVideosError` without
        touching the store when the module is still in use.
        """

        module = self._require(module_id)
        check_can_delete(self._store, module_id)
        if not self._store.delete_module(module_id):
            raise NotFoundError("module", module_id)
        LOGGER.info("Deleted module id=%s from category_id=%s", module_id, module.category_id)
        return module

    def _require(self, module_id: int) -> ModuleRecord:
        module = self._store.get_module(module_id)
        if module is None:
            raise NotFoundError("module", module_id)
        return module


__all__ = ["TreeEditor"]
