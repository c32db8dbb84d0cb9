"""Sibling reordering for module forests."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Union

from .errors import NotFoundError, PartialOrderSwapError, ValidationError
from .hierarchy import ModuleForest
from .storage import ModuleRecord, ModuleStore


LOGGER = logging.getLogger(__name__)


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: Union[str, "MoveDirection"]) -> "MoveDirection":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown move direction '{value}'") from None


class OrderManager:
    """Move modules within their sibling group by exchanging ``order`` values.

    Only the two nodes involved are written; every other sibling keeps its
    order. The exchange is two independent updates and is not atomic.
    """

    def __init__(self, store: ModuleStore) -> None:
        self._store = store

    def move(self, module_id: int, direction: Union[str, MoveDirection]) -> ModuleRecord:
        """Swap ``module_id`` with its neighbour in display order.

        Moving the first node up or the last node down is a no-op that
        returns the node unchanged without writing anything.
        """

        step = -1 if MoveDirection.parse(direction) is MoveDirection.UP else 1
        module = self._require(module_id)
        siblings = ModuleForest(self._store.list_modules(module.category_id)).siblings(module)
        index = next(
            (position for position, candidate in enumerate(siblings) if candidate.id == module.id),
            None,
        )
        if index is None:
            raise NotFoundError("module", module_id)

        target_index = index + step
        if target_index < 0 or target_index >= len(siblings):
            LOGGER.debug(
                "Module id=%s already at sibling boundary (index=%s of %s); nothing to move",
                module_id,
                index,
                len(siblings),
            )
            return module

        return self._exchange(siblings[index], siblings[target_index])

    def swap_with(self, module_id: int, target_id: int) -> ModuleRecord:
        """Exchange orders of two arbitrary siblings (drag-and-drop reordering)."""

        module = self._require(module_id)
        if module_id == target_id:
            return module
        target = self._require(target_id)
        if module.category_id != target.category_id or module.parent_id != target.parent_id:
            raise ValidationError(
                f"Modules {module_id} and {target_id} are not siblings and cannot be swapped"
            )
        return self._exchange(module, target)

    def _require(self, module_id: int) -> ModuleRecord:
        module = self._store.get_module(module_id)
        if module is None:
            raise NotFoundError("module", module_id)
        return module

    def _exchange(self, module: ModuleRecord, target: ModuleRecord) -> ModuleRecord:
        LOGGER.info(
            "Swapping order of module id=%s (order=%s) with module id=%s (order=%s)",
            module.id,
            module.order,
            target.id,
            target.order,
        )
        updated = self._store.update_module(module.id, order=target.order)
        if updated is None:
            raise NotFoundError("module", module.id)

        try:
            counterpart = self._store.update_module(target.id, order=module.order)
        except Exception as error:
            LOGGER.error(
                "Order swap between module id=%s and id=%s failed after the first write",
                module.id,
                target.id,
            )
            raise PartialOrderSwapError(
                module.id,
                target.id,
                module_order=module.order,
                target_order=target.order,
                cause=error,
            ) from error
        if counterpart is None:
            LOGGER.error(
                "Module id=%s vanished during order swap with module id=%s",
                target.id,
                module.id,
            )
            raise PartialOrderSwapError(
                module.id,
                target.id,
                module_order=module.order,
                target_order=target.order,
            )
        return updated


__all__ = ["MoveDirection", "OrderManager"]
