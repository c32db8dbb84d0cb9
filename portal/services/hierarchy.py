"""Read-only views over a category's module forest.

The forest is kept as the flat list of :class:`ModuleRecord` returned by the
store, indexed by id. Parent/child relationships are derived on demand from
``parent_id`` back-references instead of building linked node objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import NotFoundError
from .storage import ModuleRecord


def sibling_sort_key(module: ModuleRecord) -> Tuple[int, str, int]:
    """Canonical display order: ``order``, then title (case-insensitive), then id."""

    return (module.order, module.title.casefold(), module.id)


def sort_siblings(modules: Iterable[ModuleRecord]) -> List[ModuleRecord]:
    return sorted(modules, key=sibling_sort_key)


@dataclass
class ModuleNodeView:
    """A module positioned in the forest, as yielded by :meth:`ModuleForest.walk`."""

    record: ModuleRecord
    depth: int
    index: int
    sibling_count: int

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return self.index == self.sibling_count - 1


class ModuleForest:
    """Index over the modules of a single category.

    Traversals keep their own stacks, so forests of any depth are walked
    without recursion.
    """

    def __init__(self, modules: Sequence[ModuleRecord]) -> None:
        self._modules: List[ModuleRecord] = list(modules)
        self._by_id: Dict[int, ModuleRecord] = {module.id: module for module in self._modules}
        grouped: Dict[Optional[int], List[ModuleRecord]] = {}
        for module in self._modules:
            grouped.setdefault(module.parent_id, []).append(module)
        self._children: Dict[Optional[int], List[ModuleRecord]] = {
            parent_id: sort_siblings(group) for parent_id, group in grouped.items()
        }

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._by_id

    def get(self, module_id: int) -> ModuleRecord:
        try:
            return self._by_id[module_id]
        except KeyError:
            raise NotFoundError("module", module_id) from None

    def roots(self) -> List[ModuleRecord]:
        return self.children(None)

    def children(self, parent_id: Optional[int]) -> List[ModuleRecord]:
        return list(self._children.get(parent_id, ()))

    def siblings(self, module: ModuleRecord) -> List[ModuleRecord]:
        """Return the sibling group of ``module`` (itself included) in display order."""

        return [
            candidate
            for candidate in self._children.get(module.parent_id, ())
            if candidate.category_id == module.category_id
        ]

    def walk(self) -> Iterator[ModuleNodeView]:
        """Yield modules depth-first in display order (parents before children)."""

        seen: Set[int] = set()
        roots = self._children.get(None, [])
        pending: List[ModuleNodeView] = [
            ModuleNodeView(module, 0, index, len(roots))
            for index, module in reversed(list(enumerate(roots)))
        ]
        while pending:
            view = pending.pop()
            if view.record.id in seen:
                continue
            seen.add(view.record.id)
            yield view
            group = self._children.get(view.record.id, [])
            pending.extend(
                ModuleNodeView(child, view.depth + 1, index, len(group))
                for index, child in reversed(list(enumerate(group)))
            )

    def post_order(self) -> List[ModuleRecord]:
        """Return modules with every child listed before its parent."""

        ordered: List[ModuleRecord] = []
        seen: Set[int] = set()
        pending: List[Tuple[ModuleRecord, bool]] = [
            (root, False) for root in reversed(self._children.get(None, []))
        ]
        while pending:
            module, expanded = pending.pop()
            if expanded:
                ordered.append(module)
                continue
            if module.id in seen:
                continue
            seen.add(module.id)
            pending.append((module, True))
            pending.extend(
                (child, False)
                for child in reversed(self._children.get(module.id, []))
                if child.id not in seen
            )
        return ordered

    def subtree_ids(self, module_id: int) -> Set[int]:
        """Return ``module_id`` and the ids of all its descendants."""

        self.get(module_id)
        collected: Set[int] = set()
        pending = [module_id]
        while pending:
            current = pending.pop()
            if current in collected:
                continue
            collected.add(current)
            pending.extend(child.id for child in self._children.get(current, ()))
        return collected

    def path(self, module_id: int) -> List[ModuleRecord]:
        """Return the chain of modules from the root down to ``module_id``."""

        chain: List[ModuleRecord] = []
        seen: Set[int] = set()
        current: Optional[ModuleRecord] = self.get(module_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            chain.append(current)
            if current.parent_id is None:
                break
            current = self._by_id.get(current.parent_id)
        chain.reverse()
        return chain

    def search(self, term: str) -> List[ModuleRecord]:
        """Return modules whose title contains ``term`` (case-insensitive), in walk order."""

        needle = term.strip().casefold()
        if not needle:
            return [view.record for view in self.walk()]
        return [view.record for view in self.walk() if needle in view.record.title.casefold()]


__all__ = ["ModuleForest", "ModuleNodeView", "sibling_sort_key", "sort_siblings"]
