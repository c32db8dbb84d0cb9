from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from portal.services.errors import NotFoundError
from portal.services.hierarchy import ModuleForest, sort_siblings
from portal.services.storage import ModuleRecord


_STAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _module(module_id: int, title: str, *, parent_id: Optional[int] = None, order: int = 0) -> ModuleRecord:
    return ModuleRecord(
        id=module_id,
        category_id=1,
        parent_id=parent_id,
        title=title,
        description="",
        order=order,
        created_at=_STAMP,
        updated_at=_STAMP,
    )


@pytest.fixture()
def forest() -> ModuleForest:
    return ModuleForest(
        [
            _module(1, "Basics", order=1),
            _module(2, "Advanced", order=0),
            _module(3, "Setup", parent_id=1, order=0),
            _module(4, "First run", parent_id=1, order=1),
            _module(5, "Config files", parent_id=3, order=0),
        ]
    )


def test_siblings_sort_by_order_then_title_then_id() -> None:
    modules = [
        _module(7, "beta", order=1),
        _module(3, "Alpha", order=1),
        _module(9, "zeta", order=0),
        _module(2, "alpha", order=1),
    ]

    assert [module.id for module in sort_siblings(modules)] == [9, 2, 3, 7]


def test_sibling_order_is_stable_across_input_permutations() -> None:
    modules = [_module(1, "Same", order=0), _module(2, "Same", order=0), _module(3, "Other", order=0)]

    assert [m.id for m in sort_siblings(modules)] == [m.id for m in sort_siblings(reversed(modules))]


def test_walk_yields_parents_before_children(forest: ModuleForest) -> None:
    views = list(forest.walk())

    assert [(view.record.id, view.depth) for view in views] == [
        (2, 0),
        (1, 0),
        (3, 1),
        (5, 2),
        (4, 1),
    ]
    assert views[0].is_first and not views[0].is_last
    assert views[1].is_last


def test_post_order_lists_children_first(forest: ModuleForest) -> None:
    assert [module.id for module in forest.post_order()] == [2, 5, 3, 4, 1]


def test_subtree_and_path(forest: ModuleForest) -> None:
    assert forest.subtree_ids(1) == {1, 3, 4, 5}
    assert forest.subtree_ids(5) == {5}
    assert [module.title for module in forest.path(5)] == ["Basics", "Setup", "Config files"]


def test_search_is_case_insensitive_in_walk_order(forest: ModuleForest) -> None:
    assert [module.id for module in forest.search("CONFIG")] == [5]
    assert [module.id for module in forest.search("s")] == [1, 3, 5, 4]
    assert len(forest.search("  ")) == len(forest)


def test_unknown_module_raises(forest: ModuleForest) -> None:
    assert 42 not in forest
    with pytest.raises(NotFoundError):
        forest.get(42)
    with pytest.raises(NotFoundError):
        forest.subtree_ids(42)


def test_deep_chain_is_traversed_without_recursion_limits() -> None:
    depth = 1500
    chain = [_module(1, "Level 0")] + [
        _module(level + 1, f"Level {level}", parent_id=level) for level in range(1, depth)
    ]
    forest = ModuleForest(chain)

    views = list(forest.walk())
    post_order = forest.post_order()

    assert [view.depth for view in views] == list(range(depth))
    assert [module.id for module in post_order] == list(range(depth, 0, -1))
    assert len(forest.path(depth)) == depth
    assert len(forest.subtree_ids(1)) == depth
