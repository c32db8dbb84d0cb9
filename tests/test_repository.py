from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from portal.services.errors import NotFoundError, ValidationError
from portal.services.storage import ContentKind, PortalRepository, UserRole


def test_module_crud_cycle(repository: PortalRepository) -> None:
    category_id = repository.add_category("Onboarding", "First steps")
    root = repository.insert_module(category_id, "Welcome", order=0, description="Start here")
    child = repository.insert_module(category_id, "Tools", parent_id=root.id, order=0)

    assert root.is_root
    assert child.parent_id == root.id
    assert repository.get_module(root.id).description == "Start here"
    assert [module.id for module in repository.list_modules(category_id)] == [root.id, child.id]

    assert repository.module_has_children(root.id)
    assert not repository.module_has_children(child.id)

    updated = repository.update_module(child.id, title="Tooling", order=3)
    assert updated is not None
    assert updated.title == "Tooling"
    assert updated.order == 3
    assert updated.description == ""

    assert repository.delete_module(child.id)
    assert repository.get_module(child.id) is None
    assert not repository.delete_module(child.id)


def test_update_missing_module_returns_none(repository: PortalRepository) -> None:
    assert repository.update_module(999, title="Ghost") is None


def test_update_without_fields_leaves_module_untouched(repository: PortalRepository) -> None:
    category_id = repository.add_category("Sales")
    module = repository.insert_module(category_id, "Pitching", order=2)

    unchanged = repository.update_module(module.id)

    assert unchanged == module


def test_videos_track_categories_module_and_kind(repository: PortalRepository) -> None:
    first = repository.add_category("Security")
    second = repository.add_category("Compliance")
    module = repository.insert_module(first, "Passwords")

    video_id = repository.add_video(
        "Password managers", category_ids=[first, second], duration=120, module_id=module.id
    )
    document_id = repository.add_video("Policy PDF", category_ids=[second])

    video = repository.get_video(video_id)
    document = repository.get_video(document_id)
    assert video.category_ids == frozenset({first, second})
    assert video.kind is ContentKind.VIDEO
    assert video.module_id == module.id
    assert document.kind is ContentKind.DOCUMENT
    assert document.is_document
    assert repository.module_has_videos(module.id)

    detached = repository.update_video_module(video_id, None)
    assert detached.module_id is None
    assert not repository.module_has_videos(module.id)

    assert repository.remove_video(document_id)
    assert repository.get_video(document_id) is None


@pytest.mark.parametrize(
    "title, categories, duration",
    [("", [1], 10), ("Intro", [], 10), ("Intro", [1], -5)],
)
def test_add_video_rejects_invalid_input(
    repository: PortalRepository, title, categories, duration
) -> None:
    repository.add_category("Any")

    with pytest.raises(ValidationError):
        repository.add_video(title, category_ids=categories, duration=duration)


def test_users_and_grants(repository: PortalRepository) -> None:
    category_id = repository.add_category("Finance")
    module = repository.insert_module(category_id, "Budgets")
    user_id = repository.add_user("Ada", "ada@example.com")
    admin_id = repository.add_user("Root", "root@example.com", UserRole.ADMIN)

    repository.grant_category(user_id, category_id)
    repository.grant_category(user_id, category_id)
    repository.grant_module(user_id, module.id)

    user = repository.get_user(user_id)
    assert user.assigned_categories == frozenset({category_id})
    assert user.assigned_modules == frozenset({module.id})
    assert not user.is_admin
    assert repository.get_user(admin_id).is_admin

    repository.revoke_category(user_id, category_id)
    repository.revoke_module(user_id, module.id)
    user = repository.get_user(user_id)
    assert not user.assigned_categories
    assert not user.assigned_modules
    assert [record.name for record in repository.iter_users()] == ["Ada", "Root"]


def test_record_watch_merges_progress(repository: PortalRepository) -> None:
    category_id = repository.add_category("Ops")
    video_id = repository.add_video("Deploys", category_ids=[category_id], duration=100)
    user_id = repository.add_user("Lin", "lin@example.com")

    repository.record_watch(user_id, video_id, 60, completed=True)
    merged = repository.record_watch(user_id, video_id, 20, completed=False)

    assert merged.watched_duration == 60
    assert merged.completed is True
    assert repository.get_watch_record(user_id, video_id) == merged


def test_watch_records_listed_most_recent_first(repository: PortalRepository) -> None:
    category_id = repository.add_category("Ops")
    first = repository.add_video("One", category_ids=[category_id], duration=10)
    second = repository.add_video("Two", category_ids=[category_id], duration=10)
    user_id = repository.add_user("Lin", "lin@example.com")
    earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)

    repository.record_watch(user_id, first, 5, watched_at=earlier + timedelta(hours=1))
    repository.record_watch(user_id, second, 5, watched_at=earlier)

    assert [record.video_id for record in repository.list_watch_records(user_id)] == [first, second]


def test_foreign_keys_block_deleting_referenced_module(repository: PortalRepository) -> None:
    category_id = repository.add_category("Legal")
    module = repository.insert_module(category_id, "Contracts")
    repository.add_video("NDA basics", category_ids=[category_id], duration=30, module_id=module.id)

    with pytest.raises(sqlite3.IntegrityError):
        repository.delete_module(module.id)

    assert repository.get_module(module.id) is not None


def test_repository_emits_db_events(temp_config) -> None:
    events = []
    repository = PortalRepository(
        temp_config,
        event_emitter=lambda event_type, message, **kwargs: events.append(
            (event_type, message, kwargs)
        ),
    )

    repository.add_category("Events")

    actions = [message for event_type, message, _ in events if event_type == "DB_QUERY"]
    assert "categories.insert" in actions
    assert "add_category" in actions
    summary = next(kwargs for _, message, kwargs in events if message == "add_category")
    assert summary["payload"]["status"] == "ok"
    assert summary["duration_ms"] >= 0


def test_late_watch_update_keeps_latest_timestamp(repository: PortalRepository) -> None:
    category_id = repository.add_category("Ops")
    video_id = repository.add_video("Deploys", category_ids=[category_id], duration=100)
    user_id = repository.add_user("Lin", "lin@example.com")
    latest = datetime(2024, 3, 1, 12, 0, 0, 500000, tzinfo=timezone.utc)

    repository.record_watch(user_id, video_id, 40, watched_at=latest)
    merged = repository.record_watch(user_id, video_id, 70, watched_at=latest - timedelta(days=2))

    assert merged.last_watched_at == latest
    assert merged.watched_duration == 70


def test_video_references_must_exist(repository: PortalRepository) -> None:
    category_id = repository.add_category("Ops")
    video_id = repository.add_video("Deploys", category_ids=[category_id], duration=100)

    with pytest.raises(NotFoundError) as excinfo:
        repository.add_video("Orphan", category_ids=[category_id, 999], duration=10)
    assert excinfo.value.kind == "category"
    with pytest.raises(NotFoundError):
        repository.add_video("Orphan", category_ids=[category_id], duration=10, module_id=999)
    with pytest.raises(NotFoundError):
        repository.update_video_module(video_id, 999)

    assert [video.title for video in repository.iter_videos()] == ["Deploys"]
    assert repository.get_video(video_id).module_id is None


def test_get_video_reads_only_its_own_memberships(temp_config) -> None:
    events = []
    repository = PortalRepository(
        temp_config,
        event_emitter=lambda event_type, message, **kwargs: events.append((message, kwargs)),
    )
    first = repository.add_category("First")
    second = repository.add_category("Second")
    wanted = repository.add_video("Wanted", category_ids=[first, second], duration=10)
    repository.add_video("Other", category_ids=[first], duration=10)
    repository.add_video("Another", category_ids=[second], duration=10)
    events.clear()

    video = repository.get_video(wanted)

    assert video.category_ids == frozenset({first, second})
    membership_query = next(
        kwargs["payload"] for message, kwargs in events if message == "video_categories.list"
    )
    assert "WHERE video_id IN" in membership_query["sql"]
    assert membership_query["parameter_count"] == 1
