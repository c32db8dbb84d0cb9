"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from ..config import AppConfig
from .errors import NotFoundError, ValidationError


class ContentKind(str, Enum):
    """Discriminant of the content item variant stored in ``videos``."""

    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def for_duration(cls, duration: float) -> "ContentKind":
        return cls.VIDEO if duration > 0 else cls.DOCUMENT


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    CLIENT = "client"


@dataclass
class CategoryRecord:
    id: int
    name: str
    description: str
    created_at: datetime


@dataclass
class ModuleRecord:
    id: int
    category_id: int
    parent_id: Optional[int]
    title: str
    description: str
    order: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass
class VideoRecord:
    """A content item: a playable video or a support document.

    ``kind`` is the discriminant; documents have no playable duration and
    only count through their completion flag.
    """

    id: int
    title: str
    duration: float
    kind: ContentKind
    category_ids: FrozenSet[int]
    module_id: Optional[int] = None

    @property
    def is_document(self) -> bool:
        return self.kind is ContentKind.DOCUMENT


@dataclass
class UserRecord:
    id: int
    name: str
    email: str
    role: UserRole
    assigned_categories: FrozenSet[int] = field(default_factory=frozenset)
    assigned_modules: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


@dataclass
class WatchRecord:
    user_id: int
    video_id: int
    watched_duration: float
    completed: bool
    last_watched_at: datetime


class ModuleStore(Protocol):
    """Record store consumed by the tree editor, order manager and guard.

    Implementations are plain keyed stores: no ordering or filtering logic
    beyond answering these calls. Misses are reported as ``None``/``False``.
    """

    def get_category(self, category_id: int) -> Optional[CategoryRecord]: ...

    def list_modules(self, category_id: int) -> List[ModuleRecord]: ...

    def get_module(self, module_id: int) -> Optional[ModuleRecord]: ...

    def insert_module(
        self,
        category_id: int,
        title: str,
        *,
        parent_id: Optional[int] = None,
        order: int = 0,
        description: str = "",
    ) -> ModuleRecord: ...

    def update_module(self, module_id: int, **fields: Any) -> Optional[ModuleRecord]: ...

    def delete_module(self, module_id: int) -> bool: ...

    def module_has_children(self, module_id: int) -> bool: ...

    def module_has_videos(self, module_id: int) -> bool: ...


_MISSING = object()


LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    """Fixed-width UTC text, so stored timestamps compare correctly as strings."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


class PortalRepository:
    """SQLite-backed store for categories, modules, videos, users and watch history."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting debug events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any):
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        error: BaseException | None = None
        try:
            yield event_payload
        except Exception as exc:
            error = exc
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if error is None:
                event_payload.setdefault("status", "ok")
            filtered = {
                key: value for key, value in event_payload.items() if value is not None
            }
            self._event_emitter(
                "DB_QUERY",
                action,
                payload=filtered,
                duration_ms=duration_ms,
            )

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:180] + ("…" if len(collapsed) > 180 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | Tuple[Any, ...] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...]
        if parameters is None:
            params = ()
        elif isinstance(parameters, tuple):
            params = parameters
        else:
            params = tuple(parameters)
        with self._track_db_event(
            action,
            table=table,
            sql=self._summarize_sql(statement),
            parameter_count=len(params),
        ) as event:
            cursor = connection.execute(statement, params)
            if cursor.rowcount >= 0:
                event.setdefault("rowcount", int(cursor.rowcount))
            return cursor

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction and close it afterwards."""

        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            self._execute(
                connection,
                "PRAGMA foreign_keys = ON",
                action="pragma_foreign_keys",
            )
            with connection:
                yield connection
        finally:
            connection.close()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def add_category(self, name: str, description: str = "") -> int:
        LOGGER.debug("Adding category '%s'", name)
        with self._track_db_event("add_category", table="categories", name=name) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    "INSERT INTO categories(name, description, created_at) VALUES (?, ?, ?)",
                    (name, description, _format_timestamp(_utcnow())),
                    action="categories.insert",
                    table="categories",
                )
                category_id = int(cursor.lastrowid)
                event["category_id"] = category_id
                LOGGER.debug("Category '%s' inserted with id=%s", name, category_id)
                return category_id

    def get_category(self, category_id: int) -> Optional[CategoryRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT id, name, description, created_at FROM categories WHERE id = ?",
                (category_id,),
                action="categories.get",
                table="categories",
            ).fetchone()
        return self._category_from_row(row) if row else None

    def iter_categories(self) -> Iterable[CategoryRecord]:
        with self._connect() as connection:
            rows = self._execute(
                connection,
                "SELECT id, name, description, created_at FROM categories ORDER BY name COLLATE NOCASE, id",
                action="categories.list",
                table="categories",
            ).fetchall()
        for row in rows:
            yield self._category_from_row(row)

    @staticmethod
    def _category_from_row(row: sqlite3.Row) -> CategoryRecord:
        return CategoryRecord(
            id=int(row["id"]),
            name=row["name"],
            description=row["description"] or "",
            created_at=_parse_timestamp(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Modules (tree store contract)
    # ------------------------------------------------------------------
    _MODULE_COLUMNS = (
        "id, category_id, parent_id, title, description, position, created_at, updated_at"
    )

    @staticmethod
    def _module_from_row(row: sqlite3.Row) -> ModuleRecord:
        parent_id = row["parent_id"]
        return ModuleRecord(
            id=int(row["id"]),
            category_id=int(row["category_id"]),
            parent_id=int(parent_id) if parent_id is not None else None,
            title=row["title"],
            description=row["description"] or "",
            order=int(row["position"]),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    def list_modules(self, category_id: int) -> List[ModuleRecord]:
        """Return every module of ``category_id`` in storage order."""

        with self._track_db_event("list_modules", table="modules", category_id=category_id) as event:
            with self._connect() as connection:
                rows = self._execute(
                    connection,
                    f"SELECT {self._MODULE_COLUMNS} FROM modules WHERE category_id = ? ORDER BY id",
                    (category_id,),
                    action="modules.list_by_category",
                    table="modules",
                ).fetchall()
            event["count"] = len(rows)
        return [self._module_from_row(row) for row in rows]

    def get_module(self, module_id: int) -> Optional[ModuleRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                f"SELECT {self._MODULE_COLUMNS} FROM modules WHERE id = ?",
                (module_id,),
                action="modules.get",
                table="modules",
            ).fetchone()
        if row is None:
            LOGGER.debug("Module id=%s not found", module_id)
            return None
        return self._module_from_row(row)

    def insert_module(
        self,
        category_id: int,
        title: str,
        *,
        parent_id: Optional[int] = None,
        order: int = 0,
        description: str = "",
    ) -> ModuleRecord:
        timestamp = _format_timestamp(_utcnow())
        with self._track_db_event(
            "insert_module",
            table="modules",
            category_id=category_id,
            parent_id=parent_id,
            order=order,
        ) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    """
                    INSERT INTO modules(
                        category_id, parent_id, title, description, position, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (category_id, parent_id, title, description, order, timestamp, timestamp),
                    action="modules.insert",
                    table="modules",
                )
                module_id = int(cursor.lastrowid)
                row = self._execute(
                    connection,
                    f"SELECT {self._MODULE_COLUMNS} FROM modules WHERE id = ?",
                    (module_id,),
                    action="modules.get",
                    table="modules",
                ).fetchone()
            event["module_id"] = module_id
        LOGGER.debug(
            "Module '%s' inserted with id=%s (category_id=%s parent_id=%s order=%s)",
            title,
            module_id,
            category_id,
            parent_id,
            order,
        )
        return self._module_from_row(row)

    def update_module(
        self,
        module_id: int,
        *,
        title: str | object = _MISSING,
        description: str | object = _MISSING,
        order: int | object = _MISSING,
    ) -> Optional[ModuleRecord]:
        """Update the provided fields of a module.

        Omitted fields are left untouched. Returns ``None`` when the module
        does not exist.
        """

        assignments: List[str] = []
        params: List[Any] = []
        if title is not _MISSING:
            assignments.append("title = ?")
            params.append(title)
        if description is not _MISSING:
            assignments.append("description = ?")
            params.append(description)
        if order is not _MISSING:
            assignments.append("position = ?")
            params.append(order)

        with self._track_db_event(
            "update_module", table="modules", module_id=module_id, changes=len(assignments)
        ) as event:
            with self._connect() as connection:
                if assignments:
                    assignments.append("updated_at = ?")
                    params.extend([_format_timestamp(_utcnow()), module_id])
                    self._execute(
                        connection,
                        "UPDATE modules SET " + ", ".join(assignments) + " WHERE id = ?",
                        params,
                        action="modules.update",
                        table="modules",
                    )
                row = self._execute(
                    connection,
                    f"SELECT {self._MODULE_COLUMNS} FROM modules WHERE id = ?",
                    (module_id,),
                    action="modules.get",
                    table="modules",
                ).fetchone()
            if row is None:
                LOGGER.debug("Skipping update for missing module id=%s", module_id)
                event["result"] = "missing"
                return None
            event["result"] = "updated" if assignments else "no_changes"
        return self._module_from_row(row)

    def delete_module(self, module_id: int) -> bool:
        LOGGER.debug("Removing module id=%s", module_id)
        with self._track_db_event("delete_module", table="modules", module_id=module_id) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    "DELETE FROM modules WHERE id = ?",
                    (module_id,),
                    action="modules.delete",
                    table="modules",
                )
                deleted = cursor.rowcount > 0
            event["result"] = "deleted" if deleted else "missing"
        return deleted

    def module_has_children(self, module_id: int) -> bool:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT 1 FROM modules WHERE parent_id = ? LIMIT 1",
                (module_id,),
                action="modules.has_children",
                table="modules",
            ).fetchone()
        return row is not None

    def module_has_videos(self, module_id: int) -> bool:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT 1 FROM videos WHERE module_id = ? LIMIT 1",
                (module_id,),
                action="videos.has_module",
                table="videos",
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------
    def add_video(
        self,
        title: str,
        *,
        category_ids: Iterable[int],
        duration: float = 0,
        module_id: Optional[int] = None,
        kind: Optional[ContentKind] = None,
    ) -> int:
        categories = sorted(set(category_ids))
        if not title or not title.strip():
            raise ValidationError("Video title is required")
        if not categories:
            raise ValidationError("A video must belong to at least one category")
        if duration < 0:
            raise ValidationError("Video duration cannot be negative")
        resolved_kind = kind if kind is not None else ContentKind.for_duration(duration)

        with self._track_db_event(
            "add_video",
            table="videos",
            module_id=module_id,
            category_count=len(categories),
            kind=resolved_kind.value,
        ) as event:
            with self._connect() as connection:
                for category_id in categories:
                    self._require_row(connection, "categories", "category", category_id)
                if module_id is not None:
                    self._require_row(connection, "modules", "module", module_id)
                cursor = self._execute(
                    connection,
                    "INSERT INTO videos(title, duration, kind, module_id, created_at) VALUES (?, ?, ?, ?, ?)",
                    (title.strip(), float(duration), resolved_kind.value, module_id, _format_timestamp(_utcnow())),
                    action="videos.insert",
                    table="videos",
                )
                video_id = int(cursor.lastrowid)
                for category_id in categories:
                    self._execute(
                        connection,
                        "INSERT INTO video_categories(video_id, category_id) VALUES (?, ?)",
                        (video_id, category_id),
                        action="video_categories.insert",
                        table="video_categories",
                    )
            event["video_id"] = video_id
        LOGGER.debug("Video '%s' inserted with id=%s", title, video_id)
        return video_id

    def _require_row(self, connection: sqlite3.Connection, table: str, kind: str, row_id: int) -> None:
        row = self._execute(
            connection,
            f"SELECT 1 FROM {table} WHERE id = ?",
            (row_id,),
            action=f"{table}.exists",
            table=table,
        ).fetchone()
        if row is None:
            raise NotFoundError(kind, row_id)

    def _load_videos(self, where: str = "", parameters: Tuple[Any, ...] = ()) -> List[VideoRecord]:
        with self._connect() as connection:
            rows = self._execute(
                connection,
                f"SELECT id, title, duration, kind, module_id FROM videos{where} ORDER BY id",
                parameters,
                action="videos.list",
                table="videos",
            ).fetchall()
            memberships = self._execute(
                connection,
                "SELECT video_id, category_id FROM video_categories"
                + (f" WHERE video_id IN (SELECT id FROM videos{where})" if where else ""),
                parameters,
                action="video_categories.list",
                table="video_categories",
            ).fetchall()

        categories_by_video: Dict[int, set[int]] = {}
        for membership in memberships:
            categories_by_video.setdefault(int(membership["video_id"]), set()).add(
                int(membership["category_id"])
            )

        videos: List[VideoRecord] = []
        for row in rows:
            video_id = int(row["id"])
            module_id = row["module_id"]
            videos.append(
                VideoRecord(
                    id=video_id,
                    title=row["title"],
                    duration=float(row["duration"]),
                    kind=ContentKind(row["kind"]),
                    category_ids=frozenset(categories_by_video.get(video_id, ())),
                    module_id=int(module_id) if module_id is not None else None,
                )
            )
        return videos

    def get_video(self, video_id: int) -> Optional[VideoRecord]:
        videos = self._load_videos(" WHERE id = ?", (video_id,))
        return videos[0] if videos else None

    def iter_videos(self) -> Iterable[VideoRecord]:
        yield from self._load_videos()

    def update_video_module(self, video_id: int, module_id: Optional[int]) -> Optional[VideoRecord]:
        """Attach ``video_id`` to ``module_id`` (``None`` detaches it)."""

        with self._track_db_event(
            "update_video_module", table="videos", video_id=video_id, module_id=module_id
        ) as event:
            with self._connect() as connection:
                if module_id is not None:
                    self._require_row(connection, "modules", "module", module_id)
                cursor = self._execute(
                    connection,
                    "UPDATE videos SET module_id = ? WHERE id = ?",
                    (module_id, video_id),
                    action="videos.update_module",
                    table="videos",
                )
                updated = cursor.rowcount > 0
            event["result"] = "updated" if updated else "missing"
        return self.get_video(video_id) if updated else None

    def remove_video(self, video_id: int) -> bool:
        LOGGER.debug("Removing video id=%s", video_id)
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM videos WHERE id = ?",
                (video_id,),
                action="videos.delete",
                table="videos",
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Users and grants
    # ------------------------------------------------------------------
    def add_user(self, name: str, email: str, role: UserRole = UserRole.USER) -> int:
        LOGGER.debug("Adding user '%s' with role=%s", email, role.value)
        with self._track_db_event("add_user", table="users", role=role.value) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    "INSERT INTO users(name, email, role, created_at) VALUES (?, ?, ?, ?)",
                    (name, email, role.value, _format_timestamp(_utcnow())),
                    action="users.insert",
                    table="users",
                )
                user_id = int(cursor.lastrowid)
            event["user_id"] = user_id
        return user_id

    def _user_from_row(self, connection: sqlite3.Connection, row: sqlite3.Row) -> UserRecord:
        user_id = int(row["id"])
        categories = self._execute(
            connection,
            "SELECT category_id FROM user_categories WHERE user_id = ?",
            (user_id,),
            action="user_categories.list",
            table="user_categories",
        ).fetchall()
        modules = self._execute(
            connection,
            "SELECT module_id FROM user_modules WHERE user_id = ?",
            (user_id,),
            action="user_modules.list",
            table="user_modules",
        ).fetchall()
        return UserRecord(
            id=user_id,
            name=row["name"],
            email=row["email"],
            role=UserRole(row["role"]),
            assigned_categories=frozenset(int(item["category_id"]) for item in categories),
            assigned_modules=frozenset(int(item["module_id"]) for item in modules),
        )

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT id, name, email, role FROM users WHERE id = ?",
                (user_id,),
                action="users.get",
                table="users",
            ).fetchone()
            if row is None:
                LOGGER.debug("User id=%s not found", user_id)
                return None
            return self._user_from_row(connection, row)

    def iter_users(self) -> Iterable[UserRecord]:
        with self._connect() as connection:
            rows = self._execute(
                connection,
                "SELECT id, name, email, role FROM users ORDER BY name COLLATE NOCASE, id",
                action="users.list",
                table="users",
            ).fetchall()
            users = [self._user_from_row(connection, row) for row in rows]
        yield from users

    def _set_grant(self, table: str, column: str, user_id: int, target_id: int, *, granted: bool) -> None:
        if granted:
            statement = f"INSERT OR IGNORE INTO {table}(user_id, {column}) VALUES (?, ?)"
            action = f"{table}.grant"
        else:
            statement = f"DELETE FROM {table} WHERE user_id = ? AND {column} = ?"
            action = f"{table}.revoke"
        with self._track_db_event(action, table=table, user_id=user_id, target_id=target_id):
            with self._connect() as connection:
                self._execute(connection, statement, (user_id, target_id), action=action, table=table)

    def grant_category(self, user_id: int, category_id: int) -> None:
        self._set_grant("user_categories", "category_id", user_id, category_id, granted=True)

    def revoke_category(self, user_id: int, category_id: int) -> None:
        self._set_grant("user_categories", "category_id", user_id, category_id, granted=False)

    def grant_module(self, user_id: int, module_id: int) -> None:
        self._set_grant("user_modules", "module_id", user_id, module_id, granted=True)

    def revoke_module(self, user_id: int, module_id: int) -> None:
        self._set_grant("user_modules", "module_id", user_id, module_id, granted=False)

    # ------------------------------------------------------------------
    # Watch history
    # ------------------------------------------------------------------
    @staticmethod
    def _watch_from_row(row: sqlite3.Row) -> WatchRecord:
        return WatchRecord(
            user_id=int(row["user_id"]),
            video_id=int(row["video_id"]),
            watched_duration=float(row["watched_duration"]),
            completed=bool(row["completed"]),
            last_watched_at=_parse_timestamp(row["last_watched_at"]),
        )

    def record_watch(
        self,
        user_id: int,
        video_id: int,
        watched_duration: float,
        completed: bool = False,
        *,
        watched_at: Optional[datetime] = None,
    ) -> WatchRecord:
        """Insert or merge the watch record of ``(user_id, video_id)``.

        The watched duration never decreases, a completed record stays
        completed and the last-watched time only moves forward, whatever the
        order in which updates arrive.
        """

        watched = max(0.0, float(watched_duration))
        timestamp = _format_timestamp(watched_at or _utcnow())
        with self._track_db_event(
            "record_watch",
            table="watch_records",
            user_id=user_id,
            video_id=video_id,
            completed=bool(completed),
        ):
            with self._connect() as connection:
                self._execute(
                    connection,
                    """
                    INSERT INTO watch_records(user_id, video_id, watched_duration, completed, last_watched_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, video_id) DO UPDATE SET
                        watched_duration = MAX(watch_records.watched_duration, excluded.watched_duration),
                        completed = watch_records.completed OR excluded.completed,
                        last_watched_at = MAX(watch_records.last_watched_at, excluded.last_watched_at)
                    """,
                    (user_id, video_id, watched, int(bool(completed)), timestamp),
                    action="watch_records.upsert",
                    table="watch_records",
                )
                row = self._execute(
                    connection,
                    "SELECT user_id, video_id, watched_duration, completed, last_watched_at"
                    " FROM watch_records WHERE user_id = ? AND video_id = ?",
                    (user_id, video_id),
                    action="watch_records.get",
                    table="watch_records",
                ).fetchone()
        return self._watch_from_row(row)

    def get_watch_record(self, user_id: int, video_id: int) -> Optional[WatchRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT user_id, video_id, watched_duration, completed, last_watched_at"
                " FROM watch_records WHERE user_id = ? AND video_id = ?",
                (user_id, video_id),
                action="watch_records.get",
                table="watch_records",
            ).fetchone()
        return self._watch_from_row(row) if row else None

    def list_watch_records(self, user_id: int) -> List[WatchRecord]:
        with self._connect() as connection:
            rows = self._execute(
                connection,
                "SELECT user_id, video_id, watched_duration, completed, last_watched_at"
                " FROM watch_records WHERE user_id = ? ORDER BY last_watched_at DESC",
                (user_id,),
                action="watch_records.list",
                table="watch_records",
            ).fetchall()
        return [self._watch_from_row(row) for row in rows]


__all__ = [
    "CategoryRecord",
    "ContentKind",
    "ModuleRecord",
    "ModuleStore",
    "PortalRepository",
    "UserRecord",
    "UserRole",
    "VideoRecord",
    "WatchRecord",
]
