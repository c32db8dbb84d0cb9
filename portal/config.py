"""Where the portal keeps its files.

``config/default.json`` names a storage directory and a database file, both
relative to the project root. When either location cannot be written, the
portal moves into ``~/.training_portal/storage`` instead of failing at start.
"""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


LOGGER = logging.getLogger(__name__)

_WRITE_CHECK_NAME = ".training_portal_write_check"


def _fallback_storage() -> Path:
    return Path.home() / ".training_portal" / "storage"


def _ensure_writable_directory(path: Path) -> bool:
    """Create *path* if needed and confirm a file can be written inside it."""

    try:
        path.mkdir(parents=True, exist_ok=True)
        marker = path / _WRITE_CHECK_NAME
        marker.write_text("ok", encoding="utf-8")
    except OSError:
        return False
    with contextlib.suppress(OSError):
        marker.unlink()
    return True


def _resolve_storage_root(preferred: Path) -> Path:
    if _ensure_writable_directory(preferred):
        return preferred
    fallback = _fallback_storage().resolve()
    if fallback != preferred and _ensure_writable_directory(fallback):
        LOGGER.warning("Storage directory '%s' is read-only; using '%s'.", preferred, fallback)
        return fallback
    # bootstrap reports the unusable directory
    LOGGER.warning("Storage directory '%s' is read-only and no fallback works.", preferred)
    return preferred


def _relocated_database(
    database_file: Path, *, preferred_storage: Path, storage_root: Path
) -> Optional[Path]:
    """Mirror a database that lived under the preferred storage into ``storage_root``."""

    try:
        relative = database_file.relative_to(preferred_storage)
    except ValueError:
        return None
    return (storage_root / relative).resolve()


def _resolve_database_file(
    database_file: Path, *, preferred_storage: Path, storage_root: Path
) -> Path:
    if storage_root != preferred_storage:
        moved = _relocated_database(
            database_file, preferred_storage=preferred_storage, storage_root=storage_root
        )
        if moved is not None and _ensure_writable_directory(moved.parent):
            LOGGER.warning("Database '%s' moved with storage to '%s'.", database_file, moved)
            return moved

    if _ensure_writable_directory(database_file.parent):
        return database_file

    alternative = (storage_root / database_file.name).resolve()
    if alternative != database_file and _ensure_writable_directory(alternative.parent):
        LOGGER.warning("Database directory for '%s' is read-only; using '%s'.", database_file, alternative)
        return alternative
    LOGGER.warning("Database directory for '%s' is read-only and no fallback works.", database_file)
    return database_file


@dataclass(frozen=True)
class AppConfig:
    storage_root: Path
    database_file: Path

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        """Resolve the ``storage_root`` and ``database_file`` entries against ``base_path``."""

        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_root = _resolve_storage_root(preferred_storage)
        database_file = _resolve_database_file(
            (base_path / mapping["database_file"]).resolve(),
            preferred_storage=preferred_storage,
            storage_root=storage_root,
        )
        return cls(storage_root=storage_root, database_file=database_file)


def load_config(config_path: Path | None = None) -> AppConfig:
    base_path = Path(__file__).resolve().parent.parent
    path = config_path or base_path / "config" / "default.json"
    with path.open("r", encoding="utf-8") as handle:
        return AppConfig.from_mapping(json.load(handle), base_path=base_path)


__all__ = ["AppConfig", "load_config"]
