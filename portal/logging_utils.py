"""Root logger setup shared by the CLI commands and the web server."""

from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path
from typing import Iterable, List


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "training_portal.log"

# marks handlers installed here so a second configure call can swap them out
_PORTAL_HANDLER_ATTR = "_training_portal_handler"


def get_log_file_path(storage_root: Path) -> Path:
    return storage_root / LOG_FILE_NAME


def build_handlers(storage_root: Path) -> List[logging.Handler]:
    """Return a log-file handler under ``storage_root`` plus a stderr stream."""

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    handlers: List[logging.Handler] = [
        logging.FileHandler(get_log_file_path(storage_root), encoding="utf-8"),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(level: int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Install ``handlers`` on the root logger, replacing any installed earlier.

    Without ``handlers`` a single formatted stderr stream is used. Handlers
    added by other code are left alone.
    """

    root = logging.getLogger()
    root.setLevel(level)

    for existing in list(root.handlers):
        if getattr(existing, _PORTAL_HANDLER_ATTR, False):
            root.removeHandler(existing)
            existing.close()

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handlers = [stream_handler]

    for handler in handlers:
        setattr(handler, _PORTAL_HANDLER_ATTR, True)
        root.addHandler(handler)
    return root


__all__ = [
    "DEFAULT_LOG_FORMAT",
    "LOG_FILE_NAME",
    "build_handlers",
    "configure_logging",
    "get_log_file_path",
]
