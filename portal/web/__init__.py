"""Web application for the training portal."""

from .server import create_app

__all__ = ["create_app"]
