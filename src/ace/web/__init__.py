"""Web operator console (JSON API)."""

from .app import app, create_app, start_server

__all__ = ["app", "create_app", "start_server"]
