"""Backend for the DzakCloud marketing site: accounts, contact inquiries and payments."""

from __future__ import annotations

from typing import Any

from .database import Database, DuplicateRecordError, resolve_database_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the site's ASGI application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "DuplicateRecordError",
    "resolve_database_path",
    "create_app",
]
