"""Administrative portal for the marketplace."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the combined web + API application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


def create_api_app(*args: Any, **kwargs: Any):
    """Factory function for the privileged API only."""

    from .api import create_app as _create_api_app

    return _create_api_app(*args, **kwargs)


def create_management_app(*args: Any, **kwargs: Any):
    """Factory function for the management UI only."""

    from .management import create_app as _create_management_app

    return _create_management_app(*args, **kwargs)


__all__ = [
    "Database",
    "resolve_database_path",
    "create_application",
    "create_api_app",
    "create_management_app",
]
