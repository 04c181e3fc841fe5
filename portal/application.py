"""Application factory that serves both the API and the management UI."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import PortalSettings, load_settings
from .database import Database
from .management import create_app as create_management_app


def create_application(
    *,
    settings: Optional[PortalSettings] = None,
    config_path: Optional[Path] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the combined ASGI application."""

    if settings is None:
        settings = load_settings(config_path)

    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    api_app = create_api_app(database=database, settings=settings)
    management_app = create_management_app(database=database, settings=settings)

    app = FastAPI(
        title="Marketplace Admin Portal",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database
    app.state.settings = settings
    app.state.api = api_app
    app.state.management = management_app

    app.mount("/api", api_app)
    app.mount("/", management_app)

    return app


__all__ = ["create_application"]
