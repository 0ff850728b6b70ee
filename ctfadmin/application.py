"""Application factory that serves the administration API under ``/api``."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api import create_app as create_api_app
from .config import AdminSettings, load_settings
from .database import Database

logger = logging.getLogger("ctfadmin.application")


def create_application(
    *,
    settings: Optional[AdminSettings] = None,
    config_path: Optional[Path] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the ASGI application used by ``main.py serve``."""

    if settings is None:
        settings = load_settings(config_path)

    if database is None:
        database = Database(settings.database_path)
    database.initialize()
    logger.info("Using database at %s", database.path)

    api_app = create_api_app(database=database, settings=settings)

    app = FastAPI(
        title="CTF Administration",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.proxy_hosts())
    app.state.database = database
    app.state.api = api_app

    app.mount("/api", api_app)

    return app


__all__ = ["create_application"]
