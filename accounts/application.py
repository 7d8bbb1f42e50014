"""Application factory that builds the service from file and environment configuration."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import Settings, load_settings, resolve_config_path
from .database import Database


def resolve_settings(config_path: Optional[str] = None) -> Settings:
    path = resolve_config_path(config_path or os.getenv("ACCOUNTS_CONFIG"))
    return load_settings(Path(path))


def create_application(*, config_path: Optional[str] = None) -> FastAPI:
    """Create the ASGI application.

    Usable directly as a uvicorn factory:
    ``uvicorn accounts.application:create_application --factory``.
    """

    settings = resolve_settings(config_path)
    database = Database(settings.database_path)
    return create_app(settings, database=database)


__all__ = ["create_application", "resolve_settings"]
