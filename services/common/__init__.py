"""Shared infrastructure for the chat notification service."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import API_VERSION, build_app, instrument_app
from .logging import configure_logging
from .database import (
    create_engine,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    read_session,
    resolve_database_url,
)
from .tracing import configure_tracing, get_tracer

__all__ = [
    "API_VERSION",
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "configure_logging",
    "configure_tracing",
    "get_tracer",
    "DEFAULT_APP_NAME",
    "create_engine",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "read_session",
    "resolve_database_url",
]
