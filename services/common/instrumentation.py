from typing import Any, cast

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .config import ServiceSettings
from .tracing import configure_tracing

API_VERSION = "0.1.0"


def instrument_app(app: FastAPI, settings: ServiceSettings) -> None:
    """Expose Prometheus HTTP metrics when enabled and remember the settings on the app."""

    if settings.enable_metrics:
        Instrumentator(excluded_handlers=["/health", "/metrics"]).instrument(app).expose(app)

    state = cast(Any, app.state)
    state.settings = settings


def build_app(settings: ServiceSettings, **extra_kwargs: Any) -> FastAPI:
    """Create a FastAPI instance with service metadata, metrics and tracing."""

    app = FastAPI(title=settings.app_name, version=API_VERSION, **extra_kwargs)
    instrument_app(app, settings)
    configure_tracing(app, settings)
    return app
