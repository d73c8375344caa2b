import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    configure_logging,
    dispose_engines,
    get_settings,
    get_session_factory,
    resolve_database_url,
)

from .api.health import router as health_router
from .api.notifications import router as notifications_router
from .dispatcher import ChatNotifier, get_notifier, install_notifier
from .rate_limit import RateLimitTracker
from .tenants import TenantConfigLookup
from .transport import DiscordTransport

SERVICE_NAME = "Chat Notification Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./chat_notification_service.db"

_LOGGER = logging.getLogger(__name__)


def create_app(
    settings: ServiceSettings | None = None,
    *,
    transport: DiscordTransport | None = None,
    rate_limits: RateLimitTracker | None = None,
) -> FastAPI:
    """Create the Chat Notification Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        chat_transport = transport or DiscordTransport.from_settings(resolved_settings)
        config_lookup = TenantConfigLookup(session_factory)
        notifier = ChatNotifier.from_settings(
            resolved_settings,
            chat_transport,
            config_lookup,
            rate_limits=rate_limits,
        )
        if not chat_transport.configured:
            _LOGGER.warning("SERVICE_CHAT_BOT_TOKEN is not set; chat notifications are disabled")
        app.state.session_factory = session_factory
        app.state.chat_transport = chat_transport
        app.state.tenant_config_lookup = config_lookup
        app.state.chat_notifier = notifier
        install_notifier(notifier)
        try:
            yield
        finally:
            if get_notifier() is notifier:
                install_notifier(None)
            await notifier.drain()
            app.state.chat_notifier = None
            app.state.tenant_config_lookup = None
            app.state.chat_transport = None
            app.state.session_factory = None  # type: ignore[assignment]
            await chat_transport.aclose()
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(notifications_router)
    return app


app = create_app()
