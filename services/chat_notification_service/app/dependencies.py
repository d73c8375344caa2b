"""Dependency helpers for the chat notification service."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from .dispatcher import ChatNotifier
from .tenants import TenantConfigLookup
from .transport import DiscordTransport


def get_transport(request: Request) -> DiscordTransport | None:
    return getattr(request.app.state, "chat_transport", None)


def get_config_lookup(request: Request) -> TenantConfigLookup | None:
    return getattr(request.app.state, "tenant_config_lookup", None)


def get_notifier(request: Request) -> ChatNotifier:
    notifier = getattr(request.app.state, "chat_notifier", None)
    if notifier is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Notifier not ready")
    return notifier
