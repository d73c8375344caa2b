"""HTTP routes for triggering chat notifications and inspecting tenant integrations."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_config_lookup, get_notifier, get_transport
from ..dispatcher import ChatNotifier
from ..schemas import (
    ChatChannelListResponse,
    ChatNotificationRequest,
    NotificationQueuedResponse,
    TenantStatusResponse,
)
from ..tenants import TenantConfigLookup
from ..transport import ChatProviderError, DiscordTransport

_LOGGER = logging.getLogger(__name__)

TRIAGE_FALLBACK_REASON = "Needs review"

router = APIRouter(prefix="/notifications/chat", tags=["notifications"])


@router.post("", response_model=NotificationQueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def queue_chat_notification(
    payload: ChatNotificationRequest,
    notifier: ChatNotifier = Depends(get_notifier),
) -> NotificationQueuedResponse:
    """Start a notification and answer before it is delivered."""

    if payload.type == "newLead":
        notifier.notify_new_entity(payload.lead, payload.tenant_id)
    elif payload.type == "dealWon":
        notifier.notify_entity_won(payload.lead, payload.tenant_id)
    else:
        notifier.notify_entity_needs_review(
            payload.lead,
            payload.reason or TRIAGE_FALLBACK_REASON,
            payload.tenant_id,
        )
    return NotificationQueuedResponse()


@router.get("/tenants/{tenant_id}/status", response_model=TenantStatusResponse)
async def tenant_status(
    tenant_id: str,
    notifier: ChatNotifier = Depends(get_notifier),
) -> TenantStatusResponse:
    enabled = await notifier.has_notifications(tenant_id)
    return TenantStatusResponse(tenant_id=tenant_id, enabled=enabled)


@router.get("/tenants/{tenant_id}/channels", response_model=ChatChannelListResponse)
async def tenant_channels(
    tenant_id: str,
    transport: DiscordTransport | None = Depends(get_transport),
    lookup: TenantConfigLookup | None = Depends(get_config_lookup),
) -> ChatChannelListResponse:
    """List the text channels a tenant can route notifications to."""

    if transport is None or not transport.configured or lookup is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Chat bot not configured")

    try:
        config = await lookup.fetch_config(tenant_id)
    except Exception as exc:
        _LOGGER.exception("Tenant store lookup failed for tenant %s", tenant_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant store unavailable",
        ) from exc
    if config is None or not config.destination_group_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Chat integration not connected")

    try:
        channels = await transport.list_text_channels(config.destination_group_id)
    except (httpx.HTTPError, ChatProviderError, ValueError) as exc:
        _LOGGER.error("Failed to fetch channels for tenant %s: %s", tenant_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch channels from chat provider",
        ) from exc
    return ChatChannelListResponse(channels=channels)
