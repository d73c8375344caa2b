"""Fire-and-forget dispatch of lead notifications to tenant chat channels.

A notification is scheduled on the running event loop and the caller moves on.
The background dispatch walks a fixed sequence (credential, tenant config,
routing, rate limit, render, send) and every branch ends in a log line and a
``DispatchOutcome``. Nothing raised inside the dispatch ever reaches the code
that triggered the notification.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from time import monotonic
from typing import Any, Protocol

import httpx

from services.common import ServiceSettings, get_tracer

from .embeds import EmbedContext, build_embed
from .metrics import (
    CHAT_NOTIFICATION_SEND_LATENCY_SECONDS,
    CHAT_NOTIFICATIONS_FAILED_TOTAL,
    CHAT_NOTIFICATIONS_RATE_LIMITED_TOTAL,
    CHAT_NOTIFICATIONS_SENT_TOTAL,
    CHAT_NOTIFICATIONS_SKIPPED_TOTAL,
    normalise_skip_reason,
)
from .rate_limit import RateLimitTracker, default_tracker
from .routing import is_enabled, resolve_destination
from .schemas import (
    DEFAULT_REVIEW_REASON,
    EntityNeedsReviewEvent,
    EntitySnapshot,
    EntityWonEvent,
    NewEntityEvent,
    NotificationCategory,
    NotificationEvent,
    RenderedMessage,
    TenantNotificationConfig,
)

_LOGGER = logging.getLogger(__name__)

DEAL_WON_STATUS = "Closed"
DEFAULT_RETRY_AFTER_SECONDS = 5.0

ConfigLoader = Callable[[str], Awaitable[TenantNotificationConfig | None]]
EntityInput = EntitySnapshot | Mapping[str, Any]


class ChatTransport(Protocol):
    @property
    def configured(self) -> bool: ...

    async def post_message(self, destination_id: str, message: RenderedMessage) -> httpx.Response: ...


@dataclass(slots=True)
class DispatchOutcome:
    success: bool
    message_id: str | None = None
    error: str | None = None
    rate_limited: bool = False
    retry_after: float | None = None
    destination_id: str | None = None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _retry_after(response: httpx.Response, body: dict[str, Any], default: float) -> float:
    candidates = (body.get("retry_after"), response.headers.get("Retry-After"))
    for raw in candidates:
        if raw is None or isinstance(raw, bool):
            continue
        try:
            seconds = float(raw)
        except (TypeError, ValueError):
            continue
        if math.isfinite(seconds) and seconds > 0:
            return seconds
    return default


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatNotifier:
    """Routes lead events to the chat destination configured by each tenant."""

    def __init__(
        self,
        transport: ChatTransport,
        config_loader: ConfigLoader,
        *,
        rate_limits: RateLimitTracker | None = None,
        app_url: str | None = None,
        brand: str = "SalesTracker",
        default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._config_loader = config_loader
        self._rate_limits = rate_limits or default_tracker()
        self._app_url = app_url
        self._brand = brand
        self._default_retry_after = default_retry_after
        self._now = now
        self._tasks: set[asyncio.Task[DispatchOutcome]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: ServiceSettings,
        transport: ChatTransport,
        config_loader: ConfigLoader,
        *,
        rate_limits: RateLimitTracker | None = None,
    ) -> "ChatNotifier":
        return cls(
            transport,
            config_loader,
            rate_limits=rate_limits,
            app_url=settings.app_public_url,
            brand=settings.notification_brand,
            default_retry_after=settings.chat_default_retry_after_seconds,
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # Fire-and-forget entry points ---------------------------------------------------------

    def notify(self, event: NotificationEvent, tenant_id: str) -> None:
        """Start dispatching ``event`` in the background and return immediately."""

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.warning(
                "No running event loop; dropping %s notification for tenant %s",
                event.category.value,
                tenant_id,
            )
            return
        task = loop.create_task(
            self.dispatch(event, tenant_id),
            name=f"chat-notify-{event.category.value}-{tenant_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def notify_new_entity(self, entity: EntityInput, tenant_id: str) -> None:
        self._notify_built(lambda: NewEntityEvent(entity=entity), tenant_id)

    def notify_entity_won(self, entity: EntityInput, tenant_id: str) -> None:
        self._notify_built(lambda: EntityWonEvent(entity=entity), tenant_id)

    def notify_entity_needs_review(self, entity: EntityInput, reason: str | None, tenant_id: str) -> None:
        self._notify_built(
            lambda: EntityNeedsReviewEvent(entity=entity, reason=reason or DEFAULT_REVIEW_REASON),
            tenant_id,
        )

    def notify_status_change(self, entity: EntityInput, previous_status: str | None, tenant_id: str) -> None:
        """Announce a won deal when the lead has just moved into the closed status."""

        try:
            snapshot = EntitySnapshot.model_validate(entity)
        except Exception:
            _LOGGER.exception("Invalid lead snapshot for status change notification (tenant %s)", tenant_id)
            return
        if snapshot.status == DEAL_WON_STATUS and previous_status != DEAL_WON_STATUS:
            self.notify_entity_won(snapshot, tenant_id)

    def _notify_built(self, build: Callable[[], NotificationEvent], tenant_id: str) -> None:
        try:
            event = build()
        except Exception:
            _LOGGER.exception("Invalid lead snapshot; notification for tenant %s dropped", tenant_id)
            return
        self.notify(event, tenant_id)

    async def drain(self) -> None:
        """Wait for every in-flight dispatch, including ones started while waiting."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Dispatch -----------------------------------------------------------------------------

    async def dispatch(self, event: NotificationEvent, tenant_id: str) -> DispatchOutcome:
        """Run one notification end to end; returns a diagnostics record and never raises."""

        try:
            with get_tracer(__name__).start_as_current_span("chat.dispatch") as span:
                span.set_attribute("chat.category", event.category.value)
                span.set_attribute("tenant.id", tenant_id)
                return await self._dispatch(event, tenant_id)
        except Exception as exc:
            _LOGGER.exception("Unexpected error dispatching %s notification", event.category.value)
            CHAT_NOTIFICATIONS_FAILED_TOTAL.labels(category=event.category.value, kind="internal_error").inc()
            return DispatchOutcome(success=False, error=f"internal error: {exc}")

    async def _dispatch(self, event: NotificationEvent, tenant_id: str) -> DispatchOutcome:
        category = event.category
        if not self._transport.configured:
            _LOGGER.warning("Chat bot token not configured; skipping %s notification", category.value)
            return self._skipped(category, "no_credential")

        try:
            config = await self._config_loader(tenant_id)
        except Exception:
            _LOGGER.exception("Tenant config lookup failed for tenant %s", tenant_id)
            return self._skipped(category, "lookup_failed")
        if config is None:
            _LOGGER.info("Skipping %s notification for tenant %s (not configured)", category.value, tenant_id)
            return self._skipped(category, "no_config")

        destination_id = resolve_destination(config, category)
        if destination_id is None:
            _LOGGER.debug("No %s channel mapped for tenant %s", category.value, tenant_id)
            return self._skipped(category, "not_routed")

        if self._rate_limits.is_blocked(destination_id):
            _LOGGER.info("Rate limited for channel %s; skipping %s notification", destination_id, category.value)
            outcome = self._skipped(category, "rate_limited")
            outcome.rate_limited = True
            outcome.destination_id = destination_id
            return outcome

        message = build_embed(event, EmbedContext(now=self._now(), app_url=self._app_url, brand=self._brand))
        return await self._send(category, destination_id, message)

    async def _send(
        self,
        category: NotificationCategory,
        destination_id: str,
        message: RenderedMessage,
    ) -> DispatchOutcome:
        started = monotonic()
        try:
            response = await self._transport.post_message(destination_id, message)
        except Exception as exc:
            _LOGGER.error("Network error sending %s notification to channel %s: %s", category.value, destination_id, exc)
            CHAT_NOTIFICATIONS_FAILED_TOTAL.labels(category=category.value, kind="network_error").inc()
            return DispatchOutcome(success=False, error=str(exc) or "network error", destination_id=destination_id)
        finally:
            CHAT_NOTIFICATION_SEND_LATENCY_SECONDS.labels(category=category.value).observe(monotonic() - started)

        body = _json_body(response)
        if response.is_success:
            message_id = body.get("id")
            message_id = str(message_id) if message_id is not None else None
            _LOGGER.info("Message sent to channel %s, message id %s", destination_id, message_id)
            CHAT_NOTIFICATIONS_SENT_TOTAL.labels(category=category.value).inc()
            return DispatchOutcome(success=True, message_id=message_id, destination_id=destination_id)

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            retry_after = _retry_after(response, body, self._default_retry_after)
            self._rate_limits.record_limit(destination_id, retry_after)
            _LOGGER.warning("Rate limited for channel %s, retry after %ss", destination_id, retry_after)
            CHAT_NOTIFICATIONS_RATE_LIMITED_TOTAL.labels(category=category.value).inc()
            return DispatchOutcome(
                success=False,
                error="rate_limited",
                rate_limited=True,
                retry_after=retry_after,
                destination_id=destination_id,
            )

        provider_message = body.get("message") or "Unknown error"
        _LOGGER.error(
            "Chat provider rejected %s notification for channel %s: %s - %s",
            category.value,
            destination_id,
            response.status_code,
            provider_message,
        )
        CHAT_NOTIFICATIONS_FAILED_TOTAL.labels(category=category.value, kind="provider_error").inc()
        return DispatchOutcome(
            success=False,
            error=f"provider error: {response.status_code} - {provider_message}",
            destination_id=destination_id,
        )

    @staticmethod
    def _skipped(category: NotificationCategory, reason: str) -> DispatchOutcome:
        CHAT_NOTIFICATIONS_SKIPPED_TOTAL.labels(
            category=category.value,
            reason=normalise_skip_reason(reason),
        ).inc()
        return DispatchOutcome(success=False, error=reason)

    # Diagnostics --------------------------------------------------------------------------

    async def has_notifications(self, tenant_id: str) -> bool:
        """True when the tenant has connected a destination group and mapped at least one category."""

        if not self._transport.configured:
            return False
        try:
            config = await self._config_loader(tenant_id)
        except Exception:
            _LOGGER.exception("Tenant config lookup failed for tenant %s", tenant_id)
            return False
        return is_enabled(config)


# Process-wide entry points ----------------------------------------------------------------

_NOTIFIER: ChatNotifier | None = None


def install_notifier(notifier: ChatNotifier | None) -> None:
    """Make ``notifier`` the target of the module-level ``notify_*`` functions."""

    global _NOTIFIER
    _NOTIFIER = notifier


def get_notifier() -> ChatNotifier | None:
    return _NOTIFIER


def _installed(kind: str) -> ChatNotifier | None:
    if _NOTIFIER is None:
        _LOGGER.warning("Chat notifier not installed; skipping %s notification", kind)
    return _NOTIFIER


def notify_new_entity(entity: EntityInput, tenant_id: str) -> None:
    notifier = _installed("new lead")
    if notifier is not None:
        notifier.notify_new_entity(entity, tenant_id)


def notify_entity_won(entity: EntityInput, tenant_id: str) -> None:
    notifier = _installed("deal won")
    if notifier is not None:
        notifier.notify_entity_won(entity, tenant_id)


def notify_entity_needs_review(entity: EntityInput, reason: str | None, tenant_id: str) -> None:
    notifier = _installed("triage")
    if notifier is not None:
        notifier.notify_entity_needs_review(entity, reason, tenant_id)


def notify_status_change(entity: EntityInput, previous_status: str | None, tenant_id: str) -> None:
    notifier = _installed("status change")
    if notifier is not None:
        notifier.notify_status_change(entity, previous_status, tenant_id)
