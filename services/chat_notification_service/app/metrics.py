"""Prometheus metrics for the chat notification service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

_SKIP_REASONS: Final = (
    "no_credential",
    "no_config",
    "lookup_failed",
    "not_routed",
    "rate_limited",
)

# Dispatch outcomes ------------------------------------------------------------------------
CHAT_NOTIFICATIONS_SENT_TOTAL: Final = Counter(
    "chat_notifications_sent_total",
    "Chat notifications accepted by the provider.",
    labelnames=("category",),
)

CHAT_NOTIFICATIONS_SKIPPED_TOTAL: Final = Counter(
    "chat_notifications_skipped_total",
    "Chat notifications dropped before reaching the provider.",
    labelnames=("category", "reason"),
)

CHAT_NOTIFICATIONS_RATE_LIMITED_TOTAL: Final = Counter(
    "chat_notifications_rate_limited_total",
    "Provider responses signalling a rate limit.",
    labelnames=("category",),
)

CHAT_NOTIFICATIONS_FAILED_TOTAL: Final = Counter(
    "chat_notifications_failed_total",
    "Chat notifications that failed at the provider or on the network.",
    labelnames=("category", "kind"),
)

CHAT_NOTIFICATION_SEND_LATENCY_SECONDS: Final = Histogram(
    "chat_notification_send_latency_seconds",
    "Round trip time of provider send calls.",
    labelnames=("category",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

# Rate limit state -------------------------------------------------------------------------
CHAT_RATE_LIMIT_BLOCKS_ACTIVE: Final = Gauge(
    "chat_rate_limit_blocks_active",
    "Destinations held back by a provider rate limit; expired windows drop out on the next tracker check.",
)


def normalise_skip_reason(raw_reason: str) -> str:
    """Return a bounded label value for the skipped counter."""

    reason = (raw_reason or "not_routed").strip().lower().replace(" ", "_")
    if reason not in _SKIP_REASONS:
        return "not_routed"
    return reason
