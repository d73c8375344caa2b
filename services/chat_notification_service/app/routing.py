"""Per-tenant destination routing."""

from __future__ import annotations

from .schemas import NotificationCategory, TenantNotificationConfig


def resolve_destination(
    config: TenantNotificationConfig | None,
    category: NotificationCategory,
) -> str | None:
    """Return the destination channel for ``category`` or None when the tenant should not be notified.

    The checks run in a fixed order: no config, then no connected destination
    group, then no mapping for the category. A disconnected tenant never
    reaches the routing map.
    """

    if config is None:
        return None
    if not config.destination_group_id:
        return None
    destination = config.routing.get(category.value)
    return destination or None


def is_enabled(config: TenantNotificationConfig | None) -> bool:
    if config is None or not config.destination_group_id:
        return False
    return any(config.routing.get(category.value) for category in NotificationCategory)
