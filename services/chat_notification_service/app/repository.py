"""Persistence helpers for tenant chat integrations."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import TenantChatIntegration


def mapping_to_json(mapping: dict[str, str | None] | None) -> str | None:
    if mapping is None:
        return None
    return json.dumps(mapping, separators=(",", ":"), ensure_ascii=False)


def mapping_from_json(mapping_json: str | None) -> dict[str, str | None]:
    """Decode a stored channel mapping, keeping only string keys with string (or null) values."""

    if not mapping_json:
        return {}
    raw: Any = json.loads(mapping_json)
    if not isinstance(raw, dict):
        raise ValueError("channel mapping must be a JSON object")
    return {
        str(key): (str(value) if value is not None else None)
        for key, value in raw.items()
        if value is None or isinstance(value, (str, int))
    }


class TenantIntegrationRepository:
    """Database access helpers for tenant chat integrations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_integration(self, tenant_id: str) -> TenantChatIntegration | None:
        result = await self.session.execute(
            select(TenantChatIntegration).where(TenantChatIntegration.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def save_integration(
        self,
        tenant_id: str,
        *,
        guild_id: str | None,
        channel_mapping: dict[str, str | None] | None,
        guild_name: str | None = None,
    ) -> TenantChatIntegration:
        integration = await self.get_integration(tenant_id)
        if integration is None:
            integration = TenantChatIntegration(tenant_id=tenant_id)
            self.session.add(integration)
        integration.guild_id = guild_id
        integration.guild_name = guild_name
        integration.channel_mapping_json = mapping_to_json(channel_mapping)
        await self.session.flush()
        await self.session.refresh(integration, attribute_names=["created_at", "updated_at"])
        return integration
