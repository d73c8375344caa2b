"""Tenant configuration lookup for chat notifications."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import read_session

from .repository import TenantIntegrationRepository, mapping_from_json
from .schemas import TenantNotificationConfig

_LOGGER = logging.getLogger(__name__)


class TenantConfigLookup:
    """Loads a tenant's chat routing settings from the tenant store.

    ``load_config`` never raises: a storage or decoding failure is logged and reported
    as ``None``, which callers treat the same as "integration not configured".
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_config(self, tenant_id: str) -> TenantNotificationConfig | None:
        """Read the tenant record; storage and decoding errors propagate."""

        async with read_session(self._session_factory) as session:
            integration = await TenantIntegrationRepository(session).get_integration(tenant_id)
            if integration is None:
                _LOGGER.info("Tenant %s has no chat integration record", tenant_id)
                return None
            return TenantNotificationConfig(
                destination_group_id=integration.guild_id or None,
                routing=mapping_from_json(integration.channel_mapping_json),
            )

    async def load_config(self, tenant_id: str) -> TenantNotificationConfig | None:
        try:
            return await self.fetch_config(tenant_id)
        except Exception:
            _LOGGER.exception("Failed to load chat integration for tenant %s", tenant_id)
            return None

    async def __call__(self, tenant_id: str) -> TenantNotificationConfig | None:
        return await self.load_config(tenant_id)
