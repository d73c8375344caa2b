"""SQLAlchemy models for the tenant store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base model for the chat notification service."""


class TenantChatIntegration(Base):
    __tablename__ = "tenant_chat_integrations"

    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    guild_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    guild_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    channel_mapping_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
