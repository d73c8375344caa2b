"""Pydantic schemas for the chat notification service."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REVIEW_REASON = "This lead requires your attention."


class NotificationCategory(str, Enum):
    """Notification categories; values are the keys of a tenant's channel mapping."""

    NEW_ENTITY = "newLeads"
    ENTITY_WON = "wins"
    ENTITY_NEEDS_REVIEW = "triage"


class EntitySnapshot(BaseModel):
    """Point-in-time copy of the lead being notified about."""

    id: str | None = None
    company_name: str = Field(alias="companyName")
    contact_name: str | None = Field(default=None, alias="contactName")
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    value: float | None = None
    notes: str | None = None
    status: str | None = None
    source: str | None = None
    industry: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator(
        "id",
        "contact_name",
        "email",
        "phone",
        "website",
        "notes",
        "status",
        "source",
        "industry",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class NewEntityEvent(BaseModel):
    category: Literal[NotificationCategory.NEW_ENTITY] = NotificationCategory.NEW_ENTITY
    entity: EntitySnapshot

    model_config = ConfigDict(frozen=True)


class EntityWonEvent(BaseModel):
    category: Literal[NotificationCategory.ENTITY_WON] = NotificationCategory.ENTITY_WON
    entity: EntitySnapshot

    model_config = ConfigDict(frozen=True)


class EntityNeedsReviewEvent(BaseModel):
    category: Literal[NotificationCategory.ENTITY_NEEDS_REVIEW] = NotificationCategory.ENTITY_NEEDS_REVIEW
    entity: EntitySnapshot
    reason: str = DEFAULT_REVIEW_REASON

    model_config = ConfigDict(frozen=True)


NotificationEvent = Annotated[
    Union[NewEntityEvent, EntityWonEvent, EntityNeedsReviewEvent],
    Field(discriminator="category"),
]


class TenantNotificationConfig(BaseModel):
    """Chat integration settings of one tenant, as read from the tenant store."""

    destination_group_id: str | None = None
    routing: dict[str, str | None] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


# Provider wire format ---------------------------------------------------------------------


class EmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False


class EmbedFooter(BaseModel):
    text: str


class Embed(BaseModel):
    title: str | None = None
    description: str | None = None
    url: str | None = None
    color: int | None = None
    fields: list[EmbedField] = Field(default_factory=list)
    timestamp: str | None = None
    footer: EmbedFooter | None = None


class RenderedMessage(BaseModel):
    content: str | None = None
    embeds: list[Embed] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON body the provider expects, without absent values."""

        return self.model_dump(exclude_none=True)


# HTTP API ---------------------------------------------------------------------------------


class ChatNotificationRequest(BaseModel):
    type: Literal["newLead", "dealWon", "triage"]
    tenant_id: str = Field(alias="tenantId", min_length=1, max_length=128)
    lead: EntitySnapshot
    reason: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class NotificationQueuedResponse(BaseModel):
    success: bool = True
    message: str = "Notification queued"


class TenantStatusResponse(BaseModel):
    tenant_id: str = Field(alias="tenantId")
    enabled: bool

    model_config = ConfigDict(populate_by_name=True)


class ChatChannel(BaseModel):
    id: str
    name: str
    type: int
    position: int = 0


class ChatChannelListResponse(BaseModel):
    channels: list[ChatChannel]
