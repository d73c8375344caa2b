"""Rich embed rendering for lead notifications.

Everything here is pure: no I/O, no clock reads (the caller passes ``now``), and
no exceptions for missing optional lead data. A field whose source value is
absent is left out of the embed instead of being rendered as a placeholder.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext

from .schemas import (
    Embed,
    EmbedField,
    EmbedFooter,
    EntityNeedsReviewEvent,
    EntitySnapshot,
    EntityWonEvent,
    NewEntityEvent,
    NotificationEvent,
    RenderedMessage,
)

COLOR_NEW_ENTITY = 0x3498DB
COLOR_ENTITY_WON = 0x2ECC71
COLOR_NEEDS_REVIEW = 0xE74C3C

NEW_ENTITY_DESCRIPTION_LIMIT = 200
REVIEW_DESCRIPTION_LIMIT = 150
REVIEW_REASON_LIMIT = 200

ELLIPSIS = "..."
NOT_SPECIFIED = "Not specified"
_SECONDS_PER_DAY = 86400


@dataclass(slots=True, frozen=True)
class EmbedContext:
    now: datetime
    app_url: str | None = None
    brand: str = "SalesTracker"


def format_currency(value: float | None) -> str:
    """Whole-dollar US formatting, e.g. ``5000 -> "$5,000"``; zero or missing is "Not specified"."""

    if not value or not math.isfinite(value):
        return NOT_SPECIFIED
    exact = Decimal(str(value))
    # Quantizing to whole units needs one digit per integer place.
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, exact.adjusted() + 2)
        amount = exact.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}${amount.copy_abs():,}"


def truncate(text: str, limit: int) -> str:
    """Cap ``text`` at ``limit`` characters, ending in an ellipsis when shortened."""

    if len(text) <= limit:
        return text
    return text[: max(limit - len(ELLIPSIS), 0)] + ELLIPSIS


def days_since(created_at: datetime, now: datetime) -> int:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int((now - created_at).total_seconds() // _SECONDS_PER_DAY)


def _field(name: str, value: str | None, *, inline: bool = True) -> list[EmbedField]:
    if value is None:
        return []
    return [EmbedField(name=name, value=value, inline=inline)]


def _value_field(entity: EntitySnapshot) -> list[EmbedField]:
    if entity.value is None:
        return []
    return [EmbedField(name="💰 Deal Value", value=format_currency(entity.value), inline=True)]


def _lead_url(entity: EntitySnapshot, context: EmbedContext) -> str | None:
    if not context.app_url or not entity.id:
        return None
    return f"{context.app_url.rstrip('/')}/leads/{entity.id}"


def _new_entity_embed(event: NewEntityEvent, context: EmbedContext) -> Embed:
    entity = event.entity
    fields = [
        *_field("👤 Contact", entity.contact_name),
        *_value_field(entity),
        *_field("📊 Status", entity.status),
        *_field("📧 Email", entity.email),
        *_field("📞 Phone", entity.phone),
        *_field("📍 Source", entity.source),
        *_field("🏢 Industry", entity.industry),
        *_field("🌐 Website", entity.website),
    ]
    if entity.notes:
        description = truncate(entity.notes, NEW_ENTITY_DESCRIPTION_LIMIT)
    else:
        description = "A new lead has been added to the pipeline."
    return Embed(
        title=f"🆕 New Lead: {entity.company_name}",
        description=description,
        url=_lead_url(entity, context),
        color=COLOR_NEW_ENTITY,
        fields=fields,
        timestamp=context.now.isoformat(),
        footer=EmbedFooter(text=context.brand),
    )


def _entity_won_embed(event: EntityWonEvent, context: EmbedContext) -> Embed:
    entity = event.entity
    fields = [
        *_value_field(entity),
        *_field("👤 Contact", entity.contact_name),
        *_field("📍 Source", entity.source),
        *_field("🏢 Industry", entity.industry),
    ]
    if entity.created_at is not None:
        days = days_since(entity.created_at, context.now)
        fields.append(EmbedField(name="📅 Days in Pipeline", value=f"{days} days", inline=True))
    return Embed(
        title=f"🎉 Deal Won: {entity.company_name}",
        description=f"Congratulations! The deal with **{entity.company_name}** has been closed!",
        url=_lead_url(entity, context),
        color=COLOR_ENTITY_WON,
        fields=fields,
        timestamp=context.now.isoformat(),
        footer=EmbedFooter(text=f"{context.brand} • Keep up the great work! 🚀"),
    )


def _needs_review_embed(event: EntityNeedsReviewEvent, context: EmbedContext) -> Embed:
    entity = event.entity
    reason = event.reason or None
    fields = [
        *_field("👤 Contact", entity.contact_name),
        *_value_field(entity),
        *_field("📊 Current Status", entity.status),
        *_field("⚠️ Reason", truncate(reason, REVIEW_REASON_LIMIT) if reason else None, inline=False),
        *_field("📧 Email", entity.email),
        *_field("📞 Phone", entity.phone),
    ]
    return Embed(
        title=f"🔔 Action Required: {entity.company_name}",
        description=truncate(entity.notes, REVIEW_DESCRIPTION_LIMIT) if entity.notes else None,
        url=_lead_url(entity, context),
        color=COLOR_NEEDS_REVIEW,
        fields=fields,
        timestamp=context.now.isoformat(),
        footer=EmbedFooter(text=f"{context.brand} • Review this lead promptly"),
    )


def build_embed(event: NotificationEvent, context: EmbedContext) -> RenderedMessage:
    """Render ``event`` into the provider's message format."""

    if isinstance(event, EntityWonEvent):
        embed = _entity_won_embed(event, context)
    elif isinstance(event, EntityNeedsReviewEvent):
        embed = _needs_review_embed(event, context)
    else:
        embed = _new_entity_embed(event, context)
    return RenderedMessage(embeds=[embed])
