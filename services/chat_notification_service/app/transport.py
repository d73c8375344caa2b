"""HTTP client for the chat provider's bot REST API."""

from __future__ import annotations

from typing import Any

import httpx

from services.common import ServiceSettings

from .schemas import ChatChannel, RenderedMessage

TEXT_CHANNEL_TYPE = 0


class ChatProviderError(Exception):
    """Raised when the provider answers a read request with something unusable."""


class DiscordTransport:
    """Bot-authenticated calls against the Discord REST API.

    Sending never interprets the response; the dispatcher decides what a status
    code means. A transport without a bot token reports ``configured = False``
    and callers are expected to skip it.
    """

    def __init__(
        self,
        bot_token: str | None,
        *,
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token or None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=api_base, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> "DiscordTransport":
        return cls(
            settings.chat_bot_token,
            api_base=settings.chat_api_base,
            timeout=settings.chat_request_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return self._bot_token is not None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self._bot_token}",
            "Content-Type": "application/json",
        }

    async def post_message(self, destination_id: str, message: RenderedMessage) -> httpx.Response:
        return await self._client.post(
            f"/channels/{destination_id}/messages",
            json=message.to_wire(),
            headers=self._headers(),
        )

    async def list_text_channels(self, group_id: str) -> list[ChatChannel]:
        """Return the text channels of a destination group ordered by position."""

        response = await self._client.get(f"/guilds/{group_id}/channels", headers=self._headers())
        response.raise_for_status()
        payload: Any = response.json()
        if not isinstance(payload, list):
            raise ChatProviderError("unexpected channel list payload")
        channels = [
            ChatChannel(
                id=str(entry["id"]),
                name=str(entry.get("name", "")),
                type=TEXT_CHANNEL_TYPE,
                position=int(entry.get("position") or 0),
            )
            for entry in payload
            if isinstance(entry, dict) and entry.get("type") == TEXT_CHANNEL_TYPE and "id" in entry
        ]
        channels.sort(key=lambda channel: channel.position)
        return channels

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
