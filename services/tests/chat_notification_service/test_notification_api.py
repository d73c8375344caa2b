import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from services.common import ServiceSettings, create_engine, dispose_engines, get_session_factory, lifespan_session
from services.chat_notification_service.app.main import create_app
from services.chat_notification_service.app.models import Base
from services.chat_notification_service.app.rate_limit import RateLimitTracker
from services.chat_notification_service.app.repository import TenantIntegrationRepository
from services.chat_notification_service.app.transport import DiscordTransport

API_BASE = "https://discord.test/api/v10"

GUILD_CHANNELS = [
    {"id": "c2", "name": "wins", "type": 0, "position": 2},
    {"id": "v1", "name": "Voice", "type": 2, "position": 0},
    {"id": "c1", "name": "new-leads", "type": 0, "position": 1},
    {"id": "cat", "name": "Sales", "type": 4, "position": 0},
]


def _run(coro):
    return asyncio.run(coro)


class _FakeProvider:
    """Records provider requests and answers them like the bot API would."""

    def __init__(self, *, channels_status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.channels_status = channels_status

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if self.channels_status != 200:
                return httpx.Response(self.channels_status, json={"message": "Missing Access"})
            return httpx.Response(200, json=GUILD_CHANNELS)
        return httpx.Response(200, json={"id": f"m-{len(self.requests)}"})

    def messages(self) -> list[tuple[str, dict[str, Any]]]:
        return [
            (request.url.path, json.loads(request.content))
            for request in self.requests
            if request.method == "POST"
        ]


async def _prepare_app(tmp_path, provider_client: httpx.AsyncClient | None, *, bot_token: str | None = "token") -> FastAPI:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"

    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with lifespan_session(get_session_factory(database_url)) as session:
        repository = TenantIntegrationRepository(session)
        await repository.save_integration(
            "tenant-a",
            guild_id="g1",
            guild_name="Acme Sales",
            channel_mapping={"newLeads": "c1", "wins": "c2", "triage": "c3"},
        )
        await repository.save_integration("tenant-idle", guild_id=None, channel_mapping={"newLeads": "c1"})

    settings = ServiceSettings(
        app_name="Chat Notification Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=database_url,
        chat_bot_token=bot_token,
        app_public_url="https://crm.example.com",
    )
    transport = None
    if provider_client is not None:
        transport = DiscordTransport(bot_token, client=provider_client)
    return create_app(settings, transport=transport, rate_limits=RateLimitTracker())


def _provider_client(provider: _FakeProvider) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler), base_url=API_BASE)


def test_new_lead_notification_is_queued_and_delivered(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> httpx.Response:
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    response = await client.post(
                        "/notifications/chat",
                        json={
                            "type": "newLead",
                            "tenantId": "tenant-a",
                            "lead": {"id": "lead-1", "companyName": "Acme", "value": 5000},
                        },
                    )
                await app.state.chat_notifier.drain()
        await dispose_engines()
        return response

    response = _run(body())

    assert response.status_code == 202
    assert response.json() == {"success": True, "message": "Notification queued"}
    messages = provider.messages()
    assert len(messages) == 1
    path, payload = messages[0]
    assert path == "/api/v10/channels/c1/messages"
    embed = payload["embeds"][0]
    assert embed["title"] == "🆕 New Lead: Acme"
    assert embed["url"] == "https://crm.example.com/leads/lead-1"
    assert provider.requests[0].headers["Authorization"] == "Bot token"


def test_triage_without_reason_uses_fallback(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> None:
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    response = await client.post(
                        "/notifications/chat",
                        json={"type": "triage", "tenantId": "tenant-a", "lead": {"companyName": "Acme"}},
                    )
                    assert response.status_code == 202
        await dispose_engines()

    _run(body())

    path, payload = provider.messages()[0]
    assert path == "/api/v10/channels/c3/messages"
    reason = next(field for field in payload["embeds"][0]["fields"] if field["name"] == "⚠️ Reason")
    assert reason["value"] == "Needs review"


def test_invalid_notification_request_is_rejected(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> list[httpx.Response]:
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    unknown_type = await client.post(
                        "/notifications/chat",
                        json={"type": "churn", "tenantId": "tenant-a", "lead": {"companyName": "Acme"}},
                    )
                    missing_company = await client.post(
                        "/notifications/chat",
                        json={"type": "newLead", "tenantId": "tenant-a", "lead": {}},
                    )
        await dispose_engines()
        return [unknown_type, missing_company]

    responses = _run(body())

    assert [response.status_code for response in responses] == [422, 422]
    assert provider.requests == []


def test_tenant_status_endpoint(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> dict[str, Any]:
        results: dict[str, Any] = {}
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    for tenant_id in ("tenant-a", "tenant-idle", "tenant-unknown"):
                        response = await client.get(f"/notifications/chat/tenants/{tenant_id}/status")
                        assert response.status_code == 200
                        results[tenant_id] = response.json()
        await dispose_engines()
        return results

    results = _run(body())

    assert results["tenant-a"] == {"tenantId": "tenant-a", "enabled": True}
    assert results["tenant-idle"]["enabled"] is False
    assert results["tenant-unknown"]["enabled"] is False


def test_tenant_channels_lists_text_channels_in_order(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> list[httpx.Response]:
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    listed = await client.get("/notifications/chat/tenants/tenant-a/channels")
                    not_connected = await client.get("/notifications/chat/tenants/tenant-idle/channels")
        await dispose_engines()
        return [listed, not_connected]

    listed, not_connected = _run(body())

    assert listed.status_code == 200
    assert listed.json() == {
        "channels": [
            {"id": "c1", "name": "new-leads", "type": 0, "position": 1},
            {"id": "c2", "name": "wins", "type": 0, "position": 2},
        ]
    }
    assert provider.requests[0].url.path == "/api/v10/guilds/g1/channels"
    assert not_connected.status_code == 400


def test_tenant_channels_reports_provider_failure(tmp_path) -> None:
    provider = _FakeProvider(channels_status=403)

    async def body() -> httpx.Response:
        async with _provider_client(provider) as provider_client:
            app = await _prepare_app(tmp_path, provider_client)
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    response = await client.get("/notifications/chat/tenants/tenant-a/channels")
        await dispose_engines()
        return response

    response = _run(body())

    assert response.status_code == 502


def test_missing_bot_token_disables_chat_features(tmp_path) -> None:
    async def body() -> dict[str, httpx.Response]:
        app = await _prepare_app(tmp_path, None, bot_token=None)
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                responses = {
                    "health": await client.get("/health"),
                    "channels": await client.get("/notifications/chat/tenants/tenant-a/channels"),
                    "status": await client.get("/notifications/chat/tenants/tenant-a/status"),
                    "queue": await client.post(
                        "/notifications/chat",
                        json={"type": "dealWon", "tenantId": "tenant-a", "lead": {"companyName": "Acme"}},
                    ),
                }
            await app.state.chat_notifier.drain()
        await dispose_engines()
        return responses

    responses = _run(body())

    assert responses["health"].json() == {"status": "ok", "chatIntegration": "disabled"}
    assert responses["channels"].status_code == 503
    assert responses["status"].json()["enabled"] is False
    assert responses["queue"].status_code == 202


def test_tenant_channels_reports_store_outage(tmp_path) -> None:
    provider = _FakeProvider()

    async def body() -> httpx.Response:
        settings = ServiceSettings(
            enable_metrics=False,
            enable_tracing=False,
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}",
            chat_bot_token="token",
        )
        async with _provider_client(provider) as provider_client:
            app = create_app(
                settings,
                transport=DiscordTransport("token", client=provider_client),
                rate_limits=RateLimitTracker(),
            )
            async with lifespan(app):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    response = await client.get("/notifications/chat/tenants/tenant-a/channels")
        await dispose_engines()
        return response

    response = _run(body())

    assert response.status_code == 503
    assert response.json() == {"detail": "Tenant store unavailable"}
    assert provider.requests == []


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
