from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from services.common import ServiceSettings, dispose_engines
from services.chat_notification_service.app.main import create_app


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("bot_token", "expected"),
    [(None, "disabled"), ("token", "configured")],
)
async def test_health_endpoint_reports_chat_integration(tmp_path, bot_token: str | None, expected: str) -> None:
    settings = ServiceSettings(
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
        chat_bot_token=bot_token,
    )
    app = create_app(settings)

    async with lifespan(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
    await dispose_engines()

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "chatIntegration": expected}


@pytest.mark.asyncio
async def test_metrics_endpoint_is_exposed_when_enabled(tmp_path) -> None:
    settings = ServiceSettings(
        app_name="Chat Metrics Test",
        enable_metrics=True,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}",
    )
    app = create_app(settings)

    async with lifespan(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/metrics")
    await dispose_engines()

    assert response.status_code == 200
    assert "chat_notifications_sent_total" in response.text


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
