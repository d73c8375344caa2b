"""Async SQLAlchemy helpers for the tenant store."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import ServiceSettings

_ENGINES: dict[str, AsyncEngine] = {}
_SESSION_FACTORIES: dict[str, async_sessionmaker[AsyncSession]] = {}


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create or reuse the cached AsyncEngine for ``database_url``."""

    engine = _ENGINES.get(database_url)
    if engine is None:
        engine = create_async_engine(database_url, pool_pre_ping=True, **kwargs)
        _ENGINES[database_url] = engine
    return engine


def get_session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    """Return the cached async_sessionmaker bound to ``database_url``."""

    factory = _SESSION_FACTORIES.get(database_url)
    if factory is None:
        factory = async_sessionmaker(create_engine(database_url), expire_on_commit=False)
        _SESSION_FACTORIES[database_url] = factory
    return factory


@asynccontextmanager
async def lifespan_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Session that commits on success and rolls back on error."""

    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def read_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Session for lookups; never commits."""

    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


def resolve_database_url(settings: ServiceSettings, fallback: str) -> str:
    return settings.database_url or fallback


async def dispose_engines() -> None:
    """Dispose all cached engines (shutdown and tests)."""

    for engine in _ENGINES.values():
        await engine.dispose()
    _ENGINES.clear()
    _SESSION_FACTORIES.clear()
