"""SQLAlchemy async database configuration for the auth_service.

This module builds the async engine and session factory from
:class:`config.Settings` and exposes a dependency provider for FastAPI
endpoints. The factory is stored on ``app.state`` by the application
lifespan so that each request gets its own session.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from config import Settings

logger = logging.getLogger(__name__)


class Base(AsyncAttrs, declarative_base()):
    """Abstract base class for all ORM models."""

    __abstract__ = True
    __allow_unmapped__ = True


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by ``settings.database_url``.

    SQLite connections are not pooled: aiosqlite connections are bound to
    the event loop that opened them.
    """
    kwargs = {"echo": settings.db_echo}
    if settings.database_url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    return create_async_engine(settings.database_url, **kwargs)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create missing tables. Alembic remains the source of truth in production."""
    import models  # noqa: F401  register mappers on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized.")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an asynchronous database session.

    Sessions are created from the factory stored on ``app.state`` during
    startup, ensuring proper lifecycle management per request.
    """
    async with request.app.state.sessionmaker() as session:
        yield session
