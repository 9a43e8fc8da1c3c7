"""Database configuration and session management for the short link service.

This module provides SQLAlchemy async engine setup, session factories,
and database lifecycle operations using PostgreSQL as the backend
(SQLite through aiosqlite works for local runs and tests).

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ create_engine()   │
    │ (pool + timeouts) │
    └──────┬───────────┘
           ▼
    ┌──────────────────┐
    │ create_session_  │
    │ factory(engine)  │
    └──────┬───────────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ serve       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ dispose     │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine on startup**::
    engine = create_engine(settings)
    sessions = create_session_factory(engine)
    await init_db(engine)

**Step 2 — Open a session per unit of work**::
    async with sessions() as session:
        result = await session.execute(select(LinkRecord))

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Connection checkout is bounded by DATABASE_TIMEOUT_SECONDS.
- PostgreSQL connections also carry a command timeout.
- Sessions never expire attributes on commit so records can be returned
  after the session is closed.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine for the configured URL.
    create_session_factory():  Builds the session factory.
    init_db():  Creates all tables.
    close_db():  Disposes the engine.
"""

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from shortlink.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def _engine_kwargs(settings: Settings) -> dict[str, Any]:
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "sqlite":
        kwargs: dict[str, Any] = {"connect_args": {"timeout": settings.DATABASE_TIMEOUT_SECONDS}}
        if url.database in (None, "", ":memory:"):
            # In-memory databases live as long as their single connection.
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_timeout": settings.DATABASE_TIMEOUT_SECONDS,
        "connect_args": {
            "timeout": settings.DATABASE_TIMEOUT_SECONDS,
            "command_timeout": settings.DATABASE_TIMEOUT_SECONDS,
        },
    }


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        **_engine_kwargs(settings),
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Models must be registered on Base.metadata before create_all.
    import shortlink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
