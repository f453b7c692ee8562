"""Database configuration and session management for the short link service.

This module provides SQLAlchemy async engine setup, session factories,
and database lifecycle operations using PostgreSQL as the backend.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ ServiceManager│
    │ initialize()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_      │
    │ engine()     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_      │
    │ session_     │
    │ factory()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SqlLinkStore │
    │ opens one    │
    │ session per  │
    │ operation    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()   │
    │ (shutdown)   │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine**::
    engine = create_engine(settings)
    await init_db(engine)  # Creates tables

**Step 2 — Hand a session factory to the stores**::
    session_factory = create_session_factory(engine)
    store = SqlLinkStore(session_factory)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Every store operation runs in its own short-lived session and transaction.
- Connection pooling is configured for production PostgreSQL workloads.
- SQLite URLs (used by the test-suite) skip the pool sizing options.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine from Settings.
    create_session_factory():  Builds an async_sessionmaker bound to an engine.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlinks.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        echo=(settings.APP_ENV == "development"),
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Imported for its side effect of registering the tables on Base.metadata.
    import shortlinks.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
