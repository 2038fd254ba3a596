"""
Database Configuration Module

EXPLANATION:
============
This module owns the process-wide database connection pool, built on the
SQLAlchemy async ORM.

Key Concepts:
1. ORM: Maps Python classes to database tables
2. Async: Uses async/await for non-blocking database operations
3. Session: One AsyncSession per operation, one transaction per write
4. Connection Pool: The engine's pool is shared by every request

Lazy, single-flight initialization:
- The engine is NOT created at import time. The first caller of
  get_engine() creates it while holding an asyncio.Lock; callers arriving
  meanwhile wait on the lock and then reuse the same engine, so concurrent
  first requests never create duplicate pools.
- dispose_engine() tears the pool down on shutdown (and between tests).

SQLite is the development default; set DATABASE_URL for PostgreSQL.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from core.config import DATABASE_URL

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

_database_url: str = DATABASE_URL
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None
_init_lock = asyncio.Lock()


def _is_in_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def _create_engine(url: str) -> AsyncEngine:
    """
    Build the async engine for a URL.

    An in-memory SQLite database lives inside a single connection, so it
    gets a StaticPool that hands every session that same connection.
    """
    options = {"echo": False, "future": True}
    if _is_in_memory_sqlite(url):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    return create_async_engine(url, **options)


async def get_engine() -> AsyncEngine:
    """Return the shared engine, creating it on first use."""
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    async with _init_lock:
        # Another caller may have finished initialization while we waited
        if _engine is None:
            engine = _create_engine(_database_url)
            _session_factory = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False
            )
            _engine = engine
            logger.info(f"Database engine created ({make_url(_database_url).get_backend_name()})")

    return _engine


async def get_session() -> AsyncSession:
    """
    Get a new database session.

    The caller owns the session and must close it; prefer session_scope().
    """
    await get_engine()
    return _session_factory()


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    Provide a session that is always closed afterwards.

    Usage:
        async with session_scope() as session:
            async with session.begin():
                ...  # committed on exit, rolled back on exception
    """
    session = await get_session()
    try:
        yield session
    finally:
        await session.close()


async def init_db():
    """
    Create all tables.

    Idempotent: existing tables are left alone. A production deployment
    would manage schema changes with migrations instead.
    """
    engine = await get_engine()
    async with engine.begin() as conn:
        # Import all models so they're registered with Base
        from . import user, video  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")


async def dispose_engine():
    """Close every pooled connection and forget the engine."""
    global _engine, _session_factory, _init_lock

    async with _init_lock:
        if _engine is not None:
            await _engine.dispose()
            logger.info("Database engine disposed")
        _engine = None
        _session_factory = None

    # A fresh lock so the next initialization is not tied to a closed event loop
    _init_lock = asyncio.Lock()


async def configure_database(url: str):
    """Point the module at another database (disposes the current engine)."""
    global _database_url

    await dispose_engine()
    _database_url = url
