"""
Database configuration and session management.

The sync services take an ``async_sessionmaker`` and open one short session
per operation; nothing holds a session across provider calls.

Provides:
- create_engine_from_settings() for SQLite (aiosqlite) or PostgreSQL (asyncpg)
- create_session_factory() used by the API lifespan
- init_db() for development databases (production uses Alembic)
"""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from calendar_sync.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_async_database_url(sync_url: str) -> str:
    """Convert sync database URL to async URL."""
    if sync_url.lower().startswith("sqlite:"):
        return sync_url.replace("sqlite:", "sqlite+aiosqlite:", 1)
    if sync_url.lower().startswith("postgresql:"):
        return sync_url.replace("postgresql:", "postgresql+asyncpg:", 1)
    return sync_url


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Raises:
        ValueError: Production settings are incomplete
    """
    settings = settings or get_settings()
    if settings.is_production:
        settings.validate_production_config()

    url = get_async_database_url(settings.database_url)
    echo = settings.log_level == "DEBUG"

    if not settings.uses_postgresql:
        engine = create_async_engine(url, echo=echo)

        # Cascading deletes of venue calendars and mappings need FKs enforced
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_async_engine(
        url,
        pool_size=max(5, settings.sync_max_concurrency + 1),
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory handed to the sync services.

    Objects stay usable after commit: services read connection and mapping
    rows after their session has closed.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create this service's tables (development only; production uses Alembic)."""
    from calendar_sync.models.base import Base

    tables = [table for table in Base.metadata.sorted_tables if not table.info.get("external")]
    logger.info("Creating calendar sync tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables)
    logger.info("Calendar sync tables created")
