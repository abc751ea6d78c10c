"""
Unit tests for engine and session factory configuration.
"""

import pytest
from sqlalchemy import inspect, text

from calendar_sync.config import Settings
from calendar_sync.database import (
    create_engine_from_settings,
    create_session_factory,
    get_async_database_url,
    init_db,
)


class TestAsyncDatabaseUrl:
    def test_sqlite(self):
        assert get_async_database_url("sqlite:///./data/app.db") == "sqlite+aiosqlite:///./data/app.db"

    def test_postgresql(self):
        assert (
            get_async_database_url("postgresql://user:pw@db:5432/app")
            == "postgresql+asyncpg://user:pw@db:5432/app"
        )

    def test_already_async(self):
        assert get_async_database_url("sqlite+aiosqlite://") == "sqlite+aiosqlite://"


class TestEngine:
    def test_production_requires_complete_config(self):
        settings = Settings(_env_file=None, python_env="production", database_url="sqlite:///x.db")

        with pytest.raises(ValueError):
            create_engine_from_settings(settings)

    @pytest.mark.asyncio
    async def test_sqlite_enforces_foreign_keys(self):
        engine = create_engine_from_settings(Settings(_env_file=None, database_url="sqlite://"))
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("PRAGMA foreign_keys"))
                assert result.scalar() == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_init_db_creates_only_own_tables(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'sync.db'}"
        engine = create_engine_from_settings(Settings(_env_file=None, database_url=url))
        try:
            await init_db(engine)
            async with engine.connect() as conn:
                tables = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        finally:
            await engine.dispose()

        assert {"calendar_connections", "venue_calendars", "synced_events"} <= tables
        assert "events" not in tables

    @pytest.mark.asyncio
    async def test_session_factory_keeps_objects_loaded(self):
        engine = create_engine_from_settings(Settings(_env_file=None, database_url="sqlite://"))
        try:
            factory = create_session_factory(engine)
            assert factory.kw["expire_on_commit"] is False
            async with factory() as session:
                assert (await session.execute(text("SELECT 1"))).scalar() == 1
        finally:
            await engine.dispose()
