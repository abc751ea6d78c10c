"""
Alembic environment configuration for the calendar sync service.

Only the tables owned by this service are migrated here. The scheduling
domain's tables are mapped read-only and flagged ``info={"external": True}``;
they are excluded from autogenerate.
"""

import logging
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

# Import application config to get database URL
from calendar_sync.config import get_settings

# Import Base for autogenerate support
from calendar_sync.models.base import Base

# Import all models so Alembic can detect them for autogenerate
from calendar_sync.models.connections import CalendarConnection, VenueCalendar  # noqa: F401
from calendar_sync.models.sync import SyncedEvent  # noqa: F401
from calendar_sync.models import scheduling  # noqa: F401

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Get database URL from application settings (overrides alembic.ini)
settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.database_url)

# Set target metadata for autogenerate
target_metadata = Base.metadata


def include_object(obj, name, type_, reflected, compare_to):
    """Skip tables owned by the scheduling application."""
    if type_ == "table" and obj.info.get("external"):
        return False
    return True


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Emits SQL to the script output without connecting to the database.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # Required for SQLite ALTER TABLE support
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # Don't pool connections for migrations
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            render_as_batch=True,  # Required for SQLite ALTER TABLE support
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    logger.info("Running migrations offline")
    run_migrations_offline()
else:
    logger.info("Running migrations online")
    run_migrations_online()
