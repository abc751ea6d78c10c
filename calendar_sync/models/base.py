"""
Base model definitions for SQLAlchemy.

Provides:
- GUID TypeDecorator for UUID support across SQLite and PostgreSQL
- Base declarative base shared by sync tables and read-only scheduling tables
- BaseModel with common fields for tables owned by the sync service
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime loaded from the database to aware UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns; naive values are
    stored as UTC by this service.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.

    Uses PostgreSQL's UUID type on PostgreSQL databases.
    Uses CHAR(32) on SQLite databases (stores hex representation).
    """

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        """Load the appropriate type for the dialect."""
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID())
        else:
            return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        """
        Convert UUID to database-appropriate format.

        PostgreSQL: Store as UUID type (string representation)
        SQLite: Store as CHAR(32) (hex representation without dashes)
        """
        if value is None:
            return value

        if dialect.name == "postgresql":
            return str(value)
        else:
            if isinstance(value, uuid.UUID):
                return value.hex
            else:
                return uuid.UUID(value).hex if value else None

    def process_result_value(self, value, dialect):
        """Convert database value back to UUID."""
        if value is None:
            return value

        if isinstance(value, uuid.UUID):
            return value

        return uuid.UUID(value)


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        uuid.UUID: GUID,
    }


class BaseModel(Base):
    """
    Base model with common fields for tables owned by the sync service.

    Provides:
    - id: UUID primary key
    - created_at: Timestamp of record creation (UTC)
    - updated_at: Timestamp of last update (UTC, auto-updates)

    Timestamps are generated client-side so they stay readable on detached
    instances (sessions are closed right after each operation).
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
        doc="Unique identifier (UUID)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        doc="Timestamp of record creation (UTC)"
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=utcnow,
        nullable=True,
        doc="Timestamp of last update (UTC)"
    )

    def __repr__(self) -> str:
        """String representation showing class name and ID."""
        return f"<{self.__class__.__name__}(id={self.id})>"
