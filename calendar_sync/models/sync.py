"""
Sync mapping model.

One row per (connection, scope, event) that has been pushed to Google. The
stored hash lets the sync service skip provider calls for unchanged events.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from calendar_sync.models.base import BaseModel, utcnow


class SyncedEvent(BaseModel):
    """
    Maps an internal event to the Google event created for one target calendar.

    Attributes:
        connection_id: Connection whose Google account holds the event
        event_id: Internal event ID
        scope: organization, venue or personal
        venue_id: Venue ID for venue scope, NULL otherwise
        scope_key: organization | personal | venue:<venue_id> (unique per event)
        provider_calendar_id: Google calendar the event lives in
        provider_event_id: Google event ID
        event_hash: Content hash of the last pushed version
        last_synced_at: When the event was last written to Google
    """

    __tablename__ = "synced_events"

    connection_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_connections.id", ondelete="CASCADE"),
        nullable=False,
    )

    event_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    venue_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    scope_key: Mapped[str] = mapped_column(
        String(300),
        nullable=False,
    )

    provider_calendar_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
    )

    provider_event_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
    )

    event_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index(
            "ix_synced_events_target",
            "connection_id", "event_id", "scope_key",
            unique=True,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncedEvent(event_id={self.event_id}, scope_key={self.scope_key}, "
            f"provider_event_id={self.provider_event_id})>"
        )
