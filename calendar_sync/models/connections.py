"""
Calendar connection storage models.

Stores the Google account each user linked, the encrypted OAuth tokens used
to act on their behalf, and the calendars the service created in that
account. Tokens are only ever written through the token cipher.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from calendar_sync.models.base import BaseModel, as_utc, utcnow

STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"
STATUS_NEEDS_REAUTH = "needs_reauth"


class CalendarConnection(BaseModel):
    """
    A user's linked Google account plus sync preferences and credentials.

    One row per user. Created on the first OAuth callback, rewritten on every
    token refresh and preference change, deleted on disconnect.

    Attributes:
        user_id: Profile ID of the owning user (scheduling domain)
        tenant_id: Organization the user belongs to
        provider_email: Google account email
        provider_user_id: Google account subject ID
        access_token_encrypted: Cipher text of the current access token
        refresh_token_encrypted: Cipher text of the refresh token
        token_expiry: When the access token expires
        organization_calendar_id: Google ID of the organization-wide calendar
        personal_calendar_id: Google ID of the personal calendar
        sync_organization_calendar: Push public events to the organization calendar
        sync_personal_calendar: Push the user's assignments to the personal calendar
        is_active: Connection may be used for syncing
        requires_reauth: Refresh grant was revoked, user must reconnect
    """

    __tablename__ = "calendar_connections"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Profile ID of the user who owns the connection"
    )

    tenant_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Organization (tenant) ID"
    )

    provider_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Google account email"
    )

    provider_user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Google account ID"
    )

    # Token storage (never plaintext)
    access_token_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        doc="Encrypted OAuth access token"
    )

    refresh_token_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        doc="Encrypted OAuth refresh token"
    )

    token_expiry: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="When the access token expires"
    )

    # Calendars created in the user's Google account
    organization_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        doc="Google ID of the organization-wide calendar"
    )

    personal_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        doc="Google ID of the personal calendar"
    )

    # Preferences
    sync_organization_calendar: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    sync_personal_calendar: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Health
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    requires_reauth: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_sync_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_calendar_connections_user_id", "user_id", unique=True),
    )

    @property
    def status(self) -> str:
        """User-visible connection status."""
        if self.requires_reauth:
            return STATUS_NEEDS_REAUTH
        if self.is_active:
            return STATUS_CONNECTED
        return STATUS_DISCONNECTED

    def needs_refresh(self, skew: timedelta, now: Optional[datetime] = None) -> bool:
        """Check if the access token is expired or expires within the skew window."""
        now = now or utcnow()
        return now >= as_utc(self.token_expiry) - skew

    def __repr__(self) -> str:
        return (
            f"<CalendarConnection(id={self.id}, user_id={self.user_id}, "
            f"status={self.status})>"
        )


class VenueCalendar(BaseModel):
    """
    Per-venue calendar created in a connection's Google account.

    Rows are never deleted when sync is disabled; the flag flips instead so
    re-enabling reuses the same Google calendar.
    """

    __tablename__ = "venue_calendars"

    connection_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_connections.id", ondelete="CASCADE"),
        nullable=False,
    )

    venue_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Venue (campus) ID from the scheduling domain"
    )

    provider_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        doc="Google calendar ID (NULL after the calendar vanished upstream)"
    )

    sync_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        Index("ix_venue_calendars_connection_venue", "connection_id", "venue_id", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<VenueCalendar(connection_id={self.connection_id}, venue_id={self.venue_id}, "
            f"sync_enabled={self.sync_enabled})>"
        )
