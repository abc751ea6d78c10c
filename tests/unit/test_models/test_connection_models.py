"""Tests for connection and sync mapping models."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from calendar_sync.models.base import as_utc
from calendar_sync.models.connections import (
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    STATUS_NEEDS_REAUTH,
    CalendarConnection,
    VenueCalendar,
)
from calendar_sync.models.sync import SyncedEvent


def build_connection(**overrides) -> CalendarConnection:
    values = dict(
        user_id="member-1",
        tenant_id="org-1",
        provider_email="member-1@example.com",
        access_token_encrypted=b"access",
        refresh_token_encrypted=b"refresh",
        token_expiry=datetime(2025, 1, 5, 12, 0, tzinfo=timezone.utc),
        is_active=True,
        requires_reauth=False,
    )
    values.update(overrides)
    return CalendarConnection(**values)


class TestAsUtc:
    def test_naive_is_read_as_utc(self):
        result = as_utc(datetime(2025, 1, 5, 12, 0))
        assert result == datetime(2025, 1, 5, 12, 0, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = as_utc(datetime(2025, 1, 5, 14, 0, tzinfo=plus_two))
        assert result == datetime(2025, 1, 5, 12, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_none(self):
        assert as_utc(None) is None


class TestConnectionStatus:
    def test_connected(self):
        assert build_connection().status == STATUS_CONNECTED

    def test_needs_reauth_wins(self):
        connection = build_connection(requires_reauth=True, is_active=False)
        assert connection.status == STATUS_NEEDS_REAUTH

    def test_inactive(self):
        assert build_connection(is_active=False).status == STATUS_DISCONNECTED


class TestNeedsRefresh:
    """Token refresh decision with the skew window."""

    expiry = datetime(2025, 1, 5, 12, 0, tzinfo=timezone.utc)
    skew = timedelta(minutes=5)

    def test_well_before_expiry(self):
        connection = build_connection(token_expiry=self.expiry)
        assert connection.needs_refresh(self.skew, now=self.expiry - timedelta(minutes=30)) is False

    def test_inside_skew_window(self):
        connection = build_connection(token_expiry=self.expiry)
        assert connection.needs_refresh(self.skew, now=self.expiry - timedelta(minutes=4)) is True

    def test_already_expired(self):
        connection = build_connection(token_expiry=self.expiry)
        assert connection.needs_refresh(self.skew, now=self.expiry + timedelta(seconds=1)) is True

    def test_naive_expiry_from_sqlite(self):
        connection = build_connection(token_expiry=datetime(2025, 1, 5, 12, 0))
        assert connection.needs_refresh(self.skew, now=self.expiry - timedelta(hours=1)) is False


class TestPersistence:
    @pytest.mark.asyncio
    async def test_one_connection_per_user(self, session_factory):
        async with session_factory() as session:
            session.add(build_connection())
            await session.commit()

        async with session_factory() as session:
            session.add(build_connection())
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_defaults_and_guid(self, session_factory):
        async with session_factory() as session:
            connection = build_connection()
            session.add(connection)
            await session.commit()
            connection_id = connection.id

        async with session_factory() as session:
            loaded = await session.get(CalendarConnection, connection_id)

        assert isinstance(loaded.id, uuid.UUID)
        assert loaded.sync_organization_calendar is False
        assert loaded.sync_personal_calendar is False
        assert loaded.created_at is not None

    @pytest.mark.asyncio
    async def test_venue_calendar_unique_per_connection(self, session_factory):
        async with session_factory() as session:
            connection = build_connection()
            session.add(connection)
            await session.flush()
            session.add(VenueCalendar(connection_id=connection.id, venue_id="venue-north"))
            session.add(VenueCalendar(connection_id=connection.id, venue_id="venue-north"))
            with pytest.raises(IntegrityError):
                await session.commit()

    @pytest.mark.asyncio
    async def test_mapping_unique_per_scope_key(self, session_factory):
        """Two venue mappings of the same event are allowed; duplicates are not."""
        async with session_factory() as session:
            connection = build_connection()
            session.add(connection)
            await session.flush()

            def mapping(scope_key, venue_id=None):
                return SyncedEvent(
                    connection_id=connection.id,
                    event_id="event-1",
                    scope="venue",
                    venue_id=venue_id,
                    scope_key=scope_key,
                    provider_calendar_id="cal",
                    provider_event_id=f"evt-{scope_key}",
                )

            session.add(mapping("venue:venue-north", "venue-north"))
            session.add(mapping("venue:venue-south", "venue-south"))
            await session.commit()

            session.add(mapping("venue:venue-north", "venue-north"))
            with pytest.raises(IntegrityError):
                await session.commit()
