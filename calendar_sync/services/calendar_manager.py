"""
Calendar manager for Google Calendar sync.

Creates, reuses and deletes the secondary calendars the service owns in a
user's Google account:
- "{org} - Public": organization-wide events (admins only)
- "{org} - {venue}": events linked to one venue
- "{org} - Personal": the user's assignments and invitations

Creation is check-then-create. Disabling a calendar never deletes it, so
re-enabling reuses the stored ID.
"""

import logging
import math
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.config import Settings, get_settings
from calendar_sync.integrations.base import CalendarScope, SchedulingDirectory, SyncTarget
from calendar_sync.integrations.google_calendar.exceptions import (
    ConnectionNotFoundError,
    GoogleCalendarError,
    SyncValidationError,
)
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository
from calendar_sync.models.connections import CalendarConnection, VenueCalendar
from calendar_sync.models.sync import SyncedEvent
from calendar_sync.services.token_manager import ConnectionPreferences, TokenManager

logger = logging.getLogger(__name__)

# Google Calendar colour palette (calendarList colorId -> background)
GOOGLE_CALENDAR_COLORS = {
    "1": "#7986cb",  # Lavender
    "2": "#33b679",  # Sage
    "3": "#8e24aa",  # Grape
    "4": "#e67c73",  # Flamingo
    "5": "#f6bf26",  # Banana
    "6": "#f4511e",  # Tangerine
    "7": "#039be5",  # Peacock
    "8": "#616161",  # Graphite
    "9": "#3f51b5",  # Blueberry
    "10": "#0b8043",  # Basil
    "11": "#d50000",  # Tomato
}
DEFAULT_COLOR_ID = "9"

_CONNECTION_COLUMNS = {
    CalendarScope.ORGANIZATION: "organization_calendar_id",
    CalendarScope.PERSONAL: "personal_calendar_id",
}


def _hex_to_rgb(value: str) -> tuple[int, int, int]:
    value = value.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        raise ValueError(f"Not a hex colour: {value!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def find_closest_google_color_id(hex_color: Optional[str]) -> str:
    """Nearest Google palette entry by RGB distance; Blueberry when unknown."""
    if not hex_color:
        return DEFAULT_COLOR_ID
    try:
        target = _hex_to_rgb(hex_color)
    except ValueError:
        return DEFAULT_COLOR_ID

    return min(
        GOOGLE_CALENDAR_COLORS,
        key=lambda color_id: math.dist(target, _hex_to_rgb(GOOGLE_CALENDAR_COLORS[color_id])),
    )


def calendar_summary(scope: CalendarScope, org_name: str, venue_name: Optional[str] = None) -> str:
    """Display name of a managed calendar."""
    if scope == CalendarScope.ORGANIZATION:
        return f"{org_name} - Public"
    if scope == CalendarScope.PERSONAL:
        return f"{org_name} - Personal"
    return f"{org_name} - {venue_name}"


def _calendar_description(scope: CalendarScope, org_name: str, venue_name: Optional[str] = None) -> str:
    if scope == CalendarScope.ORGANIZATION:
        return f"Public events of {org_name}"
    if scope == CalendarScope.PERSONAL:
        return "Your assignments and invitations"
    return f"Events at {venue_name}"


class CalendarManager:
    """Lifecycle of the Google calendars behind each sync scope."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        token_manager: TokenManager,
        directory: SchedulingDirectory,
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._token_manager = token_manager
        self._directory = directory
        self._settings = settings or get_settings()

    async def _client(
        self,
        connection_id: uuid.UUID,
        client: Optional[GoogleCalendarRepository],
    ) -> GoogleCalendarRepository:
        if client is not None:
            return client
        return await self._token_manager.get_authenticated_client(connection_id)

    async def _load_connection(self, session: AsyncSession, connection_id: uuid.UUID) -> CalendarConnection:
        connection = await session.get(CalendarConnection, connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        return connection

    # =========================================================================
    # Organization / personal calendars
    # =========================================================================

    async def _ensure_connection_calendar(
        self,
        connection_id: uuid.UUID,
        scope: CalendarScope,
        org_name: Optional[str] = None,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> str:
        column = _CONNECTION_COLUMNS[scope]

        async with self._session_factory() as session:
            connection = await self._load_connection(session, connection_id)
            existing = getattr(connection, column)
            tenant_id = connection.tenant_id
        if existing:
            return existing

        if org_name is None:
            org_name = await self._directory.get_organization_name(tenant_id)

        client = await self._client(connection_id, client)
        calendar_id = await client.create_calendar(
            summary=calendar_summary(scope, org_name),
            description=_calendar_description(scope, org_name),
            time_zone=self._settings.timezone,
        )

        async with self._session_factory() as session:
            connection = await self._load_connection(session, connection_id)
            stored = getattr(connection, column)
            if stored:
                logger.warning(
                    f"Concurrent {scope.value} calendar creation for connection "
                    f"{connection_id}; keeping {stored}, orphaned {calendar_id}"
                )
                return stored
            setattr(connection, column, calendar_id)
            await session.commit()

        logger.info(f"Created {scope.value} calendar {calendar_id} for connection {connection_id}")
        return calendar_id

    async def create_organization_calendar(
        self,
        connection_id: uuid.UUID,
        org_name: str,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> str:
        """Create "{org} - Public" unless the connection already has one."""
        return await self._ensure_connection_calendar(
            connection_id, CalendarScope.ORGANIZATION, org_name, client
        )

    async def create_personal_calendar(
        self,
        connection_id: uuid.UUID,
        org_name: str,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> str:
        """Create "{org} - Personal" unless the connection already has one."""
        return await self._ensure_connection_calendar(
            connection_id, CalendarScope.PERSONAL, org_name, client
        )

    async def set_organization_calendar_sync(
        self,
        connection_id: uuid.UUID,
        enabled: bool,
        org_name: Optional[str] = None,
    ) -> CalendarConnection:
        """Enable (creating the calendar on first use) or disable org sync."""
        if enabled:
            await self._ensure_connection_calendar(connection_id, CalendarScope.ORGANIZATION, org_name)
        return await self._token_manager.update_connection_preferences(
            connection_id, ConnectionPreferences(sync_organization_calendar=enabled)
        )

    async def set_personal_calendar_sync(
        self,
        connection_id: uuid.UUID,
        enabled: bool,
        org_name: Optional[str] = None,
    ) -> CalendarConnection:
        """Enable (creating the calendar on first use) or disable personal sync."""
        if enabled:
            await self._ensure_connection_calendar(connection_id, CalendarScope.PERSONAL, org_name)
        return await self._token_manager.update_connection_preferences(
            connection_id, ConnectionPreferences(sync_personal_calendar=enabled)
        )

    # =========================================================================
    # Venue calendars
    # =========================================================================

    async def _get_venue_calendar(
        self,
        session: AsyncSession,
        connection_id: uuid.UUID,
        venue_id: str,
    ) -> Optional[VenueCalendar]:
        stmt = select(VenueCalendar).where(
            VenueCalendar.connection_id == connection_id,
            VenueCalendar.venue_id == venue_id,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _create_venue_provider_calendar(
        self,
        client: GoogleCalendarRepository,
        org_name: str,
        venue_name: str,
        venue_color: Optional[str],
    ) -> str:
        calendar_id = await client.create_calendar(
            summary=calendar_summary(CalendarScope.VENUE, org_name, venue_name),
            description=_calendar_description(CalendarScope.VENUE, org_name, venue_name),
            time_zone=self._settings.timezone,
        )
        if venue_color:
            try:
                await client.set_calendar_color(calendar_id, find_closest_google_color_id(venue_color))
            except GoogleCalendarError as e:
                logger.warning(f"Could not set colour on calendar {calendar_id}: {e.message}")
        return calendar_id

    async def list_venue_calendars(self, connection_id: uuid.UUID) -> list[VenueCalendar]:
        stmt = select(VenueCalendar).where(VenueCalendar.connection_id == connection_id)
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())

    async def toggle_venue_calendar_sync(
        self,
        connection_id: uuid.UUID,
        venue_id: str,
        enabled: bool,
        org_name: str,
        venue_name: str,
        venue_color: Optional[str] = None,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> Optional[VenueCalendar]:
        """
        Enable or disable sync of one venue calendar.

        - Enable, no row: create "{org} - {venue}" and insert the row
        - Enable, row exists: flip the flag (recreate only an invalidated calendar)
        - Disable: flip the flag, keep the calendar

        Returns:
            The venue calendar row, or None when disabling a venue never enabled
        """
        async with self._session_factory() as session:
            row = await self._get_venue_calendar(session, connection_id, venue_id)

            if not enabled:
                if row is None:
                    return None
                row.sync_enabled = False
                await session.commit()
                logger.info(f"Disabled venue {venue_id} sync for connection {connection_id}")
                return row

            if row is not None and row.provider_calendar_id:
                row.sync_enabled = True
                await session.commit()
                logger.info(f"Re-enabled venue {venue_id} sync for connection {connection_id}")
                return row

        client = await self._client(connection_id, client)
        calendar_id = await self._create_venue_provider_calendar(
            client, org_name, venue_name, venue_color
        )

        async with self._session_factory() as session:
            row = await self._get_venue_calendar(session, connection_id, venue_id)
            if row is None:
                row = VenueCalendar(
                    connection_id=connection_id,
                    venue_id=venue_id,
                    provider_calendar_id=calendar_id,
                    sync_enabled=True,
                )
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.warning(
                        f"Concurrent venue calendar creation for connection {connection_id} "
                        f"venue {venue_id}; orphaned {calendar_id}"
                    )
                    row = await self._get_venue_calendar(session, connection_id, venue_id)
                    row.sync_enabled = True
                    await session.commit()
            else:
                if row.provider_calendar_id:
                    logger.warning(
                        f"Concurrent venue calendar creation for connection {connection_id} "
                        f"venue {venue_id}; orphaned {calendar_id}"
                    )
                else:
                    row.provider_calendar_id = calendar_id
                row.sync_enabled = True
                await session.commit()

        logger.info(f"Enabled venue {venue_id} sync for connection {connection_id}")
        return row

    # =========================================================================
    # Used by the sync service
    # =========================================================================

    async def ensure_calendar(
        self,
        connection_id: uuid.UUID,
        target: SyncTarget,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> str:
        """
        Google calendar ID for a sync target, creating the calendar if missing.

        Raises:
            SyncValidationError: Venue target without an enabled venue calendar
        """
        if target.scope in _CONNECTION_COLUMNS:
            return await self._ensure_connection_calendar(connection_id, target.scope, client=client)

        async with self._session_factory() as session:
            row = await self._get_venue_calendar(session, connection_id, target.venue_id)
            if row is None:
                raise SyncValidationError(
                    f"Venue {target.venue_id} is not enabled for connection {connection_id}"
                )
            if row.provider_calendar_id:
                return row.provider_calendar_id
            connection = await self._load_connection(session, connection_id)
            tenant_id = connection.tenant_id

        venue = await self._directory.get_venue(target.venue_id)
        if venue is None:
            raise SyncValidationError(f"Venue {target.venue_id} not found")

        org_name = await self._directory.get_organization_name(tenant_id)
        client = await self._client(connection_id, client)
        await self.toggle_venue_calendar_sync(
            connection_id,
            venue.id,
            True,
            org_name=org_name,
            venue_name=venue.name,
            venue_color=venue.color,
            client=client,
        )

        async with self._session_factory() as session:
            row = await self._get_venue_calendar(session, connection_id, target.venue_id)
            return row.provider_calendar_id

    async def invalidate_calendar(self, connection_id: uuid.UUID, target: SyncTarget) -> None:
        """
        Forget a calendar that no longer exists in Google.

        Mappings pointing into it are dropped as well, so the next sync
        recreates the calendar and re-inserts its events.
        """
        async with self._session_factory() as session:
            if target.scope in _CONNECTION_COLUMNS:
                connection = await session.get(CalendarConnection, connection_id)
                if connection is not None:
                    setattr(connection, _CONNECTION_COLUMNS[target.scope], None)
            else:
                row = await self._get_venue_calendar(session, connection_id, target.venue_id)
                if row is not None:
                    row.provider_calendar_id = None

            await session.execute(
                delete(SyncedEvent).where(
                    SyncedEvent.connection_id == connection_id,
                    SyncedEvent.scope_key == target.scope_key,
                )
            )
            await session.commit()

        logger.warning(f"Invalidated missing calendar {target}")

    async def delete_all_calendars(
        self,
        connection_id: uuid.UUID,
        client: Optional[GoogleCalendarRepository] = None,
    ) -> list[str]:
        """
        Delete every managed calendar from Google (best-effort).

        Returns:
            Calendar IDs that could not be deleted
        """
        async with self._session_factory() as session:
            connection = await self._load_connection(session, connection_id)
            calendar_ids = [
                cid
                for cid in (connection.organization_calendar_id, connection.personal_calendar_id)
                if cid
            ]
            stmt = select(VenueCalendar.provider_calendar_id).where(
                VenueCalendar.connection_id == connection_id,
                VenueCalendar.provider_calendar_id.is_not(None),
            )
            calendar_ids.extend((await session.scalars(stmt)).all())

        if not calendar_ids:
            return []

        client = await self._client(connection_id, client)
        failed: list[str] = []
        for calendar_id in calendar_ids:
            try:
                await client.delete_calendar(calendar_id)
            except GoogleCalendarError as e:
                logger.error(f"Failed to delete calendar {calendar_id}: {e.message}")
                failed.append(calendar_id)

        async with self._session_factory() as session:
            connection = await self._load_connection(session, connection_id)
            connection.organization_calendar_id = None
            connection.personal_calendar_id = None
            venue_rows = (
                await session.scalars(
                    select(VenueCalendar).where(VenueCalendar.connection_id == connection_id)
                )
            ).all()
            for row in venue_rows:
                row.provider_calendar_id = None
            await session.commit()

        return failed
