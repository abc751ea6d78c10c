"""
Pytest configuration and fixtures for calendar sync tests.

Provides an in-memory database, a seeded scheduling domain, and an
in-memory stand-in for Google Calendar accounts.
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from calendar_sync.auth.encryption import FernetTokenCipher
from calendar_sync.config import Settings
from calendar_sync.integrations.google_calendar.auth import GoogleOAuthFlow
from calendar_sync.integrations.google_calendar.exceptions import (
    CalendarNotFoundError,
    GoogleCalendarNotFoundError,
)
from calendar_sync.models.base import Base
from calendar_sync.models.scheduling import (
    Event,
    EventAssignment,
    EventInvitation,
    EventPosition,
    EventVenue,
    Location,
    Organization,
    Profile,
    ProfileVenue,
    Venue,
)
from calendar_sync.services import (
    CalendarManager,
    ConnectionInput,
    SQLAlchemySchedulingDirectory,
    SyncService,
    TokenManager,
)

ORG_ID = "org-1"
ORG_NAME = "Grace Church"


# =============================================================================
# Fake Google Calendar
# =============================================================================


class FakeCalendarAccount:
    """
    In-memory stand-in for one Google account, with the same interface as
    GoogleCalendarRepository.

    Set ``fail_with[method] = exc`` to make a method raise, or
    ``fail_with[(method, calendar_id)] = exc`` to fail it for one calendar.
    """

    def __init__(self, name: str):
        self.name = name
        self.calendars: dict[str, dict] = {}
        self.events: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self.fail_with: dict[object, Exception] = {}
        self._ids = itertools.count(1)

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        for key in (method, (method, *args[:1])):
            if key in self.fail_with:
                raise self.fail_with[key]

    def count(self, method: Optional[str] = None) -> int:
        if method is None:
            return len(self.calls)
        return sum(1 for call in self.calls if call[0] == method)

    def events_in(self, calendar_id: str) -> list[dict]:
        return list(self.events.get(calendar_id, {}).values())

    async def create_calendar(self, summary: str, description: str, time_zone: str) -> str:
        self._record("create_calendar", summary)
        calendar_id = f"{self.name}-cal-{next(self._ids)}"
        self.calendars[calendar_id] = {
            "summary": summary,
            "description": description,
            "timeZone": time_zone,
        }
        self.events[calendar_id] = {}
        return calendar_id

    async def delete_calendar(self, calendar_id: str) -> None:
        self._record("delete_calendar", calendar_id)
        self.calendars.pop(calendar_id, None)
        self.events.pop(calendar_id, None)

    async def set_calendar_color(self, calendar_id: str, color_id: str) -> None:
        self._record("set_calendar_color", calendar_id, color_id)
        self.calendars[calendar_id]["colorId"] = color_id

    async def insert_event(self, calendar_id: str, body: dict) -> str:
        self._record("insert_event", calendar_id)
        if calendar_id not in self.calendars:
            raise CalendarNotFoundError(calendar_id)
        event_id = f"{self.name}-evt-{next(self._ids)}"
        self.events[calendar_id][event_id] = dict(body, id=event_id)
        return event_id

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> str:
        self._record("update_event", calendar_id, event_id)
        if event_id not in self.events.get(calendar_id, {}):
            raise GoogleCalendarNotFoundError("Event or calendar not found")
        self.events[calendar_id][event_id] = dict(body, id=event_id)
        return event_id

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        self._record("delete_event", calendar_id, event_id)
        self.events.get(calendar_id, {}).pop(event_id, None)


class FakeGoogle:
    """Client factory handing out one FakeCalendarAccount per refresh token."""

    def __init__(self):
        self.accounts: dict[str, FakeCalendarAccount] = {}
        self.factory_calls: list[dict] = []

    def account(self, refresh_token: str) -> FakeCalendarAccount:
        if refresh_token not in self.accounts:
            self.accounts[refresh_token] = FakeCalendarAccount(refresh_token)
        return self.accounts[refresh_token]

    def client_factory(self, access_token, refresh_token, token_expiry=None, settings=None):
        self.factory_calls.append(
            {"access_token": access_token, "refresh_token": refresh_token, "token_expiry": token_expiry}
        )
        return self.account(refresh_token)


# =============================================================================
# Settings & database
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment, with retries that never sleep."""
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        app_base_url="https://app.example.com",
        timezone="Europe/Warsaw",
        google_oauth_client_id="client-id",
        google_oauth_client_secret="client-secret",
        token_encryption_key="test-encryption-secret",
        provider_retry_attempts=3,
        provider_retry_backoff_seconds=0,
        sync_max_concurrency=1,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a clean file-backed SQLite database.

    NullPool gives every session its own connection, as a real pool would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# =============================================================================
# Scheduling domain data
# =============================================================================


@pytest_asyncio.fixture
async def organization(session_factory):
    """
    Seed one organization.

    - admin-1: admin
    - member-1: member of North Campus
    - member-2: member without venues
    """
    async with session_factory() as session:
        session.add(Organization(id=ORG_ID, name=ORG_NAME))
        session.add_all(
            [
                Profile(id="admin-1", organization_id=ORG_ID, role="admin"),
                Profile(id="member-1", organization_id=ORG_ID, role="member"),
                Profile(id="member-2", organization_id=ORG_ID, role="member"),
                Venue(id="venue-north", organization_id=ORG_ID, name="North Campus", color="#0b8043"),
                Venue(id="venue-south", organization_id=ORG_ID, name="South Campus"),
                Location(id="loc-1", name="Main Hall", address="1 Church St"),
            ]
        )
        await session.flush()
        session.add(ProfileVenue(profile_id="member-1", venue_id="venue-north"))
        await session.commit()
    return ORG_ID


@pytest.fixture
def make_event(session_factory, organization):
    """
    Factory inserting an event into the scheduling tables.

    ``assignments`` is a list of (role_title, profile_id, status).
    """

    async def _make_event(
        event_id: str = "event-1",
        *,
        title: str = "Sunday Service",
        description: Optional[str] = None,
        start: datetime = datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc),
        end: datetime = datetime(2025, 1, 5, 10, 30, tzinfo=timezone.utc),
        is_all_day: Optional[bool] = False,
        status: str = "published",
        visibility: str = "members",
        location_id: Optional[str] = None,
        venue_ids: tuple = (),
        assignments: tuple = (),
        invited: tuple = (),
    ) -> str:
        async with session_factory() as session:
            session.add(
                Event(
                    id=event_id,
                    organization_id=ORG_ID,
                    title=title,
                    description=description,
                    start_time=start,
                    end_time=end,
                    is_all_day=is_all_day,
                    status=status,
                    visibility=visibility,
                    location_id=location_id,
                )
            )
            await session.flush()
            for venue_id in venue_ids:
                session.add(EventVenue(event_id=event_id, venue_id=venue_id))

            positions: dict[str, EventPosition] = {}
            for role_title, profile_id, assignment_status in assignments:
                position = positions.get(role_title)
                if position is None:
                    position = EventPosition(
                        id=f"{event_id}-{role_title}", event_id=event_id, title=role_title
                    )
                    positions[role_title] = position
                    session.add(position)
                    await session.flush()
                session.add(
                    EventAssignment(
                        id=str(uuid.uuid4()),
                        position_id=position.id,
                        profile_id=profile_id,
                        status=assignment_status,
                    )
                )
            for profile_id in invited:
                session.add(
                    EventInvitation(id=str(uuid.uuid4()), event_id=event_id, profile_id=profile_id)
                )
            await session.commit()
        return event_id

    return _make_event


@pytest.fixture
def edit_event(session_factory):
    """Update columns of a stored event."""

    async def _edit_event(event_id: str, **fields) -> None:
        async with session_factory() as session:
            row = await session.get(Event, event_id)
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()

    return _edit_event


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def cipher(settings) -> FernetTokenCipher:
    return FernetTokenCipher(settings.token_encryption_key)


@pytest.fixture
def oauth_flow() -> MagicMock:
    """OAuth flow mock; its async methods become AsyncMocks."""
    return MagicMock(spec=GoogleOAuthFlow)


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def directory(session_factory) -> SQLAlchemySchedulingDirectory:
    return SQLAlchemySchedulingDirectory(session_factory)


@pytest.fixture
def token_manager(session_factory, cipher, oauth_flow, settings, google) -> TokenManager:
    return TokenManager(
        session_factory,
        cipher,
        oauth_flow,
        settings,
        client_factory=google.client_factory,
    )


@pytest.fixture
def calendar_manager(session_factory, token_manager, directory, settings) -> CalendarManager:
    return CalendarManager(session_factory, token_manager, directory, settings)


@pytest.fixture
def sync_service(session_factory, token_manager, calendar_manager, directory, settings) -> SyncService:
    return SyncService(session_factory, token_manager, calendar_manager, directory, settings)


@pytest.fixture
def make_connection(token_manager, calendar_manager, organization):
    """
    Factory creating a connection and enabling the requested calendars.

    The connection's refresh token is ``refresh-<user_id>``, which is also
    the key of its FakeCalendarAccount.
    """

    async def _make_connection(
        user_id: str,
        *,
        organization_calendar: bool = False,
        personal_calendar: bool = False,
        venues: tuple = (),
        token_expiry: Optional[datetime] = None,
    ):
        connection = await token_manager.create_connection(
            ConnectionInput(
                user_id=user_id,
                tenant_id=ORG_ID,
                provider_email=f"{user_id}@example.com",
                access_token=f"access-{user_id}",
                refresh_token=f"refresh-{user_id}",
                token_expiry=token_expiry or datetime.now(timezone.utc) + timedelta(hours=1),
            )
        )
        if organization_calendar:
            await calendar_manager.set_organization_calendar_sync(connection.id, True, ORG_NAME)
        if personal_calendar:
            await calendar_manager.set_personal_calendar_sync(connection.id, True, ORG_NAME)
        for venue_id, venue_name in venues:
            await calendar_manager.toggle_venue_calendar_sync(
                connection.id, venue_id, True, org_name=ORG_NAME, venue_name=venue_name
            )
        return await token_manager.get_connection(connection.id)

    return _make_connection
