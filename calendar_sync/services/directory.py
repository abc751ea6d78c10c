"""
SQLAlchemy implementation of the scheduling-domain boundary.

Reads events, venues and memberships from the scheduling application's
tables and normalizes them into the frozen sync types. ORM rows never leave
this module.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from calendar_sync.integrations.base import (
    EventAssignment,
    EventLocation,
    SyncableEvent,
    VenueRef,
)
from calendar_sync.integrations.google_calendar.exceptions import SyncValidationError
from calendar_sync.models.base import as_utc
from calendar_sync.models.scheduling import (
    Event,
    EventPosition,
    EventVenue,
    Organization,
    Profile,
    ProfileVenue,
    Venue,
)

logger = logging.getLogger(__name__)

# Roles allowed to manage organization-wide settings
ADMIN_ROLES = ("admin", "owner")


def normalize_event_row(row: Event) -> SyncableEvent:
    """
    Convert an Event row (with relations loaded) into a SyncableEvent.

    - Timestamps become ISO 8601 UTC strings
    - A NULL all-day flag means a timed event
    - Assignments without a status are ignored
    - Venues are de-duplicated, keeping link order

    Raises:
        SyncValidationError: If title or times are missing, or end < start
    """
    if not row.title or not row.title.strip():
        raise SyncValidationError(f"Event {row.id} has no title")
    if row.start_time is None or row.end_time is None:
        raise SyncValidationError(f"Event {row.id} has no start or end time")

    start = as_utc(row.start_time)
    end = as_utc(row.end_time)
    if end < start:
        raise SyncValidationError(f"Event {row.id} ends before it starts")

    location = None
    if row.location is not None:
        location = EventLocation(name=row.location.name, address=row.location.address)

    venues: list[VenueRef] = []
    seen: set[str] = set()
    for link in row.venue_links:
        if link.venue is None or link.venue.id in seen:
            continue
        seen.add(link.venue.id)
        venues.append(VenueRef(id=link.venue.id, name=link.venue.name, color=link.venue.color))

    assignments = [
        EventAssignment(
            role_title=position.title,
            profile_id=assignment.profile_id,
            status=assignment.status,
            role_notes=position.notes,
        )
        for position in row.positions
        for assignment in position.assignments
        if assignment.status
    ]

    return SyncableEvent(
        id=row.id,
        tenant_id=row.organization_id,
        title=row.title.strip(),
        description=row.description or None,
        start_time=start.isoformat(),
        end_time=end.isoformat(),
        is_all_day=bool(row.is_all_day),
        status=row.status,
        visibility=row.visibility,
        location=location,
        venues=tuple(venues),
        assignments=tuple(assignments),
        invited_profile_ids=frozenset(inv.profile_id for inv in row.invitations),
    )


class SQLAlchemySchedulingDirectory:
    """SchedulingDirectory backed by the shared database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_event(self, event_id: str) -> Optional[SyncableEvent]:
        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .options(
                selectinload(Event.location),
                selectinload(Event.venue_links).selectinload(EventVenue.venue),
                selectinload(Event.positions).selectinload(EventPosition.assignments),
                selectinload(Event.invitations),
            )
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            return normalize_event_row(row)

    async def get_organization_name(self, tenant_id: str) -> str:
        async with self._session_factory() as session:
            name = await session.scalar(
                select(Organization.name).where(Organization.id == tenant_id)
            )
        if name is None:
            logger.warning(f"Organization {tenant_id} not found, using its ID as name")
            return tenant_id
        return name

    async def get_venue(self, venue_id: str) -> Optional[VenueRef]:
        async with self._session_factory() as session:
            venue = await session.get(Venue, venue_id)
            if venue is None:
                return None
            return VenueRef(id=venue.id, name=venue.name, color=venue.color)

    async def list_admin_profile_ids(self, tenant_id: str) -> set[str]:
        stmt = select(Profile.id).where(
            Profile.organization_id == tenant_id,
            Profile.role.in_(ADMIN_ROLES),
            Profile.active.is_(True),
        )
        async with self._session_factory() as session:
            return set((await session.scalars(stmt)).all())

    async def list_member_venue_ids(self, profile_id: str) -> set[str]:
        stmt = select(ProfileVenue.venue_id).where(ProfileVenue.profile_id == profile_id)
        async with self._session_factory() as session:
            return set((await session.scalars(stmt)).all())

    async def list_active_venues(self, tenant_id: str) -> Sequence[VenueRef]:
        stmt = (
            select(Venue)
            .where(Venue.organization_id == tenant_id, Venue.is_active.is_(True))
            .order_by(Venue.name)
        )
        async with self._session_factory() as session:
            venues = (await session.scalars(stmt)).all()
            return [VenueRef(id=v.id, name=v.name, color=v.color) for v in venues]

    async def is_admin(self, profile_id: str) -> bool:
        async with self._session_factory() as session:
            role = await session.scalar(select(Profile.role).where(Profile.id == profile_id))
        return role in ADMIN_ROLES

    async def list_published_event_ids(self, tenant_id: str) -> Sequence[str]:
        stmt = (
            select(Event.id)
            .where(Event.organization_id == tenant_id, Event.status == "published")
            .order_by(Event.start_time)
        )
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())

    async def get_profile_tenant_id(self, profile_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            return await session.scalar(
                select(Profile.organization_id).where(Profile.id == profile_id)
            )
