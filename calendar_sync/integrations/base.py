"""
Canonical sync types and the scheduling-domain boundary.

The scheduling application owns events, venues, memberships and
assignments. The sync service sees them only through SchedulingDirectory,
already normalized into the frozen dataclasses below.
"""

import uuid
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, Sequence


class CalendarScope(str, Enum):
    """Which of a connection's calendars an event is pushed to."""

    ORGANIZATION = "organization"
    VENUE = "venue"
    PERSONAL = "personal"


class EventChangeKind(str, Enum):
    """Mutation kinds emitted by the scheduling domain."""

    CREATED = "created"
    UPDATED = "updated"
    ASSIGNMENT_CHANGED = "assignment_changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class EventLocation:
    name: str
    address: Optional[str] = None


@dataclass(frozen=True)
class VenueRef:
    id: str
    name: str
    color: Optional[str] = None


@dataclass(frozen=True)
class EventAssignment:
    """A person holding a role for an event."""

    role_title: str
    profile_id: str
    status: str
    role_notes: Optional[str] = None


@dataclass(frozen=True)
class SyncableEvent:
    """
    Normalized event as read from the scheduling domain.

    Start/end are ISO 8601 strings exactly as stored upstream; the event
    mapper formats them for Google.
    """

    id: str
    tenant_id: str
    title: str
    start_time: str
    end_time: str
    status: str
    visibility: str
    description: Optional[str] = None
    is_all_day: bool = False
    location: Optional[EventLocation] = None
    venues: tuple[VenueRef, ...] = ()
    assignments: tuple[EventAssignment, ...] = ()
    invited_profile_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def venue_ids(self) -> set[str]:
        return {venue.id for venue in self.venues}


@dataclass(frozen=True)
class SyncTarget:
    """One (connection, scope) pair an event may be pushed to."""

    connection_id: uuid.UUID
    user_id: str
    scope: CalendarScope
    venue_id: Optional[str] = None

    @property
    def scope_key(self) -> str:
        """Unique key of the target calendar within a connection."""
        if self.scope == CalendarScope.VENUE:
            return f"venue:{self.venue_id}"
        return self.scope.value

    def __str__(self) -> str:
        return f"{self.connection_id}/{self.scope_key}"


class SchedulingDirectory(Protocol):
    """
    Read-only view of the scheduling domain used by the sync service.

    Implementations:
    - SQLAlchemySchedulingDirectory: queries the shared database
    """

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[SyncableEvent]:
        """
        Load an event with its location, venues, assignments and invitations.

        Returns:
            Normalized event or None if it does not exist

        Raises:
            SyncValidationError: If the stored event is malformed
        """
        ...

    @abstractmethod
    async def get_organization_name(self, tenant_id: str) -> str:
        """Display name of the organization, used in calendar names."""
        ...

    @abstractmethod
    async def get_venue(self, venue_id: str) -> Optional[VenueRef]:
        ...

    @abstractmethod
    async def list_admin_profile_ids(self, tenant_id: str) -> set[str]:
        """Profiles allowed to sync the organization-wide calendar."""
        ...

    @abstractmethod
    async def list_member_venue_ids(self, profile_id: str) -> set[str]:
        """Venues the profile belongs to."""
        ...

    @abstractmethod
    async def list_active_venues(self, tenant_id: str) -> Sequence[VenueRef]:
        ...

    @abstractmethod
    async def is_admin(self, profile_id: str) -> bool:
        ...

    @abstractmethod
    async def list_published_event_ids(self, tenant_id: str) -> Sequence[str]:
        """IDs of every published event of a tenant (full re-sync)."""
        ...

    @abstractmethod
    async def get_profile_tenant_id(self, profile_id: str) -> Optional[str]:
        """Organization of a profile, or None for an unknown profile."""
        ...
