"""
SQLAlchemy models for the calendar sync service.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

# Import base classes
from calendar_sync.models.base import Base, BaseModel, GUID

# Import all models (must be imported for Alembic autogenerate)
from calendar_sync.models.connections import CalendarConnection, VenueCalendar
from calendar_sync.models.sync import SyncedEvent
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

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    # Sync service tables
    "CalendarConnection",
    "VenueCalendar",
    "SyncedEvent",
    # Scheduling domain (read-only)
    "Organization",
    "Profile",
    "Venue",
    "ProfileVenue",
    "Location",
    "Event",
    "EventVenue",
    "EventPosition",
    "EventAssignment",
    "EventInvitation",
]
