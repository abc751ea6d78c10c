"""
Read-only mappings of the scheduling domain's tables.

These tables belong to the scheduling application. The sync service only
queries them (through SQLAlchemySchedulingDirectory) and never writes to
them. They are flagged ``info={"external": True}`` so Alembic leaves them
alone.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calendar_sync.models.base import Base

EXTERNAL = {"external": True}


class Organization(Base):
    """Tenant (church / organization)."""

    __tablename__ = "organizations"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Profile(Base):
    """A person in an organization; ``role`` drives admin-only features."""

    __tablename__ = "profiles"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="member")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Venue(Base):
    """A campus / site of an organization."""

    __tablename__ = "venues"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ProfileVenue(Base):
    """Venue membership."""

    __tablename__ = "profile_venues"
    __table_args__ = {"info": EXTERNAL}

    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), primary_key=True)
    venue_id: Mapped[str] = mapped_column(ForeignKey("venues.id"), primary_key=True)


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Event(Base):
    """A scheduled event."""

    __tablename__ = "events"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_all_day: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="members")
    location_id: Mapped[Optional[str]] = mapped_column(ForeignKey("locations.id"), nullable=True)

    location: Mapped[Optional[Location]] = relationship(Location)
    venue_links: Mapped[list["EventVenue"]] = relationship("EventVenue")
    positions: Mapped[list["EventPosition"]] = relationship("EventPosition")
    invitations: Mapped[list["EventInvitation"]] = relationship("EventInvitation")


class EventVenue(Base):
    __tablename__ = "event_venues"
    __table_args__ = {"info": EXTERNAL}

    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), primary_key=True)
    venue_id: Mapped[str] = mapped_column(ForeignKey("venues.id"), primary_key=True)

    venue: Mapped[Venue] = relationship(Venue)


class EventPosition(Base):
    """A role that needs filling for an event (e.g. "Usher")."""

    __tablename__ = "event_positions"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    assignments: Mapped[list["EventAssignment"]] = relationship("EventAssignment")


class EventAssignment(Base):
    """A person assigned to a position; status is invited / accepted / declined."""

    __tablename__ = "event_assignments"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    position_id: Mapped[str] = mapped_column(ForeignKey("event_positions.id"), nullable=False)
    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class EventInvitation(Base):
    """Direct invitation to an event, used for hidden events."""

    __tablename__ = "event_invitations"
    __table_args__ = {"info": EXTERNAL}

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), nullable=False)
    profile_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
