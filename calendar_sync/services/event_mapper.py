"""
Event mapping for Google Calendar sync.

Pure functions only: content hashes, visibility predicates, datetime
formatting and request payloads. Nothing in here performs I/O.
"""

import hashlib
import json
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse

from calendar_sync.integrations.base import (
    CalendarScope,
    EventAssignment,
    SyncableEvent,
)

STATUS_PUBLISHED = "published"
VISIBILITY_MEMBERS = "members"
VISIBILITY_HIDDEN = "hidden"

# Assignment statuses that put an event on the assignee's personal calendar
ACTIVE_ASSIGNMENT_STATUSES = frozenset({"invited", "accepted"})

INVITED_ROLE = "Invited"

READ_ONLY_NOTICE = (
    "This calendar is read-only. Changes made here are not synchronized back."
)

_STATUS_MAP = {
    "published": "confirmed",
    "draft": "tentative",
    "cancelled": "cancelled",
}


# ============================================
# Formatting helpers
# ============================================


def build_location_string(name: Optional[str], address: Optional[str]) -> Optional[str]:
    """Join a location name and address as Google's free-text location."""
    parts = [part.strip() for part in (name, address) if part and part.strip()]
    if not parts:
        return None
    return ", ".join(parts)


def build_event_link(app_base_url: str, event_id: str) -> str:
    """Deep link to the event in the scheduling app."""
    return f"{app_base_url.rstrip('/')}/dashboard/events/{event_id}"


def map_event_status(status: str) -> str:
    """Map a scheduling status to a Google event status."""
    return _STATUS_MAP.get(status, "confirmed")


def _parse(value: str) -> datetime:
    parsed = isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_provider_datetime(value: str, is_all_day: bool, timezone_name: str) -> dict:
    """
    Format a stored ISO timestamp for the Google API.

    All-day values keep their calendar date as stored. Timed values are
    expressed in the deployment timezone; naive input is read as UTC.

    Examples:
        >>> format_provider_datetime("2025-01-05", True, "Europe/Warsaw")
        {'date': '2025-01-05'}
        >>> format_provider_datetime("2025-01-05T09:00:00Z", False, "Europe/Warsaw")
        {'dateTime': '2025-01-05T10:00:00+01:00', 'timeZone': 'Europe/Warsaw'}
    """
    if is_all_day:
        return {"date": isoparse(value).date().isoformat()}

    local = _parse(value).astimezone(ZoneInfo(timezone_name))
    return {"dateTime": local.isoformat(), "timeZone": timezone_name}


def _all_day_end(start: str, end: str) -> dict:
    """
    Exclusive end date for an all-day event.

    An end stored at midnight after the start date already is exclusive;
    any other end is the last day of the event and gets one day added.
    """
    start_dt = isoparse(start)
    end_dt = isoparse(end)
    end_date: date = end_dt.date()
    if not (end_dt.time() == time(0) and end_date > start_dt.date()):
        end_date += timedelta(days=1)
    return {"date": end_date.isoformat()}


# ============================================
# Change detection
# ============================================


def generate_event_hash(
    event: SyncableEvent,
    assignments: Optional[Iterable[EventAssignment]] = None,
) -> str:
    """
    Digest of the fields pushed to Google, used to skip no-op syncs.

    Role titles are part of the digest only when ``assignments`` is given
    (personal scope), so the same event hashes differently per scope.
    Role order does not matter.
    """
    payload = {
        "title": event.title,
        "description": event.description,
        "start": event.start_time,
        "end": event.end_time,
        "all_day": bool(event.is_all_day),
        "location": (
            build_location_string(event.location.name, event.location.address)
            if event.location
            else None
        ),
    }
    if assignments is not None:
        payload["assignments"] = sorted(a.role_title for a in assignments)

    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ============================================
# Visibility predicates
# ============================================


def should_sync_to_organization_calendar(event: SyncableEvent) -> bool:
    """Only published events visible to all members."""
    return event.status == STATUS_PUBLISHED and event.visibility == VISIBILITY_MEMBERS


def should_sync_to_venue_calendar(event: SyncableEvent, venue_id: str) -> bool:
    """Same rule as the organization calendar, restricted to linked venues."""
    return should_sync_to_organization_calendar(event) and venue_id in event.venue_ids


def user_assignments_for(event: SyncableEvent, user_id: str) -> list[EventAssignment]:
    """The user's invited or accepted assignments on the event."""
    return [
        assignment
        for assignment in event.assignments
        if assignment.profile_id == user_id
        and assignment.status in ACTIVE_ASSIGNMENT_STATUSES
    ]


def is_invited_to_hidden_event(event: SyncableEvent, user_id: str) -> bool:
    return event.visibility == VISIBILITY_HIDDEN and user_id in event.invited_profile_ids


def should_sync_to_personal_calendar(event: SyncableEvent, user_id: str) -> bool:
    """
    Published events the user holds an active assignment on, or hidden
    events the user was explicitly invited to.
    """
    if event.status == STATUS_PUBLISHED and user_assignments_for(event, user_id):
        return True
    return is_invited_to_hidden_event(event, user_id)


def personal_assignments_for(event: SyncableEvent, user_id: str) -> list[EventAssignment]:
    """
    Assignments shown on the user's personal calendar.

    A hidden-event invitation without an assignment shows a placeholder role.
    """
    assignments = user_assignments_for(event, user_id)
    if assignments:
        return assignments
    if is_invited_to_hidden_event(event, user_id):
        return [EventAssignment(role_title=INVITED_ROLE, profile_id=user_id, status="invited")]
    return []


# ============================================
# Request payload
# ============================================


def build_event_description(
    event: SyncableEvent,
    scope: CalendarScope,
    assignments: Optional[Sequence[EventAssignment]] = None,
    event_url: Optional[str] = None,
) -> str:
    """
    Description shown in Google.

    - Organization: description + venue list
    - Venue: description
    - Personal: description + the user's roles
    All scopes end with the deep link and the read-only notice.
    """
    parts: list[str] = []

    if event.description:
        parts.append(event.description)

    if scope == CalendarScope.PERSONAL and assignments:
        parts.append("")
        parts.append("Your roles:")
        for assignment in assignments:
            parts.append(f"• {assignment.role_title}")

    if scope == CalendarScope.ORGANIZATION and event.venues:
        parts.append("")
        parts.append(f"Venue: {', '.join(venue.name for venue in event.venues)}")

    if event_url:
        parts.append("")
        parts.append(f"View in app: {event_url}")

    parts.append("")
    parts.append(READ_ONLY_NOTICE)

    return "\n".join(parts).strip()


def to_provider_request_body(
    event: SyncableEvent,
    scope: CalendarScope,
    assignments: Optional[Sequence[EventAssignment]] = None,
    *,
    timezone_name: str,
    event_url: Optional[str] = None,
) -> dict:
    """Full Google Calendar event body for insert and update."""
    if event.is_all_day:
        start = format_provider_datetime(event.start_time, True, timezone_name)
        end = _all_day_end(event.start_time, event.end_time)
    else:
        start = format_provider_datetime(event.start_time, False, timezone_name)
        end = format_provider_datetime(event.end_time, False, timezone_name)

    body = {
        "summary": event.title,
        "description": build_event_description(event, scope, assignments, event_url),
        "start": start,
        "end": end,
        "status": map_event_status(event.status),
        "transparency": "opaque",
    }

    if event.location:
        location = build_location_string(event.location.name, event.location.address)
        if location:
            body["location"] = location

    return body
