"""
Unit tests for the event mapper.

Covers content hashes, visibility predicates, datetime formatting and
the request body sent to Google.
"""

from dataclasses import replace

import pytest

from calendar_sync.integrations.base import (
    CalendarScope,
    EventAssignment,
    EventLocation,
    SyncableEvent,
    VenueRef,
)
from calendar_sync.services.event_mapper import (
    INVITED_ROLE,
    READ_ONLY_NOTICE,
    build_event_description,
    build_event_link,
    build_location_string,
    format_provider_datetime,
    generate_event_hash,
    map_event_status,
    personal_assignments_for,
    should_sync_to_organization_calendar,
    should_sync_to_personal_calendar,
    should_sync_to_venue_calendar,
    to_provider_request_body,
)

TZ = "Europe/Warsaw"


@pytest.fixture
def sunday_service() -> SyncableEvent:
    """Published members-only event, 10:00-11:30 Warsaw time, no assignments."""
    return SyncableEvent(
        id="event-1",
        tenant_id="org-1",
        title="Sunday Service",
        start_time="2025-01-05T09:00:00+00:00",
        end_time="2025-01-05T10:30:00+00:00",
        status="published",
        visibility="members",
    )


def usher(profile_id: str = "member-1", status: str = "accepted") -> EventAssignment:
    return EventAssignment(role_title="Usher", profile_id=profile_id, status=status)


class TestScenarios:
    """End-to-end mapper behaviour for the canonical examples."""

    def test_public_event_without_assignments(self, sunday_service):
        """Organization calendar gets the event; no personal calendar does."""
        assert should_sync_to_organization_calendar(sunday_service) is True
        assert should_sync_to_personal_calendar(sunday_service, "member-1") is False

        body = to_provider_request_body(
            sunday_service, CalendarScope.ORGANIZATION, timezone_name=TZ
        )

        assert body["summary"] == "Sunday Service"
        assert "Your roles" not in body["description"]
        assert body["start"] == {"dateTime": "2025-01-05T10:00:00+01:00", "timeZone": TZ}
        assert body["end"] == {"dateTime": "2025-01-05T11:30:00+01:00", "timeZone": TZ}

    def test_assignment_changes_personal_hash(self, sunday_service):
        """An accepted "Usher" role makes the personal copy differ from the public one."""
        event = replace(sunday_service, assignments=(usher(),))

        assert should_sync_to_personal_calendar(event, "member-1") is True
        assignments = personal_assignments_for(event, "member-1")

        org_hash = generate_event_hash(event)
        personal_hash = generate_event_hash(event, assignments)
        assert org_hash != personal_hash

        body = to_provider_request_body(event, CalendarScope.PERSONAL, assignments, timezone_name=TZ)
        assert "Usher" in body["description"]


class TestGenerateEventHash:
    def test_deterministic(self, sunday_service):
        assert generate_event_hash(sunday_service) == generate_event_hash(replace(sunday_service))
        assert len(generate_event_hash(sunday_service)) == 64

    def test_role_order_does_not_matter(self, sunday_service):
        greeter = EventAssignment(role_title="Greeter", profile_id="member-1", status="accepted")

        assert generate_event_hash(sunday_service, [usher(), greeter]) == generate_event_hash(
            sunday_service, [greeter, usher()]
        )

    @pytest.mark.parametrize(
        "field,value",
        [
            ("title", "Evening Service"),
            ("description", "Bring a friend"),
            ("start_time", "2025-01-05T08:00:00+00:00"),
            ("end_time", "2025-01-05T11:00:00+00:00"),
            ("is_all_day", True),
            ("location", EventLocation(name="Main Hall")),
        ],
    )
    def test_synced_fields_change_hash(self, sunday_service, field, value):
        changed = replace(sunday_service, **{field: value})
        assert generate_event_hash(changed) != generate_event_hash(sunday_service)

    def test_unsynced_fields_do_not_change_hash(self, sunday_service):
        changed = replace(
            sunday_service,
            venues=(VenueRef(id="venue-north", name="North Campus"),),
            invited_profile_ids=frozenset({"member-2"}),
        )
        assert generate_event_hash(changed) == generate_event_hash(sunday_service)

    def test_empty_assignments_differ_from_none(self, sunday_service):
        assert generate_event_hash(sunday_service, []) != generate_event_hash(sunday_service)


class TestPredicates:
    def test_organization_requires_published_members_event(self, sunday_service):
        assert should_sync_to_organization_calendar(replace(sunday_service, status="draft")) is False
        assert should_sync_to_organization_calendar(replace(sunday_service, visibility="hidden")) is False

    def test_venue_requires_link(self, sunday_service):
        event = replace(sunday_service, venues=(VenueRef(id="venue-north", name="North Campus"),))

        assert should_sync_to_venue_calendar(event, "venue-north") is True
        assert should_sync_to_venue_calendar(event, "venue-south") is False
        assert should_sync_to_venue_calendar(replace(event, status="draft"), "venue-north") is False

    @pytest.mark.parametrize("status,expected", [("accepted", True), ("invited", True), ("declined", False)])
    def test_personal_assignment_status(self, sunday_service, status, expected):
        event = replace(sunday_service, assignments=(usher(status=status),))
        assert should_sync_to_personal_calendar(event, "member-1") is expected

    def test_personal_ignores_other_users(self, sunday_service):
        event = replace(sunday_service, assignments=(usher(profile_id="member-2"),))
        assert should_sync_to_personal_calendar(event, "member-1") is False

    def test_personal_requires_published(self, sunday_service):
        event = replace(sunday_service, status="draft", assignments=(usher(),))
        assert should_sync_to_personal_calendar(event, "member-1") is False

    def test_hidden_event_invitation(self, sunday_service):
        event = replace(
            sunday_service,
            visibility="hidden",
            invited_profile_ids=frozenset({"member-1"}),
        )

        assert should_sync_to_organization_calendar(event) is False
        assert should_sync_to_personal_calendar(event, "member-1") is True
        assert should_sync_to_personal_calendar(event, "member-2") is False

        assignments = personal_assignments_for(event, "member-1")
        assert [a.role_title for a in assignments] == [INVITED_ROLE]


class TestFormatting:
    def test_timed_event_in_deployment_timezone(self):
        assert format_provider_datetime("2025-07-01T08:00:00+00:00", False, TZ) == {
            "dateTime": "2025-07-01T10:00:00+02:00",
            "timeZone": TZ,
        }

    def test_naive_input_is_utc(self):
        result = format_provider_datetime("2025-01-05T09:00:00", False, TZ)
        assert result["dateTime"] == "2025-01-05T10:00:00+01:00"

    def test_all_day_keeps_date(self):
        assert format_provider_datetime("2025-01-05T00:00:00+00:00", True, TZ) == {"date": "2025-01-05"}

    @pytest.mark.parametrize(
        "start,end,expected_end",
        [
            ("2025-01-05", "2025-01-05", "2025-01-06"),
            ("2025-01-05T00:00:00+00:00", "2025-01-05T23:59:59+00:00", "2025-01-06"),
            ("2025-01-05T00:00:00+00:00", "2025-01-06T00:00:00+00:00", "2025-01-06"),
            ("2025-01-05T00:00:00+00:00", "2025-01-07T12:00:00+00:00", "2025-01-08"),
        ],
    )
    def test_all_day_end_is_exclusive(self, sunday_service, start, end, expected_end):
        event = replace(sunday_service, is_all_day=True, start_time=start, end_time=end)

        body = to_provider_request_body(event, CalendarScope.ORGANIZATION, timezone_name=TZ)

        assert body["start"] == {"date": start[:10]}
        assert body["end"] == {"date": expected_end}

    def test_location_string(self):
        assert build_location_string("Main Hall", "1 Church St") == "Main Hall, 1 Church St"
        assert build_location_string("Main Hall", None) == "Main Hall"
        assert build_location_string(" ", None) is None

    def test_event_link(self):
        assert build_event_link("https://app.example.com/", "event-1") == (
            "https://app.example.com/dashboard/events/event-1"
        )

    def test_status_mapping(self):
        assert map_event_status("published") == "confirmed"
        assert map_event_status("draft") == "tentative"
        assert map_event_status("cancelled") == "cancelled"
        assert map_event_status("archived") == "confirmed"


class TestDescription:
    def test_personal_lists_roles(self, sunday_service):
        greeter = EventAssignment(role_title="Greeter", profile_id="member-1", status="invited")
        event = replace(sunday_service, description="Morning worship")

        text = build_event_description(event, CalendarScope.PERSONAL, [usher(), greeter])

        assert text.startswith("Morning worship")
        assert "Your roles:\n• Usher\n• Greeter" in text
        assert text.endswith(READ_ONLY_NOTICE)

    def test_organization_lists_venues(self, sunday_service):
        event = replace(
            sunday_service,
            venues=(
                VenueRef(id="venue-north", name="North Campus"),
                VenueRef(id="venue-south", name="South Campus"),
            ),
        )

        text = build_event_description(event, CalendarScope.ORGANIZATION)

        assert "Venue: North Campus, South Campus" in text

    def test_venue_scope_has_no_venue_line(self, sunday_service):
        event = replace(sunday_service, venues=(VenueRef(id="venue-north", name="North Campus"),))
        assert "Venue:" not in build_event_description(event, CalendarScope.VENUE)

    def test_deep_link(self, sunday_service):
        text = build_event_description(
            sunday_service,
            CalendarScope.ORGANIZATION,
            event_url="https://app.example.com/dashboard/events/event-1",
        )
        assert "View in app: https://app.example.com/dashboard/events/event-1" in text


class TestRequestBody:
    def test_full_body(self, sunday_service):
        event = replace(
            sunday_service,
            status="published",
            location=EventLocation(name="Main Hall", address="1 Church St"),
        )

        body = to_provider_request_body(
            event,
            CalendarScope.VENUE,
            timezone_name=TZ,
            event_url="https://app.example.com/dashboard/events/event-1",
        )

        assert body["status"] == "confirmed"
        assert body["transparency"] == "opaque"
        assert body["location"] == "Main Hall, 1 Church St"
        assert set(body) == {"summary", "description", "start", "end", "status", "transparency", "location"}

    def test_no_location_key_without_location(self, sunday_service):
        body = to_provider_request_body(sunday_service, CalendarScope.ORGANIZATION, timezone_name=TZ)
        assert "location" not in body
