"""Tests for the async Google Calendar repository."""

from unittest.mock import MagicMock

import pytest

from calendar_sync.integrations.google_calendar.exceptions import (
    CalendarNotFoundError,
    GoogleCalendarNotFoundError,
    TransientProviderError,
)
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository


@pytest.fixture
def mock_client():
    """Create mock Google Calendar client."""
    return MagicMock()


@pytest.fixture
def repository(mock_client):
    return GoogleCalendarRepository(mock_client)


class TestInsertEvent:
    @pytest.mark.asyncio
    async def test_returns_provider_id(self, repository, mock_client):
        mock_client.insert_event.return_value = {"id": "evt-1"}

        result = await repository.insert_event("cal-1", {"summary": "Sunday Service"})

        assert result == "evt-1"
        mock_client.insert_event.assert_called_once_with(
            calendar_id="cal-1", body={"summary": "Sunday Service"}
        )

    @pytest.mark.asyncio
    async def test_missing_calendar(self, repository, mock_client):
        """A 404 on insert means the calendar itself is gone."""
        mock_client.insert_event.side_effect = GoogleCalendarNotFoundError("not found")

        with pytest.raises(CalendarNotFoundError) as exc_info:
            await repository.insert_event("cal-gone", {})

        assert exc_info.value.calendar_id == "cal-gone"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, repository, mock_client):
        mock_client.insert_event.side_effect = TransientProviderError("503")

        with pytest.raises(TransientProviderError):
            await repository.insert_event("cal-1", {})


class TestUpdateEvent:
    @pytest.mark.asyncio
    async def test_patches_event(self, repository, mock_client):
        mock_client.patch_event.return_value = {"id": "evt-1"}

        result = await repository.update_event("cal-1", "evt-1", {"summary": "New"})

        assert result == "evt-1"
        mock_client.patch_event.assert_called_once_with(
            calendar_id="cal-1", event_id="evt-1", body={"summary": "New"}
        )

    @pytest.mark.asyncio
    async def test_missing_event(self, repository, mock_client):
        mock_client.patch_event.side_effect = GoogleCalendarNotFoundError("not found")

        with pytest.raises(GoogleCalendarNotFoundError) as exc_info:
            await repository.update_event("cal-1", "evt-gone", {})

        assert not isinstance(exc_info.value, CalendarNotFoundError)


class TestCalendars:
    @pytest.mark.asyncio
    async def test_create_calendar(self, repository, mock_client):
        mock_client.insert_calendar.return_value = {"id": "cal-new"}

        result = await repository.create_calendar(
            summary="Grace Church - Personal",
            description="Your assignments and invitations",
            time_zone="Europe/Warsaw",
        )

        assert result == "cal-new"
        mock_client.insert_calendar.assert_called_once_with(
            summary="Grace Church - Personal",
            description="Your assignments and invitations",
            time_zone="Europe/Warsaw",
        )

    @pytest.mark.asyncio
    async def test_delete_calendar(self, repository, mock_client):
        await repository.delete_calendar("cal-1")
        mock_client.delete_calendar.assert_called_once_with(calendar_id="cal-1")

    @pytest.mark.asyncio
    async def test_set_calendar_color(self, repository, mock_client):
        await repository.set_calendar_color("cal-1", "10")
        mock_client.set_calendar_color.assert_called_once_with(calendar_id="cal-1", color_id="10")

    @pytest.mark.asyncio
    async def test_delete_event(self, repository, mock_client):
        await repository.delete_event("cal-1", "evt-1")
        mock_client.delete_event.assert_called_once_with(calendar_id="cal-1", event_id="evt-1")
