"""
Async facade over GoogleCalendarClient.

The Google API client is synchronous, so each call runs in the event
loop's default executor. This is the object the Client Factory hands to the
calendar manager and the sync service.
"""

import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Optional

from calendar_sync.integrations.google_calendar.client import GoogleCalendarClient
from calendar_sync.integrations.google_calendar.exceptions import (
    CalendarNotFoundError,
    GoogleCalendarNotFoundError,
)

logger = logging.getLogger(__name__)


class GoogleCalendarRepository:
    """
    Calendar write operations for one connected Google account.

    Instances are cheap and built per use by create_calendar_client; they
    are never shared between connections.
    """

    def __init__(
        self,
        client: GoogleCalendarClient,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the repository.

        Args:
            client: Synchronous API client bound to the user's credentials
            executor: Executor for blocking calls (loop default if None)
        """
        self._client = client
        self._executor = executor

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a synchronous function in the executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(func, *args, **kwargs),
        )

    async def insert_event(self, calendar_id: str, body: dict) -> str:
        """
        Create an event and return its Google ID.

        Raises:
            CalendarNotFoundError: The target calendar no longer exists
        """
        try:
            created = await self._run_in_executor(
                self._client.insert_event,
                calendar_id=calendar_id,
                body=body,
            )
        except GoogleCalendarNotFoundError as e:
            raise CalendarNotFoundError(calendar_id, original_error=e)
        return created["id"]

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> str:
        """
        Overwrite a previously pushed event.

        Raises:
            GoogleCalendarNotFoundError: The event (or its calendar) is gone
        """
        updated = await self._run_in_executor(
            self._client.patch_event,
            calendar_id=calendar_id,
            event_id=event_id,
            body=body,
        )
        return updated.get("id", event_id)

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event; already-deleted events are not an error."""
        await self._run_in_executor(
            self._client.delete_event,
            calendar_id=calendar_id,
            event_id=event_id,
        )

    async def create_calendar(self, summary: str, description: str, time_zone: str) -> str:
        """Create a secondary calendar and return its Google ID."""
        created = await self._run_in_executor(
            self._client.insert_calendar,
            summary=summary,
            description=description,
            time_zone=time_zone,
        )
        return created["id"]

    async def delete_calendar(self, calendar_id: str) -> None:
        await self._run_in_executor(self._client.delete_calendar, calendar_id=calendar_id)

    async def set_calendar_color(self, calendar_id: str, color_id: str) -> None:
        await self._run_in_executor(
            self._client.set_calendar_color,
            calendar_id=calendar_id,
            color_id=color_id,
        )
        logger.debug(f"Set colour {color_id} on calendar {calendar_id}")
