"""
Google Calendar API client wrapper with retry and error handling.

Provides a clean interface over the write side of the Google Calendar API v3
(calendars and events). Reading calendars is not needed by the sync service.
"""

import logging
from typing import Optional

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from calendar_sync.integrations.google_calendar.auth import INVALID_GRANT_ERRORS
from calendar_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarAuthError,
    GoogleCalendarError,
    GoogleCalendarNotFoundError,
    GoogleCalendarQuotaError,
    GoogleCalendarRateLimitError,
    GoogleCalendarValidationError,
    RefreshTokenInvalidError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 10


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, GoogleCalendarError):
        return exception.retryable
    if isinstance(exception, HttpError):
        return exception.resp.status in (429, 500, 502, 503, 504)
    return False


def _is_revoked_grant(error: RefreshError) -> bool:
    """Check if google-auth's own token refresh was rejected for good."""
    details = [str(error)]
    details.extend(
        str(arg.get("error", "")) for arg in error.args if isinstance(arg, dict)
    )
    return any(code in detail for detail in details for code in INVALID_GRANT_ERRORS)


def _handle_http_error(error: HttpError) -> None:
    """Convert HttpError to appropriate GoogleCalendarError."""
    status = error.resp.status
    message = str(error)

    if status == 400:
        raise GoogleCalendarValidationError(
            f"Google rejected the request payload: {message}",
            original_error=error,
        )
    elif status == 401:
        raise GoogleCalendarAuthError(
            "Authentication failed - credentials may be invalid or expired",
            original_error=error,
        )
    elif status == 403:
        if "quota" in message.lower() or "rate limit" in message.lower():
            raise GoogleCalendarQuotaError(
                "API quota exceeded",
                original_error=error,
            )
        raise GoogleCalendarAuthError(
            "Access denied - check granted calendar scopes",
            original_error=error,
        )
    elif status in (404, 410):
        raise GoogleCalendarNotFoundError(
            "Event or calendar not found",
            original_error=error,
        )
    elif status == 429:
        raise GoogleCalendarRateLimitError(
            "Rate limit exceeded - too many requests",
            original_error=error,
        )
    elif status >= 500:
        raise TransientProviderError(
            f"Google Calendar API unavailable ({status})",
            original_error=error,
        )
    else:
        raise GoogleCalendarError(
            f"Google Calendar API error ({status}): {message}",
            original_error=error,
        )


class GoogleCalendarClient:
    """
    Wrapper around Google Calendar API v3.

    Provides:
    - Bounded socket timeout per request
    - Automatic retry with exponential backoff for transient errors only
    - Consistent error handling
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    ):
        """
        Initialize the client.

        Args:
            credentials: Google OAuth2 credentials
            timeout: Socket timeout in seconds
            max_attempts: Attempts per call for retryable errors
            backoff_seconds: Exponential backoff multiplier
        """
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._service: Resource = build(
            "calendar",
            "v3",
            http=AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout)),
            cache_discovery=False,
        )

    def _execute(self, request) -> Optional[dict]:
        """Execute a prepared API request with retries and error mapping."""
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_seconds, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception(_is_retryable_error),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                try:
                    return request.execute()
                except HttpError as e:
                    _handle_http_error(e)
                except RefreshError as e:
                    if _is_revoked_grant(e):
                        raise RefreshTokenInvalidError(
                            f"Google rejected the refresh token: {e}",
                            original_error=e,
                        )
                    raise GoogleCalendarAuthError(
                        "Access token could not be renewed",
                        original_error=e,
                    )
                except (OSError, TransportError, httplib2.HttpLib2Error) as e:
                    raise TransientProviderError(
                        f"Network error calling Google Calendar: {e}",
                        original_error=e,
                    )
        return None

    def insert_event(self, calendar_id: str, body: dict) -> dict:
        """
        Create a new event.

        Args:
            calendar_id: Calendar to create event in
            body: Event data in Google Calendar format

        Returns:
            Created event with ID
        """
        result = self._execute(
            self._service.events().insert(calendarId=calendar_id, body=body)
        )
        logger.info(f"Created event {result.get('id')} in {calendar_id}")
        return result

    def patch_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """
        Patch an existing event.

        Args:
            calendar_id: Calendar containing the event
            event_id: Event to update
            body: Fields to update

        Returns:
            Updated event
        """
        result = self._execute(
            self._service.events().patch(calendarId=calendar_id, eventId=event_id, body=body)
        )
        logger.info(f"Patched event {event_id} in {calendar_id}")
        return result

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        """
        Delete an event.

        A missing event counts as deleted.
        """
        try:
            self._execute(
                self._service.events().delete(calendarId=calendar_id, eventId=event_id)
            )
            logger.info(f"Deleted event {event_id} from {calendar_id}")
        except GoogleCalendarNotFoundError:
            logger.warning(f"Event {event_id} already deleted")

    def insert_calendar(self, summary: str, description: str, time_zone: str) -> dict:
        """
        Create a secondary calendar in the user's account.

        Returns:
            Created calendar resource with ID
        """
        result = self._execute(
            self._service.calendars().insert(
                body={
                    "summary": summary,
                    "description": description,
                    "timeZone": time_zone,
                }
            )
        )
        logger.info(f"Created calendar {result.get('id')} ('{summary}')")
        return result

    def delete_calendar(self, calendar_id: str) -> None:
        """Delete a secondary calendar. A missing calendar counts as deleted."""
        try:
            self._execute(self._service.calendars().delete(calendarId=calendar_id))
            logger.info(f"Deleted calendar {calendar_id}")
        except GoogleCalendarNotFoundError:
            logger.info(f"Calendar {calendar_id} already deleted or doesn't exist")

    def set_calendar_color(self, calendar_id: str, color_id: str) -> dict:
        """Set the colour of a calendar in the user's calendar list."""
        return self._execute(
            self._service.calendarList().patch(
                calendarId=calendar_id,
                body={"colorId": color_id},
            )
        )
