"""
Google Calendar integration for the calendar sync service.

Pushes scheduled events into calendars the service creates in each user's
Google account.
"""

from calendar_sync.integrations.google_calendar.auth import (
    GoogleOAuthFlow,
    GoogleUserInfo,
    OAuthTokens,
)
from calendar_sync.integrations.google_calendar.client import GoogleCalendarClient
from calendar_sync.integrations.google_calendar.exceptions import (
    CalendarNotFoundError,
    ConnectionNotFoundError,
    GoogleCalendarAuthError,
    GoogleCalendarError,
    GoogleCalendarNotFoundError,
    GoogleCalendarQuotaError,
    GoogleCalendarRateLimitError,
    GoogleCalendarValidationError,
    RefreshTokenInvalidError,
    SyncValidationError,
    TokenRefreshError,
    TransientProviderError,
)
from calendar_sync.integrations.google_calendar.factory import create_calendar_client
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository

__all__ = [
    "GoogleOAuthFlow",
    "GoogleUserInfo",
    "OAuthTokens",
    "GoogleCalendarClient",
    "GoogleCalendarRepository",
    "create_calendar_client",
    "GoogleCalendarError",
    "TransientProviderError",
    "GoogleCalendarRateLimitError",
    "GoogleCalendarQuotaError",
    "GoogleCalendarAuthError",
    "GoogleCalendarNotFoundError",
    "CalendarNotFoundError",
    "GoogleCalendarValidationError",
    "TokenRefreshError",
    "RefreshTokenInvalidError",
    "ConnectionNotFoundError",
    "SyncValidationError",
]
