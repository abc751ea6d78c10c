"""
Custom exceptions for Google Calendar sync operations.

Provides structured error handling with retryable flags.
"""


class GoogleCalendarError(Exception):
    """Base exception for Google Calendar operations."""

    retryable: bool = False

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class TransientProviderError(GoogleCalendarError):
    """
    Temporary provider failure.

    Causes:
    - Network errors and timeouts
    - 5xx responses

    Retryable with exponential backoff. When retries are exhausted the
    sync target is skipped and the batch continues.
    """

    retryable = True


class GoogleCalendarRateLimitError(TransientProviderError):
    """
    Rate limit hit (429 response).

    Retryable after exponential backoff.
    """


class GoogleCalendarQuotaError(TransientProviderError):
    """
    API quota exceeded (403 with a quota / rate limit reason).

    Retryable after backoff.
    """


class GoogleCalendarAuthError(GoogleCalendarError):
    """
    Authentication or authorization failure on an API call.

    Causes:
    - Access token rejected
    - Insufficient scopes
    """

    retryable = False


class GoogleCalendarNotFoundError(GoogleCalendarError):
    """
    Event or calendar not found (404).

    Causes:
    - Event was deleted directly in Google Calendar
    - Calendar was deleted by the user
    """

    retryable = False


class CalendarNotFoundError(GoogleCalendarNotFoundError):
    """
    A target calendar no longer exists in the user's account.

    The stored calendar ID is dropped so the next sync attempt recreates it.
    """

    def __init__(self, calendar_id: str, original_error: Exception | None = None):
        super().__init__(f"Calendar not found: {calendar_id}", original_error=original_error)
        self.calendar_id = calendar_id


class GoogleCalendarValidationError(GoogleCalendarError):
    """
    Google rejected the request payload (400).

    Causes:
    - Invalid datetime format
    - End before start
    """

    retryable = False


class TokenRefreshError(GoogleCalendarError):
    """
    Token endpoint temporarily unavailable.

    The connection is left untouched; the next sync attempt refreshes again.
    """

    retryable = True


class RefreshTokenInvalidError(GoogleCalendarError):
    """
    Refresh token was revoked or expired.

    Terminal: the connection is marked as needing re-authorization and no
    further sync attempts are made until the user reconnects.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Refresh token is invalid. User needs to re-authorize.",
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)


class ConnectionNotFoundError(GoogleCalendarError):
    """No calendar connection exists for the given ID or user."""

    retryable = False


class SyncValidationError(GoogleCalendarError):
    """
    Source event is malformed or incomplete.

    Logged and skipped; never blocks the scheduling domain's own write.
    """

    retryable = False
