"""
Client Factory: builds an authenticated Google Calendar client.

A fresh client is built on every call from the connection's decrypted
credential pair. Nothing here is cached at module level, so two
connections can never see each other's credentials.
"""

from datetime import datetime
from typing import Optional

from calendar_sync.config import Settings, get_settings
from calendar_sync.integrations.google_calendar.auth import get_oauth_credentials
from calendar_sync.integrations.google_calendar.client import GoogleCalendarClient
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository


def create_calendar_client(
    access_token: str,
    refresh_token: str,
    token_expiry: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> GoogleCalendarRepository:
    """
    Build an async calendar client acting on behalf of one Google account.

    Args:
        access_token: Current (already refreshed) access token
        refresh_token: Refresh token of the connection
        token_expiry: Access token expiry
        settings: Settings override (defaults to get_settings())

    Returns:
        GoogleCalendarRepository bound to the credentials
    """
    settings = settings or get_settings()

    credentials = get_oauth_credentials(
        access_token=access_token,
        refresh_token=refresh_token,
        client_id=settings.google_oauth_client_id,
        client_secret=settings.google_oauth_client_secret,
        expiry=token_expiry,
    )
    client = GoogleCalendarClient(
        credentials,
        timeout=settings.provider_timeout_seconds,
        max_attempts=settings.provider_retry_attempts,
        backoff_seconds=settings.provider_retry_backoff_seconds,
    )
    return GoogleCalendarRepository(client)
