"""
Token manager for Google Calendar connections.

Handles:
- Encrypted storage of OAuth tokens
- Proactive refresh shortly before expiry
- Detection of revoked grants (connection marked as needing re-auth)
- Connection CRUD used by the OAuth callback and preference endpoints
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.auth.encryption import TokenCipher
from calendar_sync.config import Settings, get_settings
from calendar_sync.integrations.google_calendar.auth import GoogleOAuthFlow
from calendar_sync.integrations.google_calendar.exceptions import (
    ConnectionNotFoundError,
    GoogleCalendarAuthError,
    RefreshTokenInvalidError,
)
from calendar_sync.integrations.google_calendar.factory import create_calendar_client
from calendar_sync.integrations.google_calendar.repository import GoogleCalendarRepository
from calendar_sync.models.base import utcnow
from calendar_sync.models.connections import CalendarConnection, VenueCalendar
from calendar_sync.models.sync import SyncedEvent

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., GoogleCalendarRepository]


@dataclass
class ConnectionInput:
    """Result of a completed OAuth flow, ready to be stored."""

    user_id: str
    tenant_id: str
    provider_email: str
    access_token: str
    refresh_token: Optional[str]
    token_expiry: datetime
    provider_user_id: Optional[str] = None


@dataclass
class ConnectionPreferences:
    """Preference update; ``None`` fields are left unchanged."""

    sync_organization_calendar: Optional[bool] = None
    sync_personal_calendar: Optional[bool] = None


class TokenManager:
    """
    Owns CalendarConnection rows and the credentials stored in them.

    Every operation opens its own short session so the manager can be used
    from concurrent sync tasks.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
        oauth_flow: GoogleOAuthFlow,
        settings: Optional[Settings] = None,
        client_factory: ClientFactory = create_calendar_client,
    ):
        self._session_factory = session_factory
        self._cipher = cipher
        self._oauth_flow = oauth_flow
        self._settings = settings or get_settings()
        self._client_factory = client_factory

    @property
    def refresh_skew(self) -> timedelta:
        return timedelta(seconds=self._settings.token_refresh_skew_seconds)

    def _encrypt(self, value: str) -> bytes:
        return self._cipher.encrypt(value.encode())

    def _decrypt(self, value: bytes) -> str:
        return self._cipher.decrypt(value).decode()

    async def _load(self, session: AsyncSession, connection_id: uuid.UUID) -> CalendarConnection:
        connection = await session.get(CalendarConnection, connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        return connection

    # =========================================================================
    # Lookup
    # =========================================================================

    async def get_connection(self, connection_id: uuid.UUID) -> Optional[CalendarConnection]:
        async with self._session_factory() as session:
            return await session.get(CalendarConnection, connection_id)

    async def get_connection_by_user(self, user_id: str) -> Optional[CalendarConnection]:
        stmt = select(CalendarConnection).where(CalendarConnection.user_id == user_id)
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    # =========================================================================
    # Credentials
    # =========================================================================

    async def get_authenticated_client(self, connection_id: uuid.UUID) -> GoogleCalendarRepository:
        """
        Build a Google client for a connection, refreshing the token if needed.

        At most one refresh is performed. The refreshed token and its expiry
        are persisted before the client is returned. No session is open
        while the token endpoint is called; the write afterwards is
        last-write-wins.

        Raises:
            ConnectionNotFoundError: Unknown connection
            RefreshTokenInvalidError: Connection needs re-authorization
            TokenRefreshError: Token endpoint unavailable after retries
        """
        async with self._session_factory() as session:
            connection = await self._load(session, connection_id)

            if connection.requires_reauth or not connection.is_active:
                raise RefreshTokenInvalidError(
                    f"Connection {connection_id} requires re-authorization"
                )

            access_token = self._decrypt(connection.access_token_encrypted)
            refresh_token = self._decrypt(connection.refresh_token_encrypted)
            token_expiry = connection.token_expiry
            needs_refresh = connection.needs_refresh(self.refresh_skew)

        if needs_refresh:
            logger.info(f"Access token for connection {connection_id} expiring, refreshing")
            try:
                tokens = await self._oauth_flow.refresh_token(refresh_token)
            except RefreshTokenInvalidError as e:
                logger.warning(
                    f"Refresh grant for connection {connection_id} rejected, "
                    f"marking as needing re-authorization"
                )
                await self.mark_connection_requires_reauth(connection_id, e.message)
                raise

            rotated = bool(tokens.refresh_token and tokens.refresh_token != refresh_token)
            access_token = tokens.access_token
            token_expiry = tokens.expiry
            if rotated:
                refresh_token = tokens.refresh_token

            async with self._session_factory() as session:
                connection = await self._load(session, connection_id)
                connection.access_token_encrypted = self._encrypt(access_token)
                if rotated:
                    connection.refresh_token_encrypted = self._encrypt(refresh_token)
                connection.token_expiry = token_expiry
                connection.last_sync_error = None
                await session.commit()

        return self._client_factory(
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=token_expiry,
            settings=self._settings,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def create_connection(self, data: ConnectionInput) -> CalendarConnection:
        """
        Store a connection, upserting by user.

        Re-connecting replaces the credentials and clears the re-auth flag
        while keeping calendar IDs and preferences.

        Raises:
            GoogleCalendarAuthError: First connection without a refresh token
        """
        stmt = select(CalendarConnection).where(CalendarConnection.user_id == data.user_id)
        async with self._session_factory() as session:
            connection = (await session.execute(stmt)).scalar_one_or_none()

            if connection is None:
                if not data.refresh_token:
                    raise GoogleCalendarAuthError(
                        "Google did not return a refresh token; consent must be granted again"
                    )
                connection = CalendarConnection(
                    user_id=data.user_id,
                    tenant_id=data.tenant_id,
                    provider_email=data.provider_email,
                    provider_user_id=data.provider_user_id,
                    access_token_encrypted=self._encrypt(data.access_token),
                    refresh_token_encrypted=self._encrypt(data.refresh_token),
                    token_expiry=data.token_expiry,
                    sync_organization_calendar=False,
                    sync_personal_calendar=False,
                    is_active=True,
                    requires_reauth=False,
                )
                session.add(connection)
                logger.info(f"Created calendar connection for user {data.user_id}")
            else:
                connection.tenant_id = data.tenant_id
                connection.provider_email = data.provider_email
                connection.provider_user_id = data.provider_user_id
                connection.access_token_encrypted = self._encrypt(data.access_token)
                if data.refresh_token:
                    connection.refresh_token_encrypted = self._encrypt(data.refresh_token)
                connection.token_expiry = data.token_expiry
                connection.is_active = True
                connection.requires_reauth = False
                connection.last_sync_error = None
                logger.info(f"Re-connected calendar connection {connection.id} for user {data.user_id}")

            await session.commit()
            await session.refresh(connection)
            return connection

    async def update_connection_preferences(
        self,
        connection_id: uuid.UUID,
        preferences: ConnectionPreferences,
    ) -> CalendarConnection:
        """Merge the supplied preference fields into the connection."""
        async with self._session_factory() as session:
            connection = await self._load(session, connection_id)
            if preferences.sync_organization_calendar is not None:
                connection.sync_organization_calendar = preferences.sync_organization_calendar
            if preferences.sync_personal_calendar is not None:
                connection.sync_personal_calendar = preferences.sync_personal_calendar
            await session.commit()
            await session.refresh(connection)
            return connection

    async def mark_connection_requires_reauth(
        self,
        connection_id: uuid.UUID,
        error: Optional[str] = None,
    ) -> None:
        async with self._session_factory() as session:
            connection = await self._load(session, connection_id)
            connection.requires_reauth = True
            connection.is_active = False
            connection.last_sync_error = error or "Re-authorization required"
            await session.commit()
        logger.warning(f"Connection {connection_id} marked as needing re-authorization")

    async def record_sync_success(self, connection_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            connection = await self._load(session, connection_id)
            connection.last_sync_at = utcnow()
            connection.last_sync_error = None
            await session.commit()

    async def record_sync_error(self, connection_id: uuid.UUID, message: str) -> None:
        async with self._session_factory() as session:
            connection = await self._load(session, connection_id)
            connection.last_sync_error = message[:2000]
            await session.commit()

    async def delete_connection(self, connection_id: uuid.UUID) -> None:
        """Delete the connection with its venue calendars and sync mappings."""
        async with self._session_factory() as session:
            await self._load(session, connection_id)
            await session.execute(
                delete(SyncedEvent).where(SyncedEvent.connection_id == connection_id)
            )
            await session.execute(
                delete(VenueCalendar).where(VenueCalendar.connection_id == connection_id)
            )
            await session.execute(
                delete(CalendarConnection).where(CalendarConnection.id == connection_id)
            )
            await session.commit()
        logger.info(f"Deleted calendar connection {connection_id}")
