"""
FastAPI dependency injection providers.

Services are built once in the application lifespan and kept on
``app.state``; these helpers hand them to route handlers.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from calendar_sync.auth.encryption import FernetTokenCipher
from calendar_sync.config import Settings
from calendar_sync.integrations.google_calendar.auth import GoogleOAuthFlow
from calendar_sync.services import (
    CalendarManager,
    SQLAlchemySchedulingDirectory,
    SyncService,
    TokenManager,
)

logger = logging.getLogger(__name__)


def build_services(app, session_factory, settings: Settings) -> None:
    """Create the service graph and attach it to ``app.state``."""
    cipher = FernetTokenCipher(settings.token_encryption_key)
    oauth_flow = GoogleOAuthFlow(
        client_id=settings.google_oauth_client_id,
        client_secret=settings.google_oauth_client_secret,
        redirect_uri=settings.google_oauth_redirect_uri,
        timeout=settings.provider_timeout_seconds,
        max_attempts=settings.provider_retry_attempts,
        backoff_seconds=settings.provider_retry_backoff_seconds,
    )
    directory = SQLAlchemySchedulingDirectory(session_factory)
    token_manager = TokenManager(session_factory, cipher, oauth_flow, settings)
    calendar_manager = CalendarManager(session_factory, token_manager, directory, settings)

    app.state.settings = settings
    app.state.cipher = cipher
    app.state.oauth_flow = oauth_flow
    app.state.directory = directory
    app.state.token_manager = token_manager
    app.state.calendar_manager = calendar_manager
    app.state.sync_service = SyncService(
        session_factory, token_manager, calendar_manager, directory, settings
    )
    logger.info("Calendar sync services initialized")


def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        logger.error(f"{name} not initialized")
        raise HTTPException(
            status_code=503,
            detail="Service temporarily unavailable - not initialized",
        )
    return service


def get_settings_dep(request: Request) -> Settings:
    return _state(request, "settings")


def get_cipher(request: Request) -> FernetTokenCipher:
    return _state(request, "cipher")


def get_oauth_flow(request: Request) -> GoogleOAuthFlow:
    return _state(request, "oauth_flow")


def get_directory(request: Request) -> SQLAlchemySchedulingDirectory:
    return _state(request, "directory")


def get_token_manager(request: Request) -> TokenManager:
    return _state(request, "token_manager")


def get_calendar_manager(request: Request) -> CalendarManager:
    return _state(request, "calendar_manager")


def get_sync_service(request: Request) -> SyncService:
    return _state(request, "sync_service")


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Profile ID of the caller"),
) -> str:
    """
    Extract the calling user from the X-User-ID header.

    Authentication happens upstream; the header is trusted.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    return x_user_id.strip()
