"""
Google Calendar integration routes.

Handles the OAuth 2.0 authorization code flow and the user's sync settings:
1. /authorize - Start OAuth flow (returns the Google consent URL)
2. /callback - Handle OAuth callback (exchange code, store connection)
3. /status - Connection state and available calendars
4. /preferences - Toggle organization, personal and venue calendars
5. /disconnect - Remove the connection (optionally the Google calendars)
6. /sync - Manual sync of one event or a full re-sync
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from calendar_sync.api.dependencies import (
    get_calendar_manager,
    get_cipher,
    get_current_user_id,
    get_directory,
    get_oauth_flow,
    get_settings_dep,
    get_sync_service,
    get_token_manager,
)
from calendar_sync.api.models import (
    AuthorizeResponse,
    CalendarInfo,
    CallbackResponse,
    ConnectionStatusResponse,
    DisconnectResponse,
    PreferencesRequest,
    PreferencesResponse,
    SyncResultResponse,
)
from calendar_sync.auth.encryption import FernetTokenCipher, InvalidOAuthStateError
from calendar_sync.config import Settings
from calendar_sync.integrations.base import CalendarScope
from calendar_sync.integrations.google_calendar.auth import GoogleOAuthFlow
from calendar_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarAuthError,
    GoogleCalendarError,
    RefreshTokenInvalidError,
)
from calendar_sync.models.connections import STATUS_CONNECTED, CalendarConnection
from calendar_sync.services import (
    CalendarManager,
    ConnectionInput,
    SQLAlchemySchedulingDirectory,
    SyncResult,
    SyncService,
    TokenManager,
)
from calendar_sync.services.calendar_manager import calendar_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/google-calendar", tags=["google-calendar"])


def _provider_error(e: GoogleCalendarError) -> HTTPException:
    """Translate a provider failure into an HTTP error."""
    if isinstance(e, RefreshTokenInvalidError):
        return HTTPException(
            status_code=409,
            detail="Google Calendar access was revoked. Please reconnect.",
        )
    if e.retryable:
        return HTTPException(status_code=503, detail="Google Calendar is temporarily unavailable")
    return HTTPException(status_code=502, detail=f"Google Calendar error: {e.message}")


async def _require_connection(token_manager: TokenManager, user_id: str) -> CalendarConnection:
    connection = await token_manager.get_connection_by_user(user_id)
    if connection is None:
        raise HTTPException(status_code=404, detail="No Google Calendar connection found")
    return connection


def to_sync_response(result: SyncResult) -> SyncResultResponse:
    return SyncResultResponse(
        success=result.success,
        synced=result.synced,
        skipped=result.skipped,
        failed=result.failed,
        errors=result.errors,
    )


@router.get("/authorize", response_model=AuthorizeResponse)
async def authorize(
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings_dep),
    cipher: FernetTokenCipher = Depends(get_cipher),
    oauth_flow: GoogleOAuthFlow = Depends(get_oauth_flow),
) -> AuthorizeResponse:
    """
    Start the Google OAuth flow.

    The state parameter carries the encrypted user ID, so the callback is
    bound to the user who started the flow.
    """
    if not settings.uses_google_oauth:
        raise HTTPException(status_code=503, detail="Google OAuth is not configured")

    state = cipher.create_oauth_state(user_id)
    logger.info(f"Generated OAuth URL for user {user_id}")

    return AuthorizeResponse(
        authorization_url=oauth_flow.get_authorization_url(state),
        state=state,
    )


@router.get("/callback", response_model=CallbackResponse)
async def callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="State token from /authorize"),
    error: Optional[str] = Query(None, description="Error from Google OAuth"),
    settings: Settings = Depends(get_settings_dep),
    cipher: FernetTokenCipher = Depends(get_cipher),
    oauth_flow: GoogleOAuthFlow = Depends(get_oauth_flow),
    directory: SQLAlchemySchedulingDirectory = Depends(get_directory),
    token_manager: TokenManager = Depends(get_token_manager),
) -> CallbackResponse:
    """
    Handle the Google OAuth callback.

    Exchanges the authorization code for tokens and stores (or refreshes)
    the user's connection.
    """
    if error:
        logger.warning(f"OAuth error: {error}")
        raise HTTPException(status_code=400, detail=f"OAuth authorization failed: {error}")

    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    try:
        user_id = cipher.read_oauth_state(state, settings.oauth_state_ttl_seconds)
    except InvalidOAuthStateError:
        logger.warning("Invalid or expired OAuth state token")
        raise HTTPException(
            status_code=400,
            detail="Invalid or expired state token. Please restart the OAuth flow.",
        )

    tenant_id = await directory.get_profile_tenant_id(user_id)
    if tenant_id is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    try:
        tokens = await oauth_flow.exchange_code(code)
        user_info = await oauth_flow.get_user_info(tokens.access_token)
        connection = await token_manager.create_connection(
            ConnectionInput(
                user_id=user_id,
                tenant_id=tenant_id,
                provider_email=user_info.email,
                provider_user_id=user_info.id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_expiry=tokens.expiry,
            )
        )
    except GoogleCalendarAuthError as e:
        logger.error(f"OAuth callback failed for user {user_id}: {e.message}")
        raise HTTPException(status_code=400, detail=f"Failed to complete OAuth flow: {e.message}")
    except GoogleCalendarError as e:
        logger.error(f"OAuth callback failed for user {user_id}: {e.message}")
        raise _provider_error(e)

    logger.info(f"Stored Google Calendar connection {connection.id} for user {user_id}")

    return CallbackResponse(
        success=True,
        email=user_info.email,
        connection_id=str(connection.id),
        message="Successfully connected Google Calendar",
    )


@router.get("/status", response_model=ConnectionStatusResponse)
async def status(
    user_id: str = Depends(get_current_user_id),
    directory: SQLAlchemySchedulingDirectory = Depends(get_directory),
    token_manager: TokenManager = Depends(get_token_manager),
    calendar_manager: CalendarManager = Depends(get_calendar_manager),
) -> ConnectionStatusResponse:
    """
    Connection status and the calendars the user may sync.

    The organization calendar is listed for admins only; non-admins see
    only the venues they belong to.
    """
    is_admin = await directory.is_admin(user_id)
    connection = await token_manager.get_connection_by_user(user_id)

    if connection is None:
        return ConnectionStatusResponse(
            connected=False,
            can_sync_organization_calendar=is_admin,
        )

    org_name = await directory.get_organization_name(connection.tenant_id)
    calendars: list[CalendarInfo] = []

    if is_admin:
        calendars.append(
            CalendarInfo(
                scope="organization",
                name=calendar_summary(CalendarScope.ORGANIZATION, org_name),
                sync_enabled=connection.sync_organization_calendar,
                provider_calendar_id=connection.organization_calendar_id,
            )
        )

    calendars.append(
        CalendarInfo(
            scope="personal",
            name=calendar_summary(CalendarScope.PERSONAL, org_name),
            sync_enabled=connection.sync_personal_calendar,
            provider_calendar_id=connection.personal_calendar_id,
        )
    )

    venues = await directory.list_active_venues(connection.tenant_id)
    if not is_admin:
        member_venue_ids = await directory.list_member_venue_ids(user_id)
        venues = [venue for venue in venues if venue.id in member_venue_ids]

    venue_rows = {
        row.venue_id: row for row in await calendar_manager.list_venue_calendars(connection.id)
    }
    for venue in venues:
        row = venue_rows.get(venue.id)
        calendars.append(
            CalendarInfo(
                scope="venue",
                name=calendar_summary(CalendarScope.VENUE, org_name, venue.name),
                sync_enabled=bool(row and row.sync_enabled),
                venue_id=venue.id,
                color=venue.color,
                provider_calendar_id=row.provider_calendar_id if row else None,
            )
        )

    return ConnectionStatusResponse(
        connected=connection.status == STATUS_CONNECTED,
        status=connection.status,
        email=connection.provider_email,
        connected_at=connection.created_at,
        last_sync_at=connection.last_sync_at,
        last_sync_error=connection.last_sync_error,
        can_sync_organization_calendar=is_admin,
        calendars=calendars,
    )


@router.patch("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    body: PreferencesRequest,
    user_id: str = Depends(get_current_user_id),
    directory: SQLAlchemySchedulingDirectory = Depends(get_directory),
    token_manager: TokenManager = Depends(get_token_manager),
    calendar_manager: CalendarManager = Depends(get_calendar_manager),
) -> PreferencesResponse:
    """
    Update sync preferences.

    Enabling a calendar for the first time creates it in Google. A failure
    on one venue does not stop the others.
    """
    connection = await _require_connection(token_manager, user_id)
    is_admin = await directory.is_admin(user_id)

    if body.sync_organization_calendar is not None and not is_admin:
        raise HTTPException(
            status_code=403,
            detail="Only admins can sync the organization-wide calendar",
        )

    if body.venue_preferences and not is_admin:
        member_venue_ids = await directory.list_member_venue_ids(user_id)
        if any(p.enabled and p.venue_id not in member_venue_ids for p in body.venue_preferences):
            raise HTTPException(
                status_code=403,
                detail="You can only sync calendars for venues you belong to",
            )

    org_name = await directory.get_organization_name(connection.tenant_id)

    try:
        if body.sync_organization_calendar is not None:
            await calendar_manager.set_organization_calendar_sync(
                connection.id, body.sync_organization_calendar, org_name
            )
        if body.sync_personal_calendar is not None:
            await calendar_manager.set_personal_calendar_sync(
                connection.id, body.sync_personal_calendar, org_name
            )
    except GoogleCalendarError as e:
        logger.error(f"Failed to update preferences for connection {connection.id}: {e.message}")
        raise _provider_error(e)

    errors: list[str] = []
    for pref in body.venue_preferences or []:
        venue = await directory.get_venue(pref.venue_id)
        if venue is None:
            errors.append(f"Venue {pref.venue_id} not found")
            continue
        try:
            await calendar_manager.toggle_venue_calendar_sync(
                connection.id,
                venue.id,
                pref.enabled,
                org_name=org_name,
                venue_name=venue.name,
                venue_color=venue.color,
            )
        except GoogleCalendarError as e:
            logger.error(f"Failed to toggle venue calendar {venue.id}: {e.message}")
            errors.append(f"Venue {venue.id}: {e.message}")

    return PreferencesResponse(
        success=not errors,
        message="Preferences updated successfully" if not errors else "Some preferences were not applied",
        errors=errors,
    )


@router.post("/disconnect", response_model=DisconnectResponse)
async def disconnect(
    delete_calendars: bool = Query(False, description="Also delete the calendars from Google"),
    user_id: str = Depends(get_current_user_id),
    token_manager: TokenManager = Depends(get_token_manager),
    calendar_manager: CalendarManager = Depends(get_calendar_manager),
) -> DisconnectResponse:
    """
    Disconnect the user's Google Calendar.

    Calendar deletion is best-effort; the connection is removed either way.
    """
    connection = await _require_connection(token_manager, user_id)

    failed: list[str] = []
    if delete_calendars:
        try:
            failed = await calendar_manager.delete_all_calendars(connection.id)
        except GoogleCalendarError as e:
            logger.warning(
                f"Could not delete calendars of connection {connection.id}: {e.message}"
            )
            failed = [
                cid
                for cid in (connection.organization_calendar_id, connection.personal_calendar_id)
                if cid
            ]

    await token_manager.delete_connection(connection.id)
    logger.info(f"User {user_id} disconnected Google Calendar")

    return DisconnectResponse(
        success=True,
        message="Successfully disconnected Google Calendar",
        failed_calendar_ids=failed,
    )


@router.post("/sync", response_model=SyncResultResponse)
async def manual_sync(
    event_id: Optional[str] = Query(None, description="Sync one event; omit for a full re-sync"),
    user_id: str = Depends(get_current_user_id),
    token_manager: TokenManager = Depends(get_token_manager),
    sync_service: SyncService = Depends(get_sync_service),
) -> SyncResultResponse:
    """Sync one event, or every published event, for the caller's connection."""
    connection = await _require_connection(token_manager, user_id)
    if connection.requires_reauth:
        raise HTTPException(
            status_code=409,
            detail="Google Calendar access was revoked. Please reconnect.",
        )

    if event_id:
        result = await sync_service.sync_event(event_id, connection_id=connection.id)
    else:
        result = await sync_service.sync_all_events_for_connection(connection.id)

    return to_sync_response(result)
