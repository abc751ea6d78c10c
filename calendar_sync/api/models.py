"""
Pydantic request and response models for the calendar sync API.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from calendar_sync.integrations.base import EventChangeKind


# =============================================================================
# Request Models
# =============================================================================


class VenuePreference(BaseModel):
    """Enable or disable one venue calendar."""

    venue_id: str = Field(..., description="Venue ID")
    enabled: bool = Field(..., description="Whether the venue calendar is synced")


class PreferencesRequest(BaseModel):
    """Partial update of sync preferences; omitted fields are unchanged."""

    sync_organization_calendar: Optional[bool] = Field(
        None,
        description="Sync the organization-wide calendar (admins only)",
    )
    sync_personal_calendar: Optional[bool] = Field(
        None,
        description="Sync the personal calendar (assignments and invitations)",
    )
    venue_preferences: Optional[list[VenuePreference]] = Field(
        None,
        description="Per-venue calendar toggles",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sync_personal_calendar": True,
                "venue_preferences": [{"venue_id": "venue-1", "enabled": True}],
            }
        }
    )


class EventChangedRequest(BaseModel):
    """Mutation signal emitted by the scheduling domain."""

    kind: EventChangeKind = Field(..., description="Kind of change")


# =============================================================================
# Response Models
# =============================================================================


class AuthorizeResponse(BaseModel):
    """Response with OAuth authorization URL."""

    authorization_url: str
    state: str


class CallbackResponse(BaseModel):
    """Response after successful OAuth callback."""

    success: bool
    email: str
    connection_id: str
    message: str


class CalendarInfo(BaseModel):
    """One calendar the user can sync."""

    scope: Literal["organization", "venue", "personal"]
    name: str
    sync_enabled: bool
    venue_id: Optional[str] = None
    color: Optional[str] = None
    provider_calendar_id: Optional[str] = None


class ConnectionStatusResponse(BaseModel):
    """Connection state shown on the integration page."""

    connected: bool
    status: Literal["connected", "needs_reauth", "disconnected"] = "disconnected"
    email: Optional[str] = None
    connected_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    can_sync_organization_calendar: bool = False
    calendars: list[CalendarInfo] = Field(default_factory=list)


class PreferencesResponse(BaseModel):
    """Result of a preference update; per-venue failures are listed."""

    success: bool
    message: str
    errors: list[str] = Field(default_factory=list)


class DisconnectResponse(BaseModel):
    success: bool
    message: str
    failed_calendar_ids: list[str] = Field(default_factory=list)


class SyncResultResponse(BaseModel):
    """Counters of a sync run."""

    success: bool = Field(..., description="No target failed")
    synced: int = Field(..., description="Targets changed in Google")
    skipped: int = Field(..., description="Targets already up to date or not applicable")
    failed: int = Field(..., description="Targets that failed")
    errors: list[str] = Field(default_factory=list, description="Failure details")


class ErrorResponse(BaseModel):
    """Error information for failed requests."""

    error_type: str = Field(..., description="Type of error")
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(default=False, description="Whether request can be retried")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    database_connected: bool = Field(..., description="Database connection status")
    google_oauth_configured: bool = Field(..., description="OAuth client configured")
