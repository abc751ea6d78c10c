"""
Event-changed signal from the scheduling domain.

Called after an event is created, updated, re-staffed or deleted. Sync runs
in the request and never fails the caller: provider problems are reported
in the result body with a 200.
"""

import logging

from fastapi import APIRouter, Depends

from calendar_sync.api.dependencies import get_sync_service
from calendar_sync.api.integration_routes import to_sync_response
from calendar_sync.api.models import EventChangedRequest, SyncResultResponse
from calendar_sync.services import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/events", tags=["events"])


@router.post("/{event_id}/changed", response_model=SyncResultResponse)
async def event_changed(
    event_id: str,
    body: EventChangedRequest,
    sync_service: SyncService = Depends(get_sync_service),
) -> SyncResultResponse:
    """Propagate an event mutation to every connected Google Calendar."""
    result = await sync_service.handle_event_change(event_id, body.kind)
    if not result.success:
        logger.warning(f"Event {event_id} synced with {result.failed} failures")
    return to_sync_response(result)
