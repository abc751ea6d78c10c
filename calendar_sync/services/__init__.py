"""
Service layer for the calendar sync service.

Provides:
- TokenManager: connection storage, encrypted credentials, token refresh
- CalendarManager: lifecycle of the calendars created in Google
- SyncService: pushes event mutations to every affected calendar
- event_mapper: pure hashing, predicates and payload formatting
- SQLAlchemySchedulingDirectory: read-only view of the scheduling domain
"""

from calendar_sync.services.calendar_manager import CalendarManager
from calendar_sync.services.directory import SQLAlchemySchedulingDirectory, normalize_event_row
from calendar_sync.services.sync_service import SyncResult, SyncService
from calendar_sync.services.token_manager import (
    ConnectionInput,
    ConnectionPreferences,
    TokenManager,
)

__all__ = [
    "CalendarManager",
    "ConnectionInput",
    "ConnectionPreferences",
    "SQLAlchemySchedulingDirectory",
    "SyncResult",
    "SyncService",
    "TokenManager",
    "normalize_event_row",
]
