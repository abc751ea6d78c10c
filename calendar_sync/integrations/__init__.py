"""
External service integrations for the calendar sync service.

Defines the canonical sync types and the read-only boundary to the
scheduling domain.
"""

from calendar_sync.integrations.base import (
    CalendarScope,
    EventChangeKind,
    SchedulingDirectory,
    SyncableEvent,
    SyncTarget,
)

__all__ = [
    "CalendarScope",
    "EventChangeKind",
    "SchedulingDirectory",
    "SyncableEvent",
    "SyncTarget",
]
