"""
HTTP API for the calendar sync service.
"""

from calendar_sync.api.main import app, create_app

__all__ = ["app", "create_app"]
