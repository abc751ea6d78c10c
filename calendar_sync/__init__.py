"""
Calendar sync service.

Pushes scheduled events into Google Calendars created in each connected
user's account.
"""

__version__ = "0.1.0"
