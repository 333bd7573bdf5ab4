"""
Adapters layer - External integrations (JSON data store, calendar sync API).
"""

from .json_repository import JsonAvailabilityRepository
from .sync_client import HttpCalendarSyncClient

__all__ = ["JsonAvailabilityRepository", "HttpCalendarSyncClient"]
