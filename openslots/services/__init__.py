"""
Service layer helpers that orchestrate repositories and domain logic.
"""

from .repositories import (
    AvailabilityRepository,
    CalendarRepository,
    LocationRepository,
    ProviderRepository,
)
from .responses import QueryOutcome, SlotQueryService
from .slot_finder import DayPreview, SlotFinderService, SlotSearchResult
from .sync import BackgroundSyncTrigger, CalendarSyncClient, SyncResult

__all__ = [
    "AvailabilityRepository",
    "CalendarRepository",
    "LocationRepository",
    "ProviderRepository",
    "QueryOutcome",
    "SlotQueryService",
    "DayPreview",
    "SlotFinderService",
    "SlotSearchResult",
    "BackgroundSyncTrigger",
    "CalendarSyncClient",
    "SyncResult",
]
