"""
Read-only repository protocols consumed by the slot engine.

Each component gets its own narrow interface so tests can plug in in-memory
fakes and production code can plug in a database-backed implementation.
"""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from pendulum import DateTime

from ..domain.models import (
    AdvancedSchedule,
    AvailabilityTemplate,
    Booking,
    CalendarEvent,
    Provider,
    ProviderLocation,
    TemplateAssignment,
)


class ProviderRepository(Protocol):
    async def get_provider(self, provider_id: str) -> Optional[Provider]:
        """Return the provider settings record, or None if unknown."""


class AvailabilityRepository(Protocol):
    async def list_templates(self, provider_id: str) -> Sequence[AvailabilityTemplate]:
        """Return all templates of the provider, including inactive ones."""

    async def list_assignments(self, provider_id: str) -> Sequence[TemplateAssignment]:
        """Return the provider's template assignments."""

    async def list_advanced_schedules(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> Sequence[AdvancedSchedule]:
        """Return advanced schedules that may apply between the two dates."""


class CalendarRepository(Protocol):
    async def list_calendar_events(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> Sequence[CalendarEvent]:
        """Return synced events intersecting ``[start, end)``."""

    async def list_bookings(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> Sequence[Booking]:
        """Return bookings whose appointment intersects ``[start, end)``."""


class LocationRepository(Protocol):
    async def list_locations(self, provider_id: str) -> Sequence[ProviderLocation]:
        """Return the provider's locations."""
