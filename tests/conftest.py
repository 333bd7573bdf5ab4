"""
Shared fixtures: an in-memory repository and a service factory.
"""

from datetime import time
from typing import List

import pytest

from openslots.domain.models import (
    AvailabilityTemplate,
    Provider,
    ProviderLocation,
    RecurringWindow,
)
from openslots.domain.slot_calculator import SlotCalculator
from openslots.services.slot_finder import SlotFinderService


class InMemoryRepository:
    """Minimal stub implementing every repository protocol."""

    def __init__(self):
        self.providers = {}
        self.templates: List = []
        self.assignments: List = []
        self.schedules: List = []
        self.events: List = []
        self.bookings: List = []
        self.locations: List = []
        self.calls: List[str] = []
        self.fail_on = None

    def _record(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} unavailable")

    async def get_provider(self, provider_id):
        self._record("get_provider")
        return self.providers.get(provider_id)

    async def list_templates(self, provider_id):
        self._record("list_templates")
        return [t for t in self.templates if t.provider_id == provider_id]

    async def list_assignments(self, provider_id):
        self._record("list_assignments")
        return [a for a in self.assignments if a.provider_id == provider_id]

    async def list_advanced_schedules(self, provider_id, start_date, end_date):
        self._record("list_advanced_schedules")
        matching = []
        for s in self.schedules:
            if s.provider_id != provider_id or s.start_date > end_date:
                continue
            last = (s.recurrence_end_date or s.end_date) if s.is_recurring else (s.end_date or s.start_date)
            if last is None or last >= start_date:
                matching.append(s)
        return matching

    async def list_calendar_events(self, provider_id, start, end):
        self._record("list_calendar_events")
        return [e for e in self.events if e.provider_id == provider_id and e.start < end and e.end > start]

    async def list_bookings(self, provider_id, start, end):
        self._record("list_bookings")
        return [
            b for b in self.bookings
            if b.provider_id == provider_id and b.scheduled_at < end and b.ends_at > start
        ]

    async def list_locations(self, provider_id):
        self._record("list_locations")
        return list(self.locations)


@pytest.fixture
def repository():
    """Provider p1 open Mondays 09:00-12:00 New York time, 60-minute slots, buffer 15."""
    repo = InMemoryRepository()
    repo.providers["p1"] = Provider(
        id="p1",
        name="Dana Whitfield",
        default_duration=60,
        buffer_minutes=15,
        advance_booking_days=30,
        allowed_durations=frozenset({60}),
    )
    repo.templates.append(
        AvailabilityTemplate(
            id="tpl-1",
            provider_id="p1",
            timezone="America/New_York",
            is_default=True,
            windows=(RecurringWindow(weekday=1, start=time(9, 0), end=time(12, 0)),),
        )
    )
    repo.locations.append(
        ProviderLocation(id="home", city="Hartford", state_province="CT", country="USA", is_default=True)
    )
    return repo


@pytest.fixture
def make_service(repository):
    def factory(**kwargs):
        kwargs.setdefault("slot_calculator", SlotCalculator())
        return SlotFinderService(
            providers=repository,
            availability=repository,
            calendar=repository,
            locations=repository,
            **kwargs,
        )

    return factory
