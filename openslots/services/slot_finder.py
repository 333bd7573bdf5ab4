"""
Application service that resolves a provider's bookable slots.

The service fetches everything one request needs through the injected
read-only repositories, concurrently, and then runs the pure domain pipeline:
template resolution, busy-interval aggregation, candidate generation and
conflict filtering, location annotation and slot assembly. It holds no
per-request state, so one instance can serve many requests at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.assembler import (
    DEFAULT_SERVICES,
    assemble_slots,
    build_automatic_slots,
    build_manual_slots,
)
from ..domain.busy import aggregate_busy_intervals
from ..domain.exceptions import InvalidRequestError, ProviderNotFoundError
from ..domain.locations import LOCATION_FALLBACK, LocationAnnotator
from ..domain.models import (
    Booking,
    CalendarEvent,
    GeneratedSlot,
    Provider,
    ResolvedDay,
    TimeRange,
    minutes_of,
)
from ..domain.resolver import AvailabilitySnapshot, TemplateResolver, iter_dates
from ..domain.slot_calculator import SlotCalculator
from ..domain.timezones import DEFAULT_TIMEZONE, local_today, start_of_local_day, to_instant, to_wall
from .repositories import (
    AvailabilityRepository,
    CalendarRepository,
    LocationRepository,
    ProviderRepository,
)
from .sync import BackgroundSyncTrigger

logger = logging.getLogger(__name__)

DEFAULT_DAYS_AHEAD = 14


@dataclass(frozen=True)
class SlotSearchResult:
    provider: Provider
    timezone: str
    slots: List[GeneratedSlot]


@dataclass(frozen=True)
class DayPreview:
    """Summary of one date without materialising client-facing slots."""
    date: date
    source: str
    using_advanced_schedule: bool
    location_display: str
    slot_counts: Dict[int, int] = field(default_factory=dict)

    @property
    def has_availability(self) -> bool:
        return any(self.slot_counts.values())


@dataclass(frozen=True)
class _RequestContext:
    provider: Provider
    resolver: TemplateResolver
    annotator: LocationAnnotator
    events: Sequence[CalendarEvent]
    bookings: Sequence[Booking]


async def _gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """Await all reads; if any fails or the caller is cancelled, abandon the rest."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def parse_days_ahead(value: Any, default: int = DEFAULT_DAYS_AHEAD) -> int:
    """Validate a ``days_ahead`` parameter coming from a caller."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidRequestError("daysAhead must be an integer")
    try:
        days = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidRequestError(f"daysAhead must be an integer, got {value!r}") from exc
    if isinstance(value, float) and value != days:
        raise InvalidRequestError(f"daysAhead must be an integer, got {value!r}")
    if days < 0:
        raise InvalidRequestError("daysAhead must not be negative")
    return days


class SlotFinderService:
    """
    Orchestrates data retrieval and the slot generation pipeline.

    Dependency inversion toward repository protocols makes it easy to plug in
    a database-backed store or in-memory fakes in tests.
    """

    def __init__(
        self,
        providers: ProviderRepository,
        availability: AvailabilityRepository,
        calendar: CalendarRepository,
        locations: LocationRepository,
        slot_calculator: Optional[SlotCalculator] = None,
        *,
        sync_trigger: Optional[BackgroundSyncTrigger] = None,
        fallback_timezone: str = DEFAULT_TIMEZONE,
        default_services: Sequence[str] = DEFAULT_SERVICES,
        location_fallback: str = LOCATION_FALLBACK,
        default_days_ahead: int = DEFAULT_DAYS_AHEAD,
    ) -> None:
        self._providers = providers
        self._availability = availability
        self._calendar = calendar
        self._locations = locations
        self._slot_calculator = slot_calculator or SlotCalculator()
        self._sync_trigger = sync_trigger
        self._fallback_timezone = fallback_timezone
        self._default_services = tuple(default_services)
        self._location_fallback = location_fallback
        self._default_days_ahead = default_days_ahead

    async def get_provider(self, provider_id: Optional[str]) -> Provider:
        """Validate ``provider_id`` and load the provider or raise."""
        if not provider_id or not str(provider_id).strip():
            raise InvalidRequestError("providerId is required")

        provider = await self._providers.get_provider(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        return provider

    async def find_slots(
        self,
        provider_id: Optional[str],
        *,
        days_ahead: Any = None,
        service_type: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> SlotSearchResult:
        """
        Resolve all bookable slots from now through ``days_ahead`` days.

        ``days_ahead`` is clamped to the provider's advance booking window.
        """
        days = parse_days_ahead(days_ahead, self._default_days_ahead)
        provider = await self.get_provider(provider_id)
        now = now or pendulum.now("UTC")
        days = min(days, provider.advance_booking_days)

        fetch_start, fetch_end = self._fetch_window(provider, now, days)
        if self._sync_trigger is not None:
            self._sync_trigger.trigger(provider.id, now, fetch_end)

        context = await self._load_context(provider, fetch_start, fetch_end)
        timezone = context.resolver.provider_timezone()
        first_day = local_today(now, timezone)
        last_day = first_day + timedelta(days=days)
        horizon_end = start_of_local_day(last_day + timedelta(days=1), timezone)

        resolved_days = [context.resolver.resolve(day) for day in iter_dates(first_day, last_day)]
        slots = self._assemble(context, resolved_days, now, horizon_end, timezone, service_type)

        logger.info(
            "Generated %d slots for provider %s over %d day(s), service filter %s",
            len(slots),
            provider.id,
            days,
            service_type or "any",
        )
        return SlotSearchResult(provider=provider, timezone=timezone, slots=slots)

    async def slots_for_date(
        self,
        provider_id: Optional[str],
        day: date,
        duration_minutes: int,
        *,
        now: Optional[DateTime] = None,
    ) -> SlotSearchResult:
        """On-demand automatic slots for a single date and a single allowed duration."""
        provider = await self.get_provider(provider_id)
        if duration_minutes not in provider.effective_durations():
            raise InvalidRequestError(
                f"Duration {duration_minutes} is not allowed for this provider"
            )

        now = now or pendulum.now("UTC")
        days = provider.advance_booking_days
        fetch_start, fetch_end = self._fetch_window(provider, now, days)
        context = await self._load_context(provider, fetch_start, fetch_end)
        timezone = context.resolver.provider_timezone()

        today = local_today(now, timezone)
        if day < today:
            raise InvalidRequestError("Cannot book appointments in the past")
        if day > today + timedelta(days=days):
            raise InvalidRequestError(
                f"Date is beyond the provider's {days}-day booking window"
            )

        resolved = context.resolver.resolve(day)
        busy = self._busy_intervals(context, fetch_start, fetch_end)
        candidates = self._slot_calculator.find_available_candidates(
            days=[resolved],
            durations=[duration_minutes],
            busy_intervals=busy,
            buffer_minutes=provider.buffer_minutes,
            now=now,
        )
        slots = build_automatic_slots(candidates, context.annotator, self._default_services)
        return SlotSearchResult(provider=provider, timezone=timezone, slots=assemble_slots([], slots))

    async def availability_preview(
        self,
        provider_id: Optional[str],
        *,
        days_ahead: Any = None,
        now: Optional[DateTime] = None,
    ) -> Tuple[Provider, str, List[DayPreview]]:
        """Per-date slot counts for each allowed duration, with the governing source."""
        days = parse_days_ahead(days_ahead, self._default_days_ahead)
        provider = await self.get_provider(provider_id)
        now = now or pendulum.now("UTC")
        days = min(days, provider.advance_booking_days)

        fetch_start, fetch_end = self._fetch_window(provider, now, days)
        context = await self._load_context(provider, fetch_start, fetch_end)
        timezone = context.resolver.provider_timezone()
        first_day = local_today(now, timezone)
        horizon_end = start_of_local_day(first_day + timedelta(days=days + 1), timezone)
        busy = self._busy_intervals(context, fetch_start, fetch_end)
        durations = provider.effective_durations()

        previews: List[DayPreview] = []
        for day in iter_dates(first_day, first_day + timedelta(days=days)):
            resolved = context.resolver.resolve(day)
            candidates = self._slot_calculator.find_available_candidates(
                days=[resolved],
                durations=durations,
                busy_intervals=busy,
                buffer_minutes=provider.buffer_minutes,
                now=now,
                horizon_end=horizon_end,
            )
            counts = {duration: 0 for duration in durations}
            for candidate in candidates:
                counts[candidate.duration_minutes] += 1
            previews.append(
                DayPreview(
                    date=day,
                    source=resolved.source.kind,
                    using_advanced_schedule=resolved.using_advanced_schedule,
                    location_display=context.annotator.display_for(day),
                    slot_counts=counts,
                )
            )

        return provider, timezone, previews

    async def is_slot_available(
        self,
        provider_id: Optional[str],
        start: DateTime,
        duration_minutes: int,
        *,
        now: Optional[DateTime] = None,
    ) -> bool:
        """
        Check one requested appointment against availability and busy time.

        The start does not need to lie on the generation step grid; it only
        has to fit inside an open window of its date.
        """
        provider = await self.get_provider(provider_id)
        if duration_minutes not in provider.effective_durations():
            return False

        now = now or pendulum.now("UTC")
        end = start.add(minutes=duration_minutes)
        fetch_start = start.subtract(minutes=provider.buffer_minutes)
        fetch_end = end.add(minutes=provider.buffer_minutes)
        context = await self._load_context(provider, fetch_start, fetch_end)

        timezone = context.resolver.provider_timezone()
        last_day = local_today(now, timezone) + timedelta(days=provider.advance_booking_days)
        horizon_end = start_of_local_day(last_day + timedelta(days=1), timezone)

        resolved = context.resolver.resolve(local_today(start, timezone))
        if not self._fits_window(resolved, start, duration_minutes):
            return False

        busy = self._busy_intervals(context, fetch_start, fetch_end)
        return self._slot_calculator.accepts(
            TimeRange(start=start, end=end),
            busy,
            provider.buffer_minutes,
            now,
            horizon_end,
        )

    # -- internals ---------------------------------------------------------

    def _fetch_window(self, provider: Provider, now: DateTime, days: int) -> Tuple[DateTime, DateTime]:
        """
        Absolute range covering every local date of the request.

        Two extra days absorb any provider UTC offset; the aggregator clips
        to the exact range later.
        """
        buffer = provider.buffer_minutes
        return now.subtract(minutes=buffer), now.add(days=days + 2).add(minutes=buffer)

    async def _load_context(
        self,
        provider: Provider,
        fetch_start: DateTime,
        fetch_end: DateTime,
    ) -> _RequestContext:
        # Local dates may sit up to a day either side of the UTC date.
        first_date = fetch_start.in_timezone("UTC").subtract(days=1).date()
        last_date = fetch_end.in_timezone("UTC").add(days=1).date()
        templates, assignments, schedules, events, bookings, locations = await _gather_or_cancel(
            self._availability.list_templates(provider.id),
            self._availability.list_assignments(provider.id),
            self._availability.list_advanced_schedules(provider.id, first_date, last_date),
            self._calendar.list_calendar_events(provider.id, fetch_start, fetch_end),
            self._calendar.list_bookings(provider.id, fetch_start, fetch_end),
            self._locations.list_locations(provider.id),
        )

        snapshot = AvailabilitySnapshot(
            templates=tuple(templates),
            assignments=tuple(assignments),
            advanced_schedules=tuple(schedules),
        )
        resolver = TemplateResolver(snapshot, fallback_timezone=self._fallback_timezone)
        if resolver.default_template is None and not snapshot.assignments and not snapshot.advanced_schedules:
            logger.warning("Provider %s has no availability templates", provider.id)

        return _RequestContext(
            provider=provider,
            resolver=resolver,
            annotator=LocationAnnotator(locations, fallback=self._location_fallback),
            events=tuple(events),
            bookings=tuple(bookings),
        )

    @staticmethod
    def _busy_intervals(context: _RequestContext, start: DateTime, end: DateTime):
        return aggregate_busy_intervals(
            context.events,
            context.bookings,
            TimeRange(start=start, end=end),
        )

    def _assemble(
        self,
        context: _RequestContext,
        resolved_days: Sequence[ResolvedDay],
        now: DateTime,
        horizon_end: DateTime,
        timezone: str,
        service_type: Optional[str],
    ) -> List[GeneratedSlot]:
        provider = context.provider
        busy = self._busy_intervals(
            context,
            now.subtract(minutes=provider.buffer_minutes),
            horizon_end.add(minutes=provider.buffer_minutes),
        )

        candidates = self._slot_calculator.find_available_candidates(
            days=resolved_days,
            durations=provider.effective_durations(),
            busy_intervals=busy,
            buffer_minutes=provider.buffer_minutes,
            now=now,
            horizon_end=horizon_end,
        )
        automatic = build_automatic_slots(candidates, context.annotator, self._default_services)
        manual = build_manual_slots(
            context.events,
            context.bookings,
            provider,
            context.annotator,
            timezone,
            now,
            safety_buffer_minutes=self._slot_calculator.safety_buffer_minutes,
            horizon_end=horizon_end,
        )
        return assemble_slots(manual, automatic, service_type)

    @staticmethod
    def _fits_window(resolved: ResolvedDay, start: DateTime, duration_minutes: int) -> bool:
        wall_date, wall_time = to_wall(start, resolved.timezone)
        if wall_date != resolved.date:
            return False
        start_minute = minutes_of(wall_time)
        return any(
            window.start_minute <= start_minute
            and start_minute + duration_minutes <= window.end_minute
            and start.add(minutes=duration_minutes) <= to_instant(resolved.date, window.end, resolved.timezone)
            for window in resolved.windows
        )
