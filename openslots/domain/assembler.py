"""
Slot assembly: client-facing records from automatic candidates and bookable events.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pendulum import DateTime

from .locations import LocationAnnotator, clean_location_text
from .models import (
    Booking,
    BusyInterval,
    BusySource,
    CalendarEvent,
    GeneratedSlot,
    Provider,
    SlotCandidate,
    SlotType,
    TimeRange,
)
from .slot_calculator import (
    DEFAULT_SAFETY_BUFFER_MINUTES,
    conflicts_with_busy,
    interval_step,
    is_beyond_safety_buffer,
)
from .timezones import local_today

DEFAULT_SERVICES: Tuple[str, ...] = ("consultation", "maintenance", "emergency", "follow-up")


def _epoch_ms(instant: DateTime) -> int:
    return int(instant.timestamp() * 1000)


def build_automatic_slots(
    candidates: Iterable[SlotCandidate],
    annotator: LocationAnnotator,
    services: Sequence[str] = DEFAULT_SERVICES,
) -> List[GeneratedSlot]:
    """Turn surviving candidates into automatic slots annotated with a location."""
    slots: List[GeneratedSlot] = []
    for candidate in candidates:
        start = candidate.time_range.start
        slots.append(
            GeneratedSlot(
                id=f"slot-{_epoch_ms(start)}-{candidate.duration_minutes}",
                time_range=candidate.time_range,
                duration_minutes=candidate.duration_minutes,
                location_display=annotator.display_for(candidate.date),
                available_services=tuple(services),
                remaining_capacity=1,
                source_type=SlotType.AUTOMATIC,
            )
        )
    return slots


def _event_bookings(bookings: Iterable[Booking]) -> Dict[str, List[Booking]]:
    by_event: Dict[str, List[Booking]] = {}
    for booking in bookings:
        if booking.calendar_event_id and booking.is_active:
            by_event.setdefault(booking.calendar_event_id, []).append(booking)
    return by_event


def build_manual_slots(
    events: Iterable[CalendarEvent],
    bookings: Iterable[Booking],
    provider: Provider,
    annotator: LocationAnnotator,
    timezone: str,
    now: DateTime,
    safety_buffer_minutes: int = DEFAULT_SAFETY_BUFFER_MINUTES,
    horizon_end: Optional[DateTime] = None,
) -> List[GeneratedSlot]:
    """
    Slice bookable calendar events into sub-slots of the provider's default duration.

    Each sub-slot is checked against the event's own active bookings using the
    provider buffer, and against the future-only guard.
    """
    duration = provider.default_duration
    step = interval_step(duration)
    bookings_by_event = _event_bookings(bookings)
    slots: List[GeneratedSlot] = []

    for event in events:
        if not event.allow_bookings or event.end <= event.start:
            continue

        event_bookings = bookings_by_event.get(event.id, [])
        current_bookings = len(event_bookings)
        if current_bookings >= event.max_bookings:
            continue

        event_range = TimeRange(start=event.start, end=event.end)
        if event_range.duration_minutes() < duration:
            continue

        booked = sorted(
            (
                BusyInterval(
                    range=TimeRange(start=b.scheduled_at, end=b.ends_at),
                    source=BusySource.BOOKING,
                    reference_id=b.id,
                )
                for b in event_bookings
                if b.duration > 0
            ),
            key=lambda b: b.start,
        )
        location_display = (
            clean_location_text(event.location)
            if event.location
            else annotator.display_for(local_today(event.start, timezone))
        )

        offsets = range(0, event_range.duration_minutes() - duration + 1, step)
        for offset in offsets:
            start = event.start.add(minutes=offset)
            candidate = TimeRange(start=start, end=start.add(minutes=duration))

            if not is_beyond_safety_buffer(start, now, safety_buffer_minutes):
                continue
            if horizon_end is not None and start >= horizon_end:
                continue
            if conflicts_with_busy(candidate, booked, provider.buffer_minutes):
                continue

            slots.append(
                GeneratedSlot(
                    id=f"{event.id}-{_epoch_ms(start)}",
                    time_range=candidate,
                    duration_minutes=duration,
                    location_display=location_display,
                    available_services=tuple(event.available_services),
                    remaining_capacity=event.max_bookings - current_bookings,
                    source_type=SlotType.MANUAL,
                    event_id=event.id,
                )
            )

    return slots


def filter_by_service(slots: Iterable[GeneratedSlot], service_type: Optional[str]) -> List[GeneratedSlot]:
    """Keep slots offering ``service_type``; order is preserved."""
    if not service_type:
        return list(slots)
    return [slot for slot in slots if service_type in slot.available_services]


def assemble_slots(
    manual_slots: Iterable[GeneratedSlot],
    automatic_slots: Iterable[GeneratedSlot],
    service_type: Optional[str] = None,
) -> List[GeneratedSlot]:
    """
    Merge manual and automatic slots, deduplicate and sort.

    Deduplication key is ``(start instant, duration)``; the first record wins,
    so a manual slot shadows an automatic one at the same instant.
    """
    seen: set[Tuple[int, int]] = set()
    merged: List[GeneratedSlot] = []

    for slot in list(manual_slots) + list(automatic_slots):
        key = (_epoch_ms(slot.start), slot.duration_minutes)
        if key in seen:
            continue
        seen.add(key)
        merged.append(slot)

    merged.sort(key=lambda s: (s.start, s.duration_minutes))
    return filter_by_service(merged, service_type)
