"""
Busy-interval aggregation from synced calendar events and bookings.
"""

from __future__ import annotations

from typing import Iterable, List

from .models import Booking, BusyInterval, BusySource, CalendarEvent, TimeRange


def aggregate_busy_intervals(
    events: Iterable[CalendarEvent],
    bookings: Iterable[Booking],
    window: TimeRange,
) -> List[BusyInterval]:
    """
    Merge calendar events and active bookings into one list sorted by start.

    Only intervals intersecting ``window`` are kept. Overlapping intervals are
    deliberately left unmerged so buffer padding stays local to each source
    interval; overlap is resolved by the conflict filter.
    """
    intervals: List[BusyInterval] = []

    for event in events:
        if event.end <= event.start:
            continue
        event_range = TimeRange(start=event.start, end=event.end)
        if event_range.overlaps(window):
            intervals.append(
                BusyInterval(
                    range=event_range,
                    source=BusySource.CALENDAR_EVENT,
                    reference_id=event.id,
                )
            )

    for booking in bookings:
        if not booking.is_active or booking.duration <= 0:
            continue
        booking_range = TimeRange(start=booking.scheduled_at, end=booking.ends_at)
        if booking_range.overlaps(window):
            intervals.append(
                BusyInterval(
                    range=booking_range,
                    source=BusySource.BOOKING,
                    reference_id=booking.id,
                )
            )

    return sorted(intervals, key=lambda b: (b.start, b.end, b.reference_id))
