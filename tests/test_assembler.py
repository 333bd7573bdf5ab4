"""
Tests for slot assembly.
"""

from datetime import date, time

import pendulum

from openslots.domain.assembler import (
    DEFAULT_SERVICES,
    assemble_slots,
    build_automatic_slots,
    build_manual_slots,
    filter_by_service,
)
from openslots.domain.locations import LocationAnnotator
from openslots.domain.models import (
    Booking,
    BookingStatus,
    CalendarEvent,
    GeneratedSlot,
    Provider,
    ProviderLocation,
    SlotCandidate,
    SlotType,
    TimeRange,
)

TZ = "America/New_York"
NOW = pendulum.datetime(2024, 11, 25, 12, 0)
PROVIDER = Provider(id="p1", name="Dana", default_duration=60, buffer_minutes=15)
ANNOTATOR = LocationAnnotator(
    [ProviderLocation(id="home", city="Hartford", state_province="CT", country="USA", is_default=True)]
)


def _ms(instant):
    return instant.int_timestamp * 1000


def _event(**kwargs):
    defaults = dict(
        id="evt-1",
        provider_id="p1",
        start=pendulum.datetime(2024, 11, 27, 18, 0),
        end=pendulum.datetime(2024, 11, 27, 21, 0),
        title="Open workshop",
        allow_bookings=True,
        max_bookings=3,
        available_services=("consultation", "tuning"),
    )
    defaults.update(kwargs)
    return CalendarEvent(**defaults)


def _event_booking(booking_id, hour, status=BookingStatus.CONFIRMED, event_id="evt-1"):
    return Booking(
        id=booking_id,
        provider_id="p1",
        scheduled_at=pendulum.datetime(2024, 11, 27, hour, 0),
        duration=60,
        status=status,
        calendar_event_id=event_id,
    )


def _slot(slot_id, start, duration=60, services=DEFAULT_SERVICES, source=SlotType.AUTOMATIC):
    return GeneratedSlot(
        id=slot_id,
        time_range=TimeRange(start=start, end=start.add(minutes=duration)),
        duration_minutes=duration,
        location_display="Hartford, CT, USA",
        available_services=tuple(services),
        remaining_capacity=1,
        source_type=source,
    )


class TestAutomaticSlots:
    """Tests for build_automatic_slots."""

    def test_builds_annotated_slots(self):
        start = pendulum.datetime(2024, 11, 26, 14, 0)
        candidate = SlotCandidate(
            date=date(2024, 11, 26),
            wall_start=time(9, 0),
            duration_minutes=60,
            time_range=TimeRange(start=start, end=start.add(minutes=60)),
        )

        slots = build_automatic_slots([candidate], ANNOTATOR)

        assert len(slots) == 1
        slot = slots[0]
        assert slot.id == f"slot-{_ms(start)}-60"
        assert slot.location_display == "Hartford, CT, USA"
        assert slot.available_services == DEFAULT_SERVICES
        assert slot.remaining_capacity == 1
        assert slot.source_type == SlotType.AUTOMATIC
        assert slot.event_id is None


class TestManualSlots:
    """Tests for build_manual_slots."""

    def _build(self, events, bookings=()):
        return build_manual_slots(events, bookings, PROVIDER, ANNOTATOR, TZ, NOW)

    def test_event_sliced_around_bookings(self):
        """A booking at 18:00-19:00 blocks starts up to 19:00 once padded."""
        slots = self._build([_event()], [_event_booking("b1", 18)])

        starts = [s.start for s in slots]
        assert starts == [
            pendulum.datetime(2024, 11, 27, 19, 30),
            pendulum.datetime(2024, 11, 27, 20, 0),
        ]
        assert all(s.remaining_capacity == 2 for s in slots)
        assert all(s.source_type == SlotType.MANUAL for s in slots)
        assert slots[0].id == f"evt-1-{_ms(starts[0])}"
        assert slots[0].event_id == "evt-1"
        assert slots[0].available_services == ("consultation", "tuning")

    def test_unbooked_event_uses_thirty_minute_step(self):
        slots = self._build([_event()])

        assert len(slots) == 5
        assert all(s.remaining_capacity == 3 for s in slots)

    def test_full_event_offers_nothing(self):
        slots = self._build([_event(max_bookings=1)], [_event_booking("b1", 18)])

        assert slots == []

    def test_cancelled_bookings_do_not_count(self):
        slots = self._build(
            [_event(max_bookings=1)],
            [_event_booking("b1", 18, status=BookingStatus.CANCELLED)],
        )

        assert len(slots) == 5
        assert all(s.remaining_capacity == 1 for s in slots)

    def test_events_not_open_for_booking_skipped(self):
        assert self._build([_event(allow_bookings=False)]) == []

    def test_event_shorter_than_duration_skipped(self):
        short = _event(end=pendulum.datetime(2024, 11, 27, 18, 45))

        assert self._build([short]) == []

    def test_location_from_event_text(self):
        slots = self._build([_event(location="Studio B,\n Elm Street")])

        assert slots[0].location_display == "Studio B, Elm Street"

    def test_location_falls_back_to_annotator(self):
        slots = self._build([_event(location=None)])

        assert slots[0].location_display == "Hartford, CT, USA"

    def test_future_only_guard(self):
        now = pendulum.datetime(2024, 11, 27, 18, 20)

        slots = build_manual_slots([_event()], [], PROVIDER, ANNOTATOR, TZ, now)

        assert slots[0].start == pendulum.datetime(2024, 11, 27, 19, 0)


class TestAssembleSlots:
    """Tests for deduplication, ordering and service filtering."""

    def test_sorted_by_start_then_duration(self):
        first = pendulum.datetime(2024, 11, 26, 14, 0)
        second = pendulum.datetime(2024, 11, 26, 15, 0)

        slots = assemble_slots(
            [],
            [_slot("c", second), _slot("b", first, duration=90), _slot("a", first, duration=30)],
        )

        assert [s.id for s in slots] == ["a", "b", "c"]

    def test_manual_slot_shadows_automatic(self):
        start = pendulum.datetime(2024, 11, 26, 14, 0)
        manual = _slot("manual", start, source=SlotType.MANUAL)
        automatic = _slot("auto", start)
        other_duration = _slot("auto-30", start, duration=30)

        slots = assemble_slots([manual], [automatic, other_duration])

        assert [s.id for s in slots] == ["auto-30", "manual"]

    def test_service_filter_keeps_order(self):
        start = pendulum.datetime(2024, 11, 26, 14, 0)
        slots = [
            _slot("a", start),
            _slot("b", start.add(hours=1), services=("tuning",)),
            _slot("c", start.add(hours=2), services=("consultation",)),
        ]

        filtered = assemble_slots([], slots, service_type="consultation")

        assert [s.id for s in filtered] == ["a", "c"]
        assert all("consultation" in s.available_services for s in filtered)

    def test_no_filter_returns_everything(self):
        slots = [_slot("a", pendulum.datetime(2024, 11, 26, 14, 0))]

        assert filter_by_service(slots, None) == slots
        assert filter_by_service(slots, "") == slots
