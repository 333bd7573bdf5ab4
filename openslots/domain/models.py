"""
Domain models for availability resolution and slot generation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple, Union

from pendulum import DateTime

DEFAULT_ALLOWED_DURATIONS: FrozenSet[int] = frozenset({15, 30, 45, 60, 90})

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def weekday_of(day: date) -> int:
    """Weekday index with 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


def minutes_of(value: time) -> int:
    """Minutes since midnight for a wall-clock time."""
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this half-open range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def expanded(self, minutes: int) -> "TimeRange":
        """Return the range padded by ``minutes`` on both sides."""
        return TimeRange(
            start=self.start.subtract(minutes=minutes),
            end=self.end.add(minutes=minutes),
        )

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WallWindow:
    """An open window expressed in wall-clock time of some timezone."""
    start: time
    end: time

    def __post_init__(self):
        if minutes_of(self.start) >= minutes_of(self.end):
            raise ValueError(f"Window start {self.start} must be before end {self.end}")

    @property
    def start_minute(self) -> int:
        return minutes_of(self.start)

    @property
    def end_minute(self) -> int:
        return minutes_of(self.end)

    def length_minutes(self) -> int:
        return self.end_minute - self.start_minute

    def __str__(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class Provider:
    """Provider booking settings consumed by the engine."""
    id: str
    name: str = "Provider"
    default_duration: int = 60
    buffer_minutes: int = 15
    advance_booking_days: int = 30
    allowed_durations: FrozenSet[int] = DEFAULT_ALLOWED_DURATIONS

    def effective_durations(self) -> List[int]:
        """Allowed durations in ascending order; falls back to the default duration."""
        durations = sorted(d for d in self.allowed_durations if d > 0)
        return durations or [self.default_duration]


@dataclass(frozen=True)
class RecurringWindow:
    """
    A weekly window of a template or advanced schedule.

    ``weekday`` uses 0=Sunday. Advanced schedule windows may leave it unset
    to apply on every matched date.
    """
    weekday: Optional[int]
    start: time
    end: time
    is_enabled: bool = True

    def __post_init__(self):
        if self.weekday is not None and self.weekday not in range(7):
            raise ValueError(f"weekday must be between 0 and 6, got {self.weekday}")
        if minutes_of(self.start) >= minutes_of(self.end):
            raise ValueError(f"Window start {self.start} must be before end {self.end}")

    def applies_to(self, weekday: int) -> bool:
        return self.is_enabled and (self.weekday is None or self.weekday == weekday)

    def as_wall_window(self) -> WallWindow:
        return WallWindow(start=self.start, end=self.end)


def windows_for_weekday(windows: Tuple[RecurringWindow, ...], weekday: int) -> Tuple[WallWindow, ...]:
    """Enabled windows for ``weekday`` ordered by start time."""
    selected = [w.as_wall_window() for w in windows if w.applies_to(weekday)]
    return tuple(sorted(selected, key=lambda w: (w.start_minute, w.end_minute)))


@dataclass(frozen=True)
class AvailabilityTemplate:
    id: str
    provider_id: str
    name: str = "Default Schedule"
    timezone: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    windows: Tuple[RecurringWindow, ...] = ()


@dataclass(frozen=True)
class TemplateAssignment:
    """Binds a template to ``[start_date, end_date]``; ``end_date=None`` is open ended."""
    id: str
    provider_id: str
    template_id: str
    start_date: date
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day and (self.end_date is None or day <= self.end_date)


class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    BIMONTHLY = "BIMONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class AdvancedSchedule:
    """Date-specific override that supersedes templates on the dates it matches."""
    id: str
    provider_id: str
    start_date: date
    name: str = ""
    end_date: Optional[date] = None
    template_id: Optional[str] = None
    timezone: Optional[str] = None
    priority: int = 0
    created_at: Optional[datetime] = None
    is_active: bool = True
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_interval: int = 1
    days_of_week: FrozenSet[int] = frozenset()
    week_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    windows: Tuple[RecurringWindow, ...] = ()


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


INACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.NO_SHOW})


@dataclass(frozen=True)
class Booking:
    id: str
    provider_id: str
    scheduled_at: DateTime
    duration: int
    status: BookingStatus = BookingStatus.PENDING
    calendar_event_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_BOOKING_STATUSES

    @property
    def ends_at(self) -> DateTime:
        return self.scheduled_at.add(minutes=self.duration)


@dataclass(frozen=True)
class CalendarEvent:
    """A synced external calendar event."""
    id: str
    provider_id: str
    start: DateTime
    end: DateTime
    title: str = ""
    location: Optional[str] = None
    allow_bookings: bool = False
    max_bookings: int = 1
    available_services: Tuple[str, ...] = ()


class BusySource(str, Enum):
    CALENDAR_EVENT = "calendarEvent"
    BOOKING = "booking"


@dataclass(frozen=True)
class BusyInterval:
    """Derived ``[start, end)`` interval during which the provider is unavailable."""
    range: TimeRange
    source: BusySource
    reference_id: str = ""

    @property
    def start(self) -> DateTime:
        return self.range.start

    @property
    def end(self) -> DateTime:
        return self.range.end


@dataclass(frozen=True)
class ProviderLocation:
    id: str
    city: str = ""
    state_province: str = ""
    country: str = ""
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_default: bool = False
    is_active: bool = True

    def covers(self, day: date) -> bool:
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date


# Tagged availability sources produced by the template resolver.

@dataclass(frozen=True)
class AdvancedScheduleSource:
    schedule: AdvancedSchedule
    kind: str = field(default="advanced_schedule", init=False)


@dataclass(frozen=True)
class AssignmentSource:
    assignment: TemplateAssignment
    template: AvailabilityTemplate
    kind: str = field(default="assignment", init=False)


@dataclass(frozen=True)
class DefaultTemplateSource:
    template: AvailabilityTemplate
    kind: str = field(default="default_template", init=False)


@dataclass(frozen=True)
class NoAvailability:
    kind: str = field(default="none", init=False)


AvailabilitySource = Union[AdvancedScheduleSource, AssignmentSource, DefaultTemplateSource, NoAvailability]


@dataclass(frozen=True)
class ResolvedDay:
    """Open wall-clock windows of one date and the timezone they are expressed in."""
    date: date
    windows: Tuple[WallWindow, ...]
    timezone: str
    source: AvailabilitySource

    @property
    def using_advanced_schedule(self) -> bool:
        return isinstance(self.source, AdvancedScheduleSource)


@dataclass(frozen=True)
class SlotCandidate:
    """A candidate start: wall time on a date for one duration, plus its absolute range."""
    date: date
    wall_start: time
    duration_minutes: int
    time_range: TimeRange


class SlotType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass(frozen=True)
class GeneratedSlot:
    """
    Represents a bookable slot offered to clients.
    """
    id: str
    time_range: TimeRange
    duration_minutes: int
    location_display: str
    available_services: Tuple[str, ...]
    remaining_capacity: int
    source_type: SlotType
    event_id: Optional[str] = None

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    @property
    def end(self) -> DateTime:
        return self.time_range.end

    def format_display(self, timezone: str) -> str:
        """
        Format the slot for display in ``timezone``.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm (N min) @ location
        """
        start = self.start.in_timezone(timezone)
        end = self.end.in_timezone(timezone)
        weekday = WEEKDAY_NAMES[weekday_of(start.date())]
        return (
            f"{weekday}, {start.format('YYYY-MM-DD')} | "
            f"{start.format('HH:mm')} - {end.format('HH:mm')} "
            f"({self.duration_minutes} min) @ {self.location_display}"
        )
