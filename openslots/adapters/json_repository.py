"""
File-backed repository that serves provider availability data from JSON.

Useful for local runs and demos without a database: the CLI points it at a
data file (``--data`` or ``data_file`` in the config), and it implements every
read-only repository protocol the slot engine consumes.
"""

import json
import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import DataSourceError
from ..domain.models import (
    DEFAULT_ALLOWED_DURATIONS,
    AdvancedSchedule,
    AvailabilityTemplate,
    Booking,
    BookingStatus,
    CalendarEvent,
    Provider,
    ProviderLocation,
    RecurrenceType,
    RecurringWindow,
    TemplateAssignment,
)

logger = logging.getLogger(__name__)

SAMPLE_DATA_FILE = Path(__file__).parent / "sample_data.json"


def _parse_instant(value: str) -> DateTime:
    parsed = pendulum.parse(value)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Expected a date-time, got {value!r}")
    return parsed.in_timezone("UTC")


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _parse_created(value: Optional[str]) -> Optional[datetime]:
    return _parse_instant(value) if value else None


def _parse_time(value: str) -> time:
    return time.fromisoformat(value)


def _parse_windows(raw: Sequence[Dict[str, Any]]) -> Tuple[RecurringWindow, ...]:
    return tuple(
        RecurringWindow(
            weekday=item.get("dayOfWeek"),
            start=_parse_time(item["startTime"]),
            end=_parse_time(item["endTime"]),
            is_enabled=item.get("isEnabled", True),
        )
        for item in raw
    )


def _parse_provider(item: Dict[str, Any]) -> Provider:
    durations = item.get("allowedDurations")
    return Provider(
        id=item["id"],
        name=item.get("name", "Provider"),
        default_duration=int(item.get("defaultDuration", 60)),
        buffer_minutes=int(item.get("bufferMinutes", 15)),
        advance_booking_days=int(item.get("advanceBookingDays", 30)),
        allowed_durations=frozenset(durations) if durations else DEFAULT_ALLOWED_DURATIONS,
    )


def _parse_template(item: Dict[str, Any]) -> AvailabilityTemplate:
    return AvailabilityTemplate(
        id=item["id"],
        provider_id=item["providerId"],
        name=item.get("name", "Default Schedule"),
        timezone=item.get("timezone"),
        is_default=item.get("isDefault", False),
        is_active=item.get("isActive", True),
        created_at=_parse_created(item.get("createdAt")),
        windows=_parse_windows(item.get("windows", [])),
    )


def _parse_assignment(item: Dict[str, Any]) -> TemplateAssignment:
    return TemplateAssignment(
        id=item["id"],
        provider_id=item["providerId"],
        template_id=item["templateId"],
        start_date=_parse_date(item["startDate"]),
        end_date=_parse_date(item.get("endDate")),
        created_at=_parse_created(item.get("createdAt")),
    )


def _parse_schedule(item: Dict[str, Any]) -> AdvancedSchedule:
    recurrence = item.get("recurrenceType")
    return AdvancedSchedule(
        id=item["id"],
        provider_id=item["providerId"],
        start_date=_parse_date(item["startDate"]),
        name=item.get("name", ""),
        end_date=_parse_date(item.get("endDate")),
        template_id=item.get("templateId"),
        timezone=item.get("timezone"),
        priority=int(item.get("priority", 0)),
        created_at=_parse_created(item.get("createdAt")),
        is_active=item.get("isActive", True),
        is_recurring=item.get("isRecurring", False),
        recurrence_type=RecurrenceType(recurrence) if recurrence else None,
        recurrence_interval=int(item.get("recurrenceInterval", 1)),
        days_of_week=frozenset(item.get("daysOfWeek", [])),
        week_of_month=item.get("weekOfMonth"),
        month_of_year=item.get("monthOfYear"),
        recurrence_end_date=_parse_date(item.get("recurrenceEndDate")),
        windows=_parse_windows(item.get("windows", [])),
    )


def _parse_event(item: Dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        id=item["id"],
        provider_id=item["providerId"],
        start=_parse_instant(item["start"]),
        end=_parse_instant(item["end"]),
        title=item.get("title", ""),
        location=item.get("location"),
        allow_bookings=item.get("allowBookings", False),
        max_bookings=int(item.get("maxBookings", 1)),
        available_services=tuple(item.get("availableServices", [])),
    )


def _parse_booking(item: Dict[str, Any]) -> Booking:
    return Booking(
        id=item["id"],
        provider_id=item["providerId"],
        scheduled_at=_parse_instant(item["scheduledAt"]),
        duration=int(item["duration"]),
        status=BookingStatus(item.get("status", BookingStatus.PENDING.value)),
        calendar_event_id=item.get("calendarEventId"),
    )


def _parse_location(item: Dict[str, Any]) -> Tuple[str, ProviderLocation]:
    location = ProviderLocation(
        id=item["id"],
        city=item.get("city", ""),
        state_province=item.get("stateProvince", ""),
        country=item.get("country", ""),
        description=item.get("description"),
        start_date=_parse_date(item.get("startDate")),
        end_date=_parse_date(item.get("endDate")),
        is_default=item.get("isDefault", False),
        is_active=item.get("isActive", True),
    )
    return item["providerId"], location


def _parse_section(data: Dict[str, Any], key: str, parser: Callable[[Dict[str, Any]], Any]) -> List[Any]:
    entries = data.get(key, [])
    if not isinstance(entries, list):
        raise DataSourceError(f"'{key}' must be a list")

    parsed = []
    for index, item in enumerate(entries):
        try:
            parsed.append(parser(item))
        except (KeyError, TypeError, ValueError) as exc:
            raise DataSourceError(f"Invalid entry {key}[{index}]: {exc}") from exc
    return parsed


class JsonAvailabilityRepository:
    """
    Repository that loads providers, schedules and calendar data from a JSON file.

    The whole file is parsed up front so that malformed data fails fast with a
    ``DataSourceError`` instead of surfacing mid-query.
    """

    def __init__(self, data_file: Optional[Path] = None):
        """
        Initialize the repository.

        Args:
            data_file: JSON data file; the bundled sample data when omitted
        """
        self.data_file = data_file or SAMPLE_DATA_FILE
        self._load_data()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JsonAvailabilityRepository":
        """Build a repository from already decoded data (used by tests)."""
        repository = cls.__new__(cls)
        repository.data_file = None
        repository._ingest(data)
        return repository

    def _load_data(self) -> None:
        """Load and parse the data file."""
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise DataSourceError(f"Data file not found: {self.data_file}") from exc
        except json.JSONDecodeError as exc:
            raise DataSourceError(f"Invalid JSON in {self.data_file}: {exc}") from exc

        self._ingest(data)
        logger.debug("Loaded %d provider(s) from %s", len(self._providers), self.data_file)

    def _ingest(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise DataSourceError("Data file must contain an object at the root level")

        self._providers: Dict[str, Provider] = {
            provider.id: provider for provider in _parse_section(data, "providers", _parse_provider)
        }
        self._templates: List[AvailabilityTemplate] = _parse_section(data, "templates", _parse_template)
        self._assignments: List[TemplateAssignment] = _parse_section(data, "assignments", _parse_assignment)
        self._schedules: List[AdvancedSchedule] = _parse_section(data, "advancedSchedules", _parse_schedule)
        self._events: List[CalendarEvent] = _parse_section(data, "calendarEvents", _parse_event)
        self._bookings: List[Booking] = _parse_section(data, "bookings", _parse_booking)
        self._locations: List[Tuple[str, ProviderLocation]] = _parse_section(data, "locations", _parse_location)

    def provider_ids(self) -> List[str]:
        return sorted(self._providers)

    async def get_provider(self, provider_id: str) -> Optional[Provider]:
        return self._providers.get(provider_id)

    async def list_templates(self, provider_id: str) -> List[AvailabilityTemplate]:
        return [t for t in self._templates if t.provider_id == provider_id]

    async def list_assignments(self, provider_id: str) -> List[TemplateAssignment]:
        return [a for a in self._assignments if a.provider_id == provider_id]

    async def list_advanced_schedules(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
    ) -> List[AdvancedSchedule]:
        schedules = []
        for schedule in self._schedules:
            if schedule.provider_id != provider_id or schedule.start_date > end_date:
                continue
            if schedule.is_recurring:
                last = schedule.recurrence_end_date or schedule.end_date
            else:
                last = schedule.end_date or schedule.start_date
            if last is not None and last < start_date:
                continue
            schedules.append(schedule)
        return schedules

    async def list_calendar_events(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[CalendarEvent]:
        return [
            e for e in self._events
            if e.provider_id == provider_id and e.start < end and e.end > start
        ]

    async def list_bookings(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> List[Booking]:
        return [
            b for b in self._bookings
            if b.provider_id == provider_id and b.scheduled_at < end and b.ends_at > start
        ]

    async def list_locations(self, provider_id: str) -> List[ProviderLocation]:
        return [location for owner, location in self._locations if owner == provider_id]
