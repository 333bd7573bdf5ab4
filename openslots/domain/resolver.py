"""
Template resolution: which availability source governs a calendar date.

Precedence per date is fixed: advanced schedule, then template assignment,
then the provider's default template, then nothing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Dict, Iterator, List, Optional, Sequence

from .models import (
    AdvancedSchedule,
    AdvancedScheduleSource,
    AssignmentSource,
    AvailabilitySource,
    AvailabilityTemplate,
    DefaultTemplateSource,
    NoAvailability,
    RecurrenceType,
    ResolvedDay,
    TemplateAssignment,
    weekday_of,
    windows_for_weekday,
)
from .timezones import DEFAULT_TIMEZONE, resolve_timezone

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


def iter_dates(first: date, last: date) -> Iterator[date]:
    """Yield every date from ``first`` to ``last`` inclusive."""
    for offset in range((last - first).days + 1):
        yield first + timedelta(days=offset)


def _created_key(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    # Naive creation times are taken as UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(dt_timezone.utc).replace(tzinfo=None)


def schedule_matches(schedule: AdvancedSchedule, day: date) -> bool:
    """Check whether an advanced schedule is in effect on ``day``."""
    if not schedule.is_active or day < schedule.start_date:
        return False

    if not schedule.is_recurring:
        if schedule.end_date is not None:
            return day <= schedule.end_date
        return day == schedule.start_date

    bounds = [d for d in (schedule.end_date, schedule.recurrence_end_date) if d is not None]
    if bounds and day > min(bounds):
        return False

    return _recurrence_matches(schedule, day)


def _recurrence_matches(schedule: AdvancedSchedule, day: date) -> bool:
    interval = max(schedule.recurrence_interval or 1, 1)
    days_since_start = (day - schedule.start_date).days
    weekday = weekday_of(day)

    if schedule.recurrence_type == RecurrenceType.DAILY:
        return days_since_start % interval == 0

    if schedule.recurrence_type == RecurrenceType.WEEKLY:
        return weekday in schedule.days_of_week and (days_since_start // 7) % interval == 0

    if schedule.recurrence_type == RecurrenceType.BIWEEKLY:
        return weekday in schedule.days_of_week and (days_since_start // 14) % interval == 0

    if schedule.recurrence_type == RecurrenceType.MONTHLY:
        if schedule.month_of_year and day.month != schedule.month_of_year:
            return False
        if not schedule.days_of_week:
            return day.day == schedule.start_date.day
        if schedule.week_of_month:
            week_in_month = math.ceil(day.day / 7)
            if week_in_month != schedule.week_of_month:
                return False
        return weekday in schedule.days_of_week

    if schedule.recurrence_type == RecurrenceType.YEARLY:
        return (day.month, day.day) == (schedule.start_date.month, schedule.start_date.day)

    return False


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Everything the resolver reads for one provider, fetched once per request."""
    templates: Sequence[AvailabilityTemplate] = ()
    assignments: Sequence[TemplateAssignment] = ()
    advanced_schedules: Sequence[AdvancedSchedule] = ()


class TemplateResolver:
    """
    Resolves the authoritative availability source and open windows for a date.

    The resolver is pure: the same snapshot and date always produce the same
    ``ResolvedDay``.
    """

    def __init__(self, snapshot: AvailabilitySnapshot, fallback_timezone: str = DEFAULT_TIMEZONE):
        self._snapshot = snapshot
        self._fallback_timezone = fallback_timezone
        self._templates: Dict[str, AvailabilityTemplate] = {t.id: t for t in snapshot.templates}
        self._default_template = self._pick_default_template(snapshot.templates)
        self._schedules = sorted(
            (s for s in snapshot.advanced_schedules if s.is_active),
            key=lambda s: (-s.priority, _created_key(s.created_at), s.id),
        )

    @property
    def default_template(self) -> Optional[AvailabilityTemplate]:
        return self._default_template

    def provider_timezone(self) -> str:
        """Timezone used for provider-level concerns such as "today"."""
        template = self._default_template
        return resolve_timezone(template.timezone if template else None, self._fallback_timezone)

    def resolve(self, day: date) -> ResolvedDay:
        source = self.select_source(day)
        weekday = weekday_of(day)

        if isinstance(source, AdvancedScheduleSource):
            schedule = source.schedule
            windows = windows_for_weekday(schedule.windows, weekday)
            timezone = self._schedule_timezone(schedule)
        elif isinstance(source, AssignmentSource):
            windows = windows_for_weekday(source.template.windows, weekday)
            timezone = resolve_timezone(source.template.timezone, self._fallback_timezone)
        elif isinstance(source, DefaultTemplateSource):
            windows = windows_for_weekday(source.template.windows, weekday)
            timezone = resolve_timezone(source.template.timezone, self._fallback_timezone)
        else:
            windows = ()
            timezone = self.provider_timezone()

        return ResolvedDay(date=day, windows=windows, timezone=timezone, source=source)

    def select_source(self, day: date) -> AvailabilitySource:
        for schedule in self._schedules:
            if schedule_matches(schedule, day):
                return AdvancedScheduleSource(schedule=schedule)

        assignment = self._pick_assignment(day)
        if assignment is not None:
            return AssignmentSource(
                assignment=assignment,
                template=self._templates[assignment.template_id],
            )

        if self._default_template is not None:
            return DefaultTemplateSource(template=self._default_template)

        return NoAvailability()

    def _pick_assignment(self, day: date) -> Optional[TemplateAssignment]:
        candidates: List[TemplateAssignment] = []
        for assignment in self._snapshot.assignments:
            if not assignment.covers(day):
                continue
            template = self._templates.get(assignment.template_id)
            if template is None or not template.is_active:
                logger.debug(
                    "Skipping assignment %s: template %s missing or inactive",
                    assignment.id,
                    assignment.template_id,
                )
                continue
            candidates.append(assignment)

        if not candidates:
            return None

        # Latest start date wins, then the most recently created, then the id.
        return max(
            candidates,
            key=lambda a: (a.start_date, _created_key(a.created_at), a.id),
        )

    def _schedule_timezone(self, schedule: AdvancedSchedule) -> str:
        if schedule.timezone:
            return resolve_timezone(schedule.timezone, self._fallback_timezone)
        linked = self._templates.get(schedule.template_id) if schedule.template_id else None
        if linked is not None and linked.timezone:
            return resolve_timezone(linked.timezone, self._fallback_timezone)
        return self.provider_timezone()

    @staticmethod
    def _pick_default_template(
        templates: Sequence[AvailabilityTemplate],
    ) -> Optional[AvailabilityTemplate]:
        defaults = [t for t in templates if t.is_default and t.is_active]
        if not defaults:
            return None
        if len(defaults) > 1:
            logger.warning(
                "Provider %s has %d active default templates; using the most recent",
                defaults[0].provider_id,
                len(defaults),
            )
        return max(defaults, key=lambda t: (_created_key(t.created_at), t.id))
