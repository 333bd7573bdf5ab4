"""
Timezone normalisation between provider wall-clock time and absolute instants.

All conversions go through pendulum so DST transitions are honoured: a wall
time of 09:00 maps to a different UTC instant before and after a transition.
"""

from __future__ import annotations

import logging
from datetime import date, time
from typing import Optional, Tuple

import pendulum
from pendulum import DateTime

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"


def is_valid_timezone(name: Optional[str]) -> bool:
    """Check whether ``name`` is a known IANA timezone identifier."""
    if not name:
        return False
    try:
        pendulum.timezone(name)
    except Exception:  # unknown or malformed identifier
        return False
    return True


def resolve_timezone(name: Optional[str], fallback: str = DEFAULT_TIMEZONE) -> str:
    """
    Return ``name`` if it is usable, otherwise the process-wide fallback.

    Missing or invalid timezones never raise; they degrade to ``fallback``.
    """
    if is_valid_timezone(name):
        return name  # type: ignore[return-value]
    if name:
        logger.warning("Unknown timezone %r, falling back to %s", name, fallback)
    return fallback


def to_instant(day: date, wall_time: time, timezone: str) -> DateTime:
    """
    Interpret ``wall_time`` on ``day`` in ``timezone`` and return the instant in UTC.

    Wall times inside a spring-forward gap are shifted forward by the gap;
    ambiguous fall-back times resolve to the post-transition occurrence.
    """
    local = pendulum.datetime(
        day.year,
        day.month,
        day.day,
        wall_time.hour,
        wall_time.minute,
        wall_time.second,
        tz=timezone,
    )
    return local.in_timezone("UTC")


def to_wall(instant: DateTime, timezone: str) -> Tuple[date, time]:
    """Convert an instant back to the (date, wall time) pair in ``timezone``."""
    local = instant.in_timezone(timezone)
    return (
        date(local.year, local.month, local.day),
        time(local.hour, local.minute, local.second),
    )


def local_today(now: DateTime, timezone: str) -> date:
    local = now.in_timezone(timezone)
    return date(local.year, local.month, local.day)


def start_of_local_day(day: date, timezone: str) -> DateTime:
    """First instant of ``day`` in ``timezone``, as UTC."""
    return to_instant(day, time(0, 0), timezone)


def to_iso_utc(instant: DateTime) -> str:
    """ISO-8601 representation of ``instant`` in UTC."""
    return instant.in_timezone("UTC").to_iso8601_string()
