"""
Core business logic for generating and filtering candidate slots.

This is the heart of the application - pure domain logic without any
external dependencies (no repositories, no network, no I/O).
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence

from pendulum import DateTime

from .models import BusyInterval, ResolvedDay, SlotCandidate, TimeRange, WallWindow, time_from_minutes
from .timezones import to_instant

DEFAULT_SAFETY_BUFFER_MINUTES = 15
MAX_INTERVAL_STEP_MINUTES = 30


class StepPolicy(str, Enum):
    """How far apart consecutive candidate starts are placed."""
    BUFFERED = "buffered"   # duration + provider buffer
    INTERVAL = "interval"   # min(30, duration)


def interval_step(duration_minutes: int) -> int:
    return min(MAX_INTERVAL_STEP_MINUTES, duration_minutes)


def step_minutes_for(
    duration_minutes: int,
    buffer_minutes: int,
    policy: StepPolicy = StepPolicy.BUFFERED,
    explicit_step: Optional[int] = None,
) -> int:
    """Resolve the generation step for one duration."""
    if explicit_step:
        return explicit_step
    if policy == StepPolicy.INTERVAL:
        return interval_step(duration_minutes)
    return duration_minutes + max(buffer_minutes, 0)


def iter_start_minutes(window: WallWindow, duration_minutes: int, step_minutes: int) -> range:
    """
    Start offsets (minutes since midnight) for ``duration_minutes`` inside ``window``.

    The window end is inclusive for the appointment end: a start whose
    ``start + duration`` equals the window end is still emitted.
    """
    if step_minutes <= 0:
        raise ValueError(f"step_minutes must be positive, got {step_minutes}")
    if window.length_minutes() < duration_minutes:
        return range(0)
    return range(window.start_minute, window.end_minute - duration_minutes + 1, step_minutes)


def conflicts_with_busy(
    candidate: TimeRange,
    busy_intervals: Sequence[BusyInterval],
    buffer_minutes: int,
) -> bool:
    """
    Check whether ``[start - buffer, end + buffer)`` intersects any busy interval.

    ``busy_intervals`` must be sorted by start.
    """
    padded = candidate.expanded(buffer_minutes) if buffer_minutes > 0 else candidate
    for busy in busy_intervals:
        if busy.start >= padded.end:
            break
        if padded.overlaps(busy.range):
            return True
    return False


def is_beyond_safety_buffer(
    start: DateTime,
    now: DateTime,
    safety_buffer_minutes: int = DEFAULT_SAFETY_BUFFER_MINUTES,
) -> bool:
    """Future-only guard: a start must lie strictly after ``now + safety buffer``."""
    return start > now.add(minutes=safety_buffer_minutes)


class SlotCalculator:
    """
    Generates candidate appointment starts and filters them against busy time.

    Algorithm:
    1. For each resolved day, each open window and each allowed duration,
       step through wall-clock start times
    2. Convert every start to an absolute instant in the day's timezone
    3. Reject candidates that are too soon or that collide with a busy
       interval once padded by the provider buffer
    """

    def __init__(
        self,
        safety_buffer_minutes: int = DEFAULT_SAFETY_BUFFER_MINUTES,
        step_policy: StepPolicy = StepPolicy.BUFFERED,
        step_minutes: Optional[int] = None,
    ):
        self.safety_buffer_minutes = safety_buffer_minutes
        self.step_policy = step_policy
        self.step_minutes = step_minutes

    def generate_candidates(
        self,
        day: ResolvedDay,
        durations: Iterable[int],
        buffer_minutes: int,
    ) -> List[SlotCandidate]:
        """Enumerate candidates for one resolved day, independently per duration."""
        candidates: List[SlotCandidate] = []

        for duration in durations:
            step = step_minutes_for(duration, buffer_minutes, self.step_policy, self.step_minutes)
            for window in day.windows:
                candidates.extend(self._candidates_in_window(day, window, duration, step))

        return candidates

    def _candidates_in_window(
        self,
        day: ResolvedDay,
        window: WallWindow,
        duration: int,
        step: int,
    ) -> Iterator[SlotCandidate]:
        window_end = to_instant(day.date, window.end, day.timezone)
        for minute in iter_start_minutes(window, duration, step):
            wall_start = time_from_minutes(minute)
            start = to_instant(day.date, wall_start, day.timezone)
            # Starts shifted forward by a DST gap can overrun the window.
            if start.add(minutes=duration) > window_end:
                continue
            yield SlotCandidate(
                date=day.date,
                wall_start=wall_start,
                duration_minutes=duration,
                time_range=TimeRange(start=start, end=start.add(minutes=duration)),
            )

    def accepts(
        self,
        candidate: TimeRange,
        busy_intervals: Sequence[BusyInterval],
        buffer_minutes: int,
        now: DateTime,
        horizon_end: Optional[DateTime] = None,
    ) -> bool:
        """Conflict filter for a single candidate range."""
        if not is_beyond_safety_buffer(candidate.start, now, self.safety_buffer_minutes):
            return False
        if horizon_end is not None and candidate.start >= horizon_end:
            return False
        return not conflicts_with_busy(candidate, busy_intervals, buffer_minutes)

    def find_available_candidates(
        self,
        days: Iterable[ResolvedDay],
        durations: Sequence[int],
        busy_intervals: Sequence[BusyInterval],
        buffer_minutes: int,
        now: DateTime,
        horizon_end: Optional[DateTime] = None,
    ) -> List[SlotCandidate]:
        """
        Find all candidates across ``days`` that survive the conflict filter.

        Args:
            days: Resolved days (windows plus timezone)
            durations: Allowed appointment durations in minutes
            busy_intervals: Busy intervals sorted by start
            buffer_minutes: Provider buffer applied around each candidate
            now: Generation time for the future-only guard
            horizon_end: Exclusive upper bound for candidate starts

        Returns:
            Surviving candidates, in generation order
        """
        available: List[SlotCandidate] = []

        for day in days:
            for candidate in self.generate_candidates(day, durations, buffer_minutes):
                if self.accepts(candidate.time_range, busy_intervals, buffer_minutes, now, horizon_end):
                    available.append(candidate)

        return available
