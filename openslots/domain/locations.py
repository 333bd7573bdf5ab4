"""
Location annotation for generated slots.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional, Sequence

from .models import ProviderLocation

LOCATION_FALLBACK = "Contact provider for location details"
EVENT_LOCATION_FALLBACK = "Location TBD"


def format_location_display(location: ProviderLocation, fallback: str = LOCATION_FALLBACK) -> str:
    """Format ``city[, state][, country][ - description]``."""
    parts = [p for p in (location.city, location.state_province, location.country) if p]
    display = ", ".join(parts)

    if location.description:
        display += f" - {location.description}"

    return display or fallback


def clean_location_text(text: Optional[str]) -> str:
    """Normalise free-text locations copied from calendar events."""
    if not text:
        return EVENT_LOCATION_FALLBACK

    cleaned = re.sub(r"[,\n\r]+", ", ", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = re.sub(r",\s*,", ",", cleaned)
    return cleaned.strip(" ,") or EVENT_LOCATION_FALLBACK


class LocationAnnotator:
    """
    Picks the provider location in effect on a date.

    Precedence: a non-default location whose range covers the date (latest
    start date first), then the default location, then a fixed fallback.
    """

    def __init__(self, locations: Sequence[ProviderLocation], fallback: str = LOCATION_FALLBACK):
        self._fallback = fallback
        active = [loc for loc in locations if loc.is_active]
        self._dated = sorted(
            (loc for loc in active if not loc.is_default),
            key=lambda loc: (loc.start_date or date.min, loc.id),
            reverse=True,
        )
        defaults = [loc for loc in active if loc.is_default]
        self._default = defaults[0] if defaults else None

    def location_for(self, day: date) -> Optional[ProviderLocation]:
        for location in self._dated:
            if location.covers(day):
                return location
        return self._default

    def display_for(self, day: date) -> str:
        location = self.location_for(day)
        if location is None:
            return self._fallback
        return format_location_display(location, self._fallback)
