"""
Tests for location annotation.
"""

from datetime import date

import pytest

from openslots.domain.locations import (
    EVENT_LOCATION_FALLBACK,
    LOCATION_FALLBACK,
    LocationAnnotator,
    clean_location_text,
    format_location_display,
)
from openslots.domain.models import ProviderLocation

HOME = ProviderLocation(id="home", city="Hartford", state_province="CT", country="USA", is_default=True)
TOUR = ProviderLocation(
    id="tour",
    city="Providence",
    state_province="RI",
    country="USA",
    description="Mobile service tour",
    start_date=date(2024, 11, 18),
    end_date=date(2024, 11, 29),
)
POPUP = ProviderLocation(
    id="popup",
    city="Boston",
    country="USA",
    start_date=date(2024, 11, 25),
    end_date=date(2024, 11, 26),
)


class TestFormatLocationDisplay:
    """Tests for display formatting."""

    def test_full_location(self):
        assert format_location_display(TOUR) == "Providence, RI, USA - Mobile service tour"

    def test_missing_parts_are_skipped(self):
        assert format_location_display(POPUP) == "Boston, USA"

    def test_empty_location_uses_fallback(self):
        assert format_location_display(ProviderLocation(id="x")) == LOCATION_FALLBACK


class TestLocationAnnotator:
    """Tests for date-based location precedence."""

    def test_dated_location_beats_default(self):
        annotator = LocationAnnotator([HOME, TOUR])

        assert annotator.location_for(date(2024, 11, 20)).id == "tour"
        assert annotator.location_for(date(2024, 11, 30)).id == "home"

    def test_latest_starting_dated_location_wins(self):
        annotator = LocationAnnotator([HOME, TOUR, POPUP])

        assert annotator.location_for(date(2024, 11, 25)).id == "popup"
        assert annotator.location_for(date(2024, 11, 27)).id == "tour"

    def test_inactive_locations_ignored(self):
        inactive_tour = ProviderLocation(
            id="tour", city="Providence", start_date=date(2024, 11, 18),
            end_date=date(2024, 11, 29), is_active=False,
        )
        annotator = LocationAnnotator([HOME, inactive_tour])

        assert annotator.location_for(date(2024, 11, 20)).id == "home"

    def test_no_locations_uses_fallback(self):
        annotator = LocationAnnotator([], fallback="Ask us")

        assert annotator.location_for(date(2024, 11, 20)) is None
        assert annotator.display_for(date(2024, 11, 20)) == "Ask us"

    def test_display_for(self):
        annotator = LocationAnnotator([HOME])

        assert annotator.display_for(date(2024, 11, 20)) == "Hartford, CT, USA"


class TestCleanLocationText:
    """Tests for free-text event location cleanup."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Whitfield Studio,\n 12 Elm Street,, Hartford", "Whitfield Studio, 12 Elm Street, Hartford"),
            ("  Room   4  ", "Room 4"),
            ("Line one\r\nLine two", "Line one, Line two"),
            (", Lobby ,", "Lobby"),
        ],
    )
    def test_cleanup(self, raw, expected):
        assert clean_location_text(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", " , \n"])
    def test_empty_text_uses_fallback(self, raw):
        assert clean_location_text(raw) == EVENT_LOCATION_FALLBACK
