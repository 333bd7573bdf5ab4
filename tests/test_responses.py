"""
Tests for the client-facing slot query surface.
"""

import asyncio
from datetime import time
from unittest.mock import patch

import pendulum

from openslots.domain.models import AvailabilityTemplate, RecurringWindow
from openslots.services.responses import GENERIC_ERROR_MESSAGE, SlotQueryService

NOW = pendulum.datetime(2024, 11, 25, 6, 0)


def _query(service, *args, **kwargs):
    query = SlotQueryService(service)
    with patch("openslots.services.slot_finder.pendulum.now", return_value=NOW):
        return asyncio.run(query.query_open_slots(*args, **kwargs))


class TestQueryOpenSlots:
    """Status codes and payload shape."""

    def test_success_payload(self, make_service):
        outcome = _query(make_service(), "p1", days_ahead=1)

        assert outcome.ok
        assert outcome.status == 200
        body = outcome.body
        assert body["success"] is True
        assert body["provider"] == {"id": "p1", "name": "Dana Whitfield", "timezone": "America/New_York"}
        assert body["totalSlots"] == 2
        first = body["slots"][0]
        assert first == {
            "id": f"slot-{pendulum.datetime(2024, 11, 25, 14, 0).int_timestamp * 1000}-60",
            "startTime": "2024-11-25T14:00:00Z",
            "endTime": "2024-11-25T15:00:00Z",
            "duration": 60,
            "location": {"display": "Hartford, CT, USA"},
            "availableServices": ["consultation", "maintenance", "emergency", "follow-up"],
            "slotsRemaining": 1,
            "type": "automatic",
        }
        assert body["slots"][1]["startTime"] == "2024-11-25T15:15:00Z"

    def test_empty_service_type_means_no_filter(self, make_service):
        outcome = _query(make_service(), "p1", service_type="", days_ahead=1)

        assert outcome.body["totalSlots"] == 2

    def test_unknown_service_type_returns_no_slots(self, make_service):
        outcome = _query(make_service(), "p1", service_type="piano-moving", days_ahead=1)

        assert outcome.status == 200
        assert outcome.body["slots"] == []
        assert outcome.body["totalSlots"] == 0

    def test_missing_provider_is_bad_request(self, make_service):
        outcome = _query(make_service(), None)

        assert outcome.status == 400
        assert outcome.body == {"success": False, "error": "providerId is required"}

    def test_negative_days_ahead_is_bad_request(self, make_service):
        outcome = _query(make_service(), "p1", days_ahead=-3)

        assert outcome.status == 400
        assert "slots" not in outcome.body

    def test_infinite_days_ahead_is_bad_request(self, make_service):
        outcome = _query(make_service(), "p1", days_ahead=float("inf"))

        assert outcome.status == 400
        assert outcome.body["error"] == "daysAhead must be an integer, got inf"

    def test_unknown_provider_is_not_found(self, make_service):
        outcome = _query(make_service(), "ghost")

        assert outcome.status == 404
        assert outcome.body == {"success": False, "error": "Provider not found"}

    def test_internal_fault_is_generic(self, make_service, repository, caplog):
        repository.fail_on = "list_templates"

        outcome = _query(make_service(), "p1")

        assert outcome.status == 500
        assert outcome.body == {
            "success": False,
            "error": GENERIC_ERROR_MESSAGE,
            "message": "Internal server error",
        }
        assert "Slot query failed for provider p1" in caplog.text

    def test_provider_timezone_reported(self, make_service, repository):
        repository.templates[0] = AvailabilityTemplate(
            id="tpl-1",
            provider_id="p1",
            timezone="Europe/Berlin",
            is_default=True,
            windows=(RecurringWindow(weekday=1, start=time(9, 0), end=time(12, 0)),),
        )

        outcome = _query(make_service(), "p1", days_ahead=1)

        assert outcome.body["provider"]["timezone"] == "Europe/Berlin"
        assert outcome.body["slots"][0]["startTime"] == "2024-11-25T08:00:00Z"
