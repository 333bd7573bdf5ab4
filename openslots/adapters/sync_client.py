"""
HTTP client for the upstream calendar sync collaborator.
"""

import logging
from typing import Any, Dict

import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarSyncError
from ..services.sync import SyncResult

logger = logging.getLogger(__name__)


class HttpCalendarSyncClient:
    """
    Client that asks the booking backend to refresh a provider's synced calendars.

    Uses the /api/provider/calendar/sync endpoint, which pulls external events
    for the requested range into the store the slot engine reads from.
    """

    SYNC_ENDPOINT = "/api/provider/calendar/sync"

    def __init__(self, base_url: str, api_token: str = "", timeout_seconds: float = 10.0):
        """
        Initialize the sync client.

        Args:
            base_url: Base URL of the booking backend
            api_token: Optional bearer token
            timeout_seconds: Per-request timeout
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"

    def sync_for_booking_lookup(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> SyncResult:
        """
        Trigger a sync of every calendar connection of the provider.

        Args:
            provider_id: Provider whose calendars are refreshed
            start: Start of the range to refresh
            end: End of the range to refresh

        Returns:
            Number of connections synced and attempted

        Raises:
            CalendarSyncError: If the request fails or the response is malformed
        """
        url = f"{self.base_url}{self.SYNC_ENDPOINT}"
        payload = {
            "providerId": provider_id,
            "startDate": start.in_timezone("UTC").to_iso8601_string(),
            "endDate": end.in_timezone("UTC").to_iso8601_string(),
            "reason": "booking_lookup",
        }

        try:
            response = requests.post(
                url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarSyncError(f"Calendar sync request failed: {e}") from e
        except ValueError as e:
            raise CalendarSyncError(f"Calendar sync returned invalid JSON: {e}") from e

        return self._parse_sync_response(data)

    def _parse_sync_response(self, response_data: Dict[str, Any]) -> SyncResult:
        """
        Parse the sync endpoint response.

        Response format:
        {
            "success": true,
            "synced": 2,
            "connections": 3
        }
        """
        if not isinstance(response_data, dict) or not response_data.get("success", True):
            raise CalendarSyncError(f"Calendar sync reported failure: {response_data!r}")

        try:
            synced = int(response_data.get("synced", 0))
            connections = int(response_data.get("connections", synced))
        except (TypeError, ValueError) as e:
            raise CalendarSyncError(f"Malformed calendar sync response: {e}") from e

        if synced < connections:
            logger.debug("Only %d of %d calendar connections synced", synced, connections)
        return SyncResult(synced=synced, connections=connections)
