"""
Best-effort calendar sync triggered alongside slot queries.

The sync runs as a detached asyncio task with its own timeout. Slot
resolution never awaits it and proceeds with whatever busy data is already
persisted; failures are logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Set

from pendulum import DateTime

from ..domain.exceptions import CalendarSyncError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    synced: int = 0
    connections: int = 0


class CalendarSyncClient(Protocol):
    """Protocol describing the sync collaborator (blocking call)."""

    def sync_for_booking_lookup(
        self,
        provider_id: str,
        start: DateTime,
        end: DateTime,
    ) -> SyncResult:
        """Refresh the provider's synced events for ``[start, end]``."""


class BackgroundSyncTrigger:
    """Fire-and-forget wrapper around a ``CalendarSyncClient``."""

    def __init__(self, client: CalendarSyncClient, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._timeout_seconds = timeout_seconds
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def trigger(self, provider_id: str, start: DateTime, end: DateTime) -> Optional[asyncio.Task]:
        """
        Schedule a sync for the provider and return immediately.

        Returns the scheduled task, or None when no event loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; skipping calendar sync for %s", provider_id)
            return None

        task = loop.create_task(self._run(provider_id, start, end))
        # Hold a reference so the task is not garbage collected mid-flight.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight syncs; used by short-lived processes before exit."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(self, provider_id: str, start: DateTime, end: DateTime) -> Optional[SyncResult]:
        logger.info(
            "Syncing calendars for provider %s from %s to %s",
            provider_id,
            start.to_date_string(),
            end.to_date_string(),
        )
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._client.sync_for_booking_lookup, provider_id, start, end),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Calendar sync for provider %s timed out after %.1fs",
                provider_id,
                self._timeout_seconds,
            )
            return None
        except CalendarSyncError as exc:
            logger.warning("Calendar sync failed for provider %s: %s", provider_id, exc)
            return None
        except Exception:
            logger.exception("Unexpected calendar sync failure for provider %s", provider_id)
            return None

        logger.info(
            "Completed %d/%d calendar syncs for provider %s",
            result.synced,
            result.connections,
            provider_id,
        )
        return result
