"""
Tests for the fire-and-forget calendar sync trigger.
"""

import asyncio
import logging
import threading

import pendulum

from openslots.domain.exceptions import CalendarSyncError
from openslots.services.sync import BackgroundSyncTrigger, SyncResult

START = pendulum.datetime(2024, 11, 25, 6, 0)
END = pendulum.datetime(2024, 12, 9, 6, 0)


class StubSyncClient:
    def __init__(self, result=None, error=None, block=False):
        self.result = result or SyncResult(synced=2, connections=2)
        self.error = error
        self.release = threading.Event()
        if not block:
            self.release.set()

    def sync_for_booking_lookup(self, provider_id, start, end):
        self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.result


class TestBackgroundSyncTrigger:
    """Tests for BackgroundSyncTrigger."""

    def test_successful_sync_returns_result(self):
        trigger = BackgroundSyncTrigger(StubSyncClient())

        async def scenario():
            task = trigger.trigger("p1", START, END)
            return await task

        assert asyncio.run(scenario()) == SyncResult(synced=2, connections=2)

    def test_timeout_is_logged_not_raised(self, caplog):
        client = StubSyncClient(block=True)
        trigger = BackgroundSyncTrigger(client, timeout_seconds=0.05)

        async def scenario():
            result = await trigger.trigger("p1", START, END)
            client.release.set()
            return result

        with caplog.at_level(logging.WARNING, logger="openslots.services.sync"):
            assert asyncio.run(scenario()) is None

        assert "timed out" in caplog.text

    def test_sync_error_is_logged_not_raised(self, caplog):
        trigger = BackgroundSyncTrigger(StubSyncClient(error=CalendarSyncError("token expired")))

        async def scenario():
            return await trigger.trigger("p1", START, END)

        with caplog.at_level(logging.WARNING, logger="openslots.services.sync"):
            assert asyncio.run(scenario()) is None

        assert "token expired" in caplog.text

    def test_unexpected_error_is_logged_not_raised(self, caplog):
        trigger = BackgroundSyncTrigger(StubSyncClient(error=KeyError("connections")))

        async def scenario():
            return await trigger.trigger("p1", START, END)

        assert asyncio.run(scenario()) is None
        assert "Unexpected calendar sync failure" in caplog.text

    def test_without_event_loop_nothing_is_scheduled(self):
        trigger = BackgroundSyncTrigger(StubSyncClient())

        assert trigger.trigger("p1", START, END) is None
        assert trigger.pending == 0

    def test_drain_waits_for_pending_syncs(self):
        trigger = BackgroundSyncTrigger(StubSyncClient())

        async def scenario():
            trigger.trigger("p1", START, END)
            trigger.trigger("p2", START, END)
            before = trigger.pending
            await trigger.drain()
            return before, trigger.pending

        assert asyncio.run(scenario()) == (2, 0)
