"""Unit tests for the in-process event bus and best-effort actions."""

import asyncio
import logging

import pytest

from damp.models.result import OperationResult
from damp.utils.advisory import run_advisory
from damp.utils.events import EventBus


@pytest.mark.unit
class TestEventBus:

    async def test_fan_out(self):
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()

        bus.publish("sync.progress", "p1", {"percentage": 10})

        for queue in (first, second):
            event = queue.get_nowait()
            assert event["topic"] == "sync.progress"
            assert event["key"] == "p1"
            assert event["payload"] == {"percentage": 10}

    async def test_full_queue_drops_oldest(self):
        bus = EventBus(max_queue_size=2)
        queue = bus.subscribe()

        for i in range(3):
            bus.publish("t", "k", {"i": i})

        assert [queue.get_nowait()["payload"]["i"] for _ in range(2)] == [1, 2]

    async def test_unsubscribe(self):
        bus = EventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)
        bus.publish("t", "k")
        assert queue.empty()
        assert bus.subscriber_count == 0

    async def test_publish_threadsafe(self):
        bus = EventBus()
        bus.bind_loop(asyncio.get_running_loop())
        queue = bus.subscribe()

        await asyncio.to_thread(bus.publish_threadsafe, "service.pull", "redis", {"status": "Downloading"})

        event = await asyncio.wait_for(queue.get(), timeout=1)
        assert event["payload"]["status"] == "Downloading"

    def test_publish_threadsafe_without_loop_is_dropped(self):
        bus = EventBus()
        queue = bus.subscribe()
        bus.publish_threadsafe("t", "k")
        assert queue.empty()


@pytest.mark.unit
class TestRunAdvisory:

    logger = logging.getLogger("test")

    async def test_success(self):
        async def action():
            return OperationResult.ok()

        result = await run_advisory("hosts", action, self.logger)
        assert result.success
        assert result.name == "hosts"

    async def test_exception_becomes_failure(self):
        async def action():
            raise PermissionError("hosts file is read-only")

        result = await run_advisory("hosts", action, self.logger)
        assert not result.success
        assert "read-only" in result.error

    async def test_failed_result_becomes_failure(self):
        async def action():
            return OperationResult.fail("caddy reload failed")

        result = await run_advisory("proxy", action, self.logger)
        assert not result.success
        assert result.error == "caddy reload failed"
