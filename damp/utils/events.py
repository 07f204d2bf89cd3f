"""
In-process event bus for progress notifications.

Long-running operations (image pulls, volume copies, syncs) publish events
keyed by project or service id; the SSE router subscribes and streams them to
clients. Publishing never blocks: a slow subscriber drops its oldest events.
Docker SDK progress callbacks run in worker threads, so publish_threadsafe()
hops back onto the event loop.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Events")

# Topics
SERVICE_PULL = "service.pull"
SERVICE_INSTALL = "service.install"
PROJECT_CREATE = "project.create"
VOLUME_COPY = "volume.copy"
SYNC_STARTED = "sync.started"
SYNC_PROGRESS = "sync.progress"
SYNC_COMPLETED = "sync.completed"
SYNC_FAILED = "sync.failed"
SYNC_CANCELLED = "sync.cancelled"


class EventBus:
    """Fan-out of progress events to any number of async subscribers."""

    def __init__(self, max_queue_size: int = 1000):
        self._subscribers: List[asyncio.Queue] = []
        self._max_queue_size = max_queue_size
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, topic: str, key: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish from the event loop thread."""
        event = {
            "topic": topic,
            "key": key,
            "timestamp": int(time.time() * 1000),
            "payload": payload or {},
        }
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event)

    def publish_threadsafe(self, topic: str, key: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish from a worker thread (e.g. a docker-py streaming callback)."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Dropping {topic} event for {key}: no event loop bound")
            return
        loop.call_soon_threadsafe(self.publish, topic, key, payload)
