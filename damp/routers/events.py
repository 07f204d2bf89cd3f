"""
Events Router - Server-Sent Events stream of progress notifications.

Streams every event published on the in-process bus: image pulls, service
installs, project creation steps, volume copies and sync progress.

Events:
    {"topic": "sync.progress", "key": "<project id>", "timestamp": 1700000000000,
     "payload": {"stage": "copying", "percentage": 42, "bytes": 123456, ...}}

Usage (JavaScript):
    const es = new EventSource(`/api/events?key=${projectId}`);
    es.onmessage = (e) => console.log(JSON.parse(e.data));
"""

import asyncio
import json
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from damp.dependencies import get_event_bus
from damp.utils.events import EventBus
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="SSE")

router = APIRouter()

KEEPALIVE_INTERVAL = 15.0


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def matches(event: Dict[str, Any], topic: Optional[str], key: Optional[str]) -> bool:
    """Topic filters match on prefix, so 'sync' selects every sync.* event."""
    if topic and not event["topic"].startswith(topic):
        return False
    if key and event["key"] != key:
        return False
    return True


async def generate_events(
    request: Request,
    event_bus: EventBus,
    topic: Optional[str] = None,
    key: Optional[str] = None,
    keepalive: float = KEEPALIVE_INTERVAL,
) -> AsyncGenerator[str, None]:
    queue = event_bus.subscribe()
    logger.debug(f"Subscriber connected ({event_bus.subscriber_count} total)")
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if matches(event, topic, key):
                yield format_sse(event)
    finally:
        event_bus.unsubscribe(queue)
        logger.debug(f"Subscriber disconnected ({event_bus.subscriber_count} remaining)")


@router.get("")
async def stream_events(
    request: Request,
    topic: Optional[str] = None,
    key: Optional[str] = None,
    event_bus: EventBus = Depends(get_event_bus),
):
    """Stream progress events, optionally filtered by topic prefix and key."""
    return StreamingResponse(
        generate_events(request, event_bus, topic, key),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
