"""
Logs Router - Server-Sent Events stream of container output.

Events:
    {"log": "[17-Oct-2026 10:00:00] NOTICE: ready to handle connections"}
    {"complete": true, "success": true}

Usage (JavaScript):
    const es = new EventSource(`/api/logs/projects/${projectId}?tail=200`);
    es.onmessage = (e) => console.log(JSON.parse(e.data).log);
"""

import asyncio
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from damp.dependencies import get_log_streamer
from damp.models.result import OperationResult
from damp.routers.events import KEEPALIVE_INTERVAL, format_sse
from damp.services.log_streamer import DEFAULT_TAIL, LogStreamer

router = APIRouter()


async def relay_log_events(
    request: Request,
    events: AsyncIterator[Dict[str, Any]],
    keepalive: float = KEEPALIVE_INTERVAL,
) -> AsyncGenerator[str, None]:
    """Forward log events as SSE, with keepalives while the container is quiet."""
    pending: Optional[asyncio.Future] = None
    try:
        while True:
            if await request.is_disconnected():
                break
            if pending is None:
                pending = asyncio.ensure_future(events.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=keepalive)
            if not done:
                yield ": keepalive\n\n"
                continue
            next_event, pending = pending, None
            try:
                event = next_event.result()
            except StopAsyncIteration:
                break
            yield format_sse(event)
            if event.get("complete"):
                break
    finally:
        if pending is not None:
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
        await events.aclose()


def sse_response(request: Request, events: AsyncIterator[Dict[str, Any]]) -> StreamingResponse:
    return StreamingResponse(
        relay_log_events(request, events),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/projects/{project_id}")
async def stream_project_logs(
    project_id: str,
    request: Request,
    tail: int = Query(DEFAULT_TAIL, ge=0),
    streamer: LogStreamer = Depends(get_log_streamer),
):
    """Follow a project container's output."""
    container = await streamer.project_container(project_id)
    return sse_response(request, streamer.follow(container, tail))


@router.get("/services/{service_id}")
async def stream_service_logs(
    service_id: str,
    request: Request,
    tail: int = Query(DEFAULT_TAIL, ge=0),
    streamer: LogStreamer = Depends(get_log_streamer),
):
    """Follow a service container's output."""
    container = await streamer.service_container(service_id)
    return sse_response(request, streamer.follow(container, tail))


@router.get("/projects/{project_id}/file", response_model=OperationResult)
async def read_project_file(
    project_id: str,
    path: str,
    lines: Optional[int] = Query(None, ge=1),
    streamer: LogStreamer = Depends(get_log_streamer),
):
    """Read a file from the project container, e.g. storage/logs/laravel.log."""
    return await streamer.read_project_file(project_id, path, lines)
