"""SSE (Server-Sent Events) router for arc session updates.

Streams load, progress and generation events of an open arc session to
clients as they happen.
"""

import asyncio
import json
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from prodassist.core.logging_config import get_logger

logger = get_logger("api.sse")

router = APIRouter()

# Key: arc_id, Value: one queue per connected client
_event_queues: Dict[str, List[asyncio.Queue]] = {}

# Events after which no more events follow for the arc
TERMINAL_EVENTS = ("session_closed",)

KEEPALIVE_SECONDS = 30.0


class SSEEvent(BaseModel):
    """SSE event structure."""
    event: str  # session_loading, progress, arc_updated, generation_complete, error, ...
    data: dict


def publish_event(arc_id: str, event_type: str, data: dict) -> None:
    """Push an event to every client streaming this arc.

    This is the listener attached to arc sessions.
    """
    event = SSEEvent(event=event_type, data=data)
    for queue in _event_queues.get(arc_id, []):
        queue.put_nowait(event)


def register_queue(arc_id: str) -> asyncio.Queue:
    queue: asyncio.Queue = asyncio.Queue()
    _event_queues.setdefault(arc_id, []).append(queue)
    return queue


def unregister_queue(arc_id: str, queue: asyncio.Queue) -> None:
    queues = _event_queues.get(arc_id, [])
    if queue in queues:
        queues.remove(queue)
    if not queues:
        _event_queues.pop(arc_id, None)


def format_event(event: SSEEvent) -> str:
    return f"event: {event.event}\ndata: {json.dumps(event.data, default=str)}\n\n"


async def event_generator(
    arc_id: str,
    request: Request,
    queue: Optional[asyncio.Queue] = None
) -> AsyncGenerator[str, None]:
    """Generate SSE events for an arc until the session closes or the client leaves."""
    queue = queue or register_queue(arc_id)

    try:
        while True:
            if await request.is_disconnected():
                logger.info(f"SSE client disconnected from arc {arc_id}")
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue

            yield format_event(event)

            if event.event in TERMINAL_EVENTS:
                logger.info(f"Arc {arc_id} session closed, ending SSE stream")
                break

    except asyncio.CancelledError:
        logger.info(f"SSE stream cancelled for arc {arc_id}")
        raise
    finally:
        unregister_queue(arc_id, queue)


@router.get("/stream/{arc_id}")
async def stream_arc_events(arc_id: str, request: Request):
    """Stream SSE events for an arc session.

    Event types:
    - session_loading / session_ready: load sequence started / finished
    - arc_updated: the arc document changed
    - progress: generation step list, current step and percentage
    - generation_complete: auto-generation finished
    - regeneration_complete: regenerate-all finished
    - open_questionnaire: the props questionnaire should open
    - cancelled: progress reporting was stopped
    - error: the load sequence failed
    - session_closed: the session was closed
    """
    queue = register_queue(arc_id)
    return StreamingResponse(
        event_generator(arc_id, request, queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@router.get("/stream-status/{arc_id}")
async def get_stream_status(arc_id: str):
    """Number of clients streaming an arc."""
    return {"arc_id": arc_id, "listeners": len(_event_queues.get(arc_id, []))}
