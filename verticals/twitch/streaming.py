"""Server-Sent Events stream for the live dashboard.

No persistence: a listener only sees events appended while it is connected.
The listener is registered when the stream starts and always deregistered
when it ends, whether the client disconnected or the server shut down.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable

from core.events.live_buffer import LiveEventBuffer

CONNECTED_MESSAGE = {"type": "connected", "message": "Connected to event stream"}
KEEPALIVE_FRAME = ": keepalive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def sse_event_stream(
    buffer: LiveEventBuffer,
    tenant_id: str,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    keepalive_seconds: float = 15.0,
) -> AsyncIterator[str]:
    """Yield the connected frame, then one frame per event, with keep-alive comments when idle."""
    handle = buffer.subscribe(tenant_id)
    try:
        yield format_sse(CONNECTED_MESSAGE)
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(handle.queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            yield format_sse(event.to_dict())
    finally:
        buffer.unsubscribe(handle)
