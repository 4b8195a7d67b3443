"""Test the Server-Sent Events generator for the live dashboard."""
import json

import pytest

from core.events.live_buffer import LiveEventBuffer
from core.integrations.normalizer import CanonicalEvent, EventType
from verticals.twitch.streaming import KEEPALIVE_FRAME, sse_event_stream


def _frame_data(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


@pytest.mark.asyncio
async def test_connected_frame_then_events():
    buffer = LiveEventBuffer()
    stream = sse_event_stream(buffer, "t1", keepalive_seconds=5)

    first = await stream.__anext__()
    assert _frame_data(first) == {"type": "connected", "message": "Connected to event stream"}
    assert buffer.listener_count("t1") == 1

    event = CanonicalEvent(event_type=EventType.CHEER, data={"userName": "bob", "bits": 50})
    buffer.append("t1", event)
    frame = await stream.__anext__()
    assert _frame_data(frame) == event.to_dict()

    await stream.aclose()
    assert buffer.listener_count("t1") == 0


@pytest.mark.asyncio
async def test_keepalive_when_idle():
    buffer = LiveEventBuffer()
    stream = sse_event_stream(buffer, "t1", keepalive_seconds=0.01)
    await stream.__anext__()
    assert await stream.__anext__() == KEEPALIVE_FRAME
    await stream.aclose()


@pytest.mark.asyncio
async def test_disconnect_ends_stream_and_unsubscribes():
    buffer = LiveEventBuffer()
    disconnected = False

    async def is_disconnected():
        return disconnected

    stream = sse_event_stream(buffer, "t1", is_disconnected=is_disconnected, keepalive_seconds=0.01)
    await stream.__anext__()
    disconnected = True

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert buffer.listener_count("t1") == 0


@pytest.mark.asyncio
async def test_events_before_connecting_are_not_replayed():
    buffer = LiveEventBuffer()
    buffer.append("t1", CanonicalEvent(event_type=EventType.FOLLOW, data={"userName": "early"}))

    stream = sse_event_stream(buffer, "t1", keepalive_seconds=0.01)
    await stream.__anext__()
    assert await stream.__anext__() == KEEPALIVE_FRAME
    await stream.aclose()
