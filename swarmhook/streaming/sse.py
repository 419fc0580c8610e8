"""Server-Sent Events rendering of stream sessions."""
import asyncio
from typing import AsyncIterator
from fastapi import Request
import orjson
from .coordinator import CLOSED, KEEPALIVE, StreamMessage, StreamSession
from ..api.disconnect import watch_disconnect
from ..api.schemas import render_event

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def message_payload(message: StreamMessage) -> dict:
    """JSON-ready body of a stream message."""
    if message.kind == KEEPALIVE:
        return {"timestamp": message.timestamp.isoformat()}
    if message.kind == CLOSED:
        return {"reason": message.reason, "timestamp": message.timestamp.isoformat()}
    return render_event(message.event).model_dump(mode="json")


def format_sse(message: StreamMessage) -> bytes:
    data = orjson.dumps(message_payload(message))
    return b"event: " + message.kind.encode() + b"\ndata: " + data + b"\n\n"


async def sse_stream(session: StreamSession, request: Request | None = None) -> AsyncIterator[bytes]:
    """Render ``session`` as SSE frames, ending early when the client leaves."""
    disconnected = None
    watcher = None
    if request is not None:
        disconnected = asyncio.Event()
        watcher = asyncio.create_task(watch_disconnect(request, disconnected))
    try:
        async for message in session.messages(disconnected):
            yield format_sse(message)
    finally:
        if watcher is not None:
            watcher.cancel()
        session.close()
