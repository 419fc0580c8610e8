"""Client disconnect detection for long-lived HTTP responses."""
import asyncio
from typing import Awaitable, TypeVar
from fastapi import Request
from starlette.requests import ClientDisconnect

T = TypeVar("T")


class ClientDisconnected(Exception):
    """The client closed the connection before the response was ready."""


async def watch_disconnect(request: Request, disconnected: asyncio.Event):
    """
    Set ``disconnected`` once the client has gone away.

    Only for bodiless requests: it drains the request stream.
    """
    try:
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                break
    except ClientDisconnect:
        # Raised instead of the message when middleware wraps the stream
        pass
    disconnected.set()


async def unless_disconnected(request: Request, awaitable: Awaitable[T]) -> T:
    """
    Await ``awaitable`` while watching the client connection.

    The awaitable is cancelled as soon as the client disconnects, which runs
    its cleanup (waiter release) right away.

    Raises:
        ClientDisconnected: If the client left first
    """
    task = asyncio.ensure_future(awaitable)
    disconnected = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(request, disconnected))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()

    if task.done() and not task.cancelled():
        return task.result()

    await asyncio.gather(task, return_exceptions=True)
    if not disconnected.is_set():
        # The watcher failed; surface its error
        watcher.result()
    raise ClientDisconnected()
