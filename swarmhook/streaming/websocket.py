"""WebSocket transport for inbox stream sessions."""
import asyncio
import structlog
from fastapi import WebSocket, WebSocketDisconnect
import orjson
from .coordinator import StreamSession
from .sse import message_payload

log = structlog.get_logger()


async def _receive_until_disconnect(websocket: WebSocket, disconnected: asyncio.Event):
    """Answer client pings and flag the disconnect."""
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
            elif message == "pong":
                log.debug("websocket.pong_received")
    except WebSocketDisconnect:
        log.info("websocket.client_disconnected")
    finally:
        disconnected.set()


async def handle_websocket_stream(websocket: WebSocket, session: StreamSession):
    """
    Forward a stream session over an accepted WebSocket connection.

    Every stream message is sent as a JSON frame
    ``{"type": <kind>, "data": <payload>}``. The server closes the socket
    when the session ends.

    Args:
        websocket: WebSocket connection (not yet accepted)
        session: Stream session for the authenticated inbox
    """
    await websocket.accept()
    disconnected = asyncio.Event()
    receiver = asyncio.create_task(_receive_until_disconnect(websocket, disconnected))
    log.info("websocket.connected", inbox_id=session.inbox_id)

    try:
        await websocket.send_json({
            "type": "welcome",
            "inbox_id": session.inbox_id,
            "expires_at": session.inbox.expires_at.isoformat(),
        })

        async for message in session.messages(disconnected):
            await websocket.send_text(
                orjson.dumps({"type": message.kind, "data": message_payload(message)}).decode()
            )

        if not disconnected.is_set():
            await websocket.close(code=1000)

    except WebSocketDisconnect:
        log.info("websocket.client_disconnected", inbox_id=session.inbox_id)
    finally:
        receiver.cancel()
        session.close()
