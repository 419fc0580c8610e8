"""WebSocket routes for event streaming."""
from fastapi import APIRouter, Depends, WebSocket
import structlog
from ..errors import SwarmhookError
from ..services.inbox_service import InboxService, get_service
from ..streaming.websocket import handle_websocket_stream

log = structlog.get_logger()

router = APIRouter(tags=["websocket"])

# Policy violation close code
WS_POLICY_VIOLATION = 1008


@router.websocket("/api/v1/inboxes/{inbox_id}/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    inbox_id: str,
    service: InboxService = Depends(get_service),
):
    """
    WebSocket endpoint for real-time inbox events.

    The inbox credential is read from the X-API-Key header or, for clients
    that cannot set headers, the ``api_key`` query parameter. Frames:

    - ``{"type": "welcome", ...}`` once on connect
    - ``{"type": "webhook", "data": {...}}`` per event (recent snapshot first)
    - ``{"type": "keepalive", "data": {"timestamp": ...}}`` every 30 seconds
    - ``{"type": "closed", "data": {"reason": ...}}`` before the server closes

    Example client (JavaScript):
    ```javascript
    const ws = new WebSocket('ws://localhost:8080/api/v1/inboxes/inbox_abc/ws?api_key=iwh_...');
    ws.onmessage = (event) => {
        const frame = JSON.parse(event.data);
        if (frame.type === 'webhook') console.log('Received:', frame.data.body);
    };
    ```
    """
    api_key = websocket.headers.get("x-api-key") or websocket.query_params.get("api_key")
    try:
        session = await service.open_stream(api_key, inbox_id)
    except SwarmhookError as exc:
        log.warning("websocket.rejected", inbox_id=inbox_id, error=exc.error)
        await websocket.close(code=WS_POLICY_VIOLATION, reason=exc.message)
        return

    await handle_websocket_stream(websocket, session)
