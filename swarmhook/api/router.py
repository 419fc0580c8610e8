from fastapi import APIRouter, Depends, Request, Response, Security
from fastapi.responses import StreamingResponse
from typing import Optional
import structlog
from .disconnect import ClientDisconnected, unless_disconnected
from .schemas import CreateInboxRequest, EventListResponse
from ..auth.api_key import api_key_header, verify_agent_key, verify_inbox_key
from ..models import InboxDescriptor, InboxDetails
from ..services.inbox_service import InboxService, get_service
from ..services.rate_limit import Admission
from ..streaming.sse import SSE_HEADERS, sse_stream

log = structlog.get_logger()

# nginx convention for a request the client abandoned
CLIENT_CLOSED_REQUEST = 499

router = APIRouter(prefix="/api/v1/inboxes", tags=["inboxes"])


def set_rate_limit_headers(response: Response, admission: Admission):
    response.headers["X-RateLimit-Limit"] = str(admission.limit)
    response.headers["X-RateLimit-Remaining"] = str(admission.remaining)


async def rate_limited_inbox(
    response: Response,
    inbox_id: str = Depends(verify_inbox_key),
    service: InboxService = Depends(get_service),
) -> str:
    admission = service.admit(service.api_limiter, inbox_id, scope="api")
    set_rate_limit_headers(response, admission)
    return inbox_id


@router.post("", status_code=201, response_model=InboxDescriptor)
async def create_inbox(
    response: Response,
    req: CreateInboxRequest | None = None,
    agent_id: str = Depends(verify_agent_key),
    service: InboxService = Depends(get_service),
):
    admission = service.admit(service.api_limiter, f"agent:{agent_id}", scope="api")
    set_rate_limit_headers(response, admission)
    req = req or CreateInboxRequest()
    return await service.create_inbox(agent_id, ttl_hours=req.ttl_hours, metadata=req.metadata)


@router.get("/{inbox_id}", response_model=InboxDetails)
async def get_inbox(
    inbox_id: str = Depends(rate_limited_inbox),
    service: InboxService = Depends(get_service),
):
    return await service.describe_inbox(inbox_id)


@router.get("/{inbox_id}/events", response_model=EventListResponse)
async def poll_events(
    request: Request,
    unread: bool = False,
    since: Optional[str] = None,
    limit: Optional[int] = None,
    mark_read: bool = False,
    wait: float = 0,
    inbox_id: str = Depends(rate_limited_inbox),
    service: InboxService = Depends(get_service),
):
    poll = service.poll_inbox(
        inbox_id,
        unread=unread,
        since=since,
        limit=limit,
        mark_read=mark_read,
        wait=wait,
    )
    if wait <= 0:
        return EventListResponse.from_page(await poll)

    try:
        page = await unless_disconnected(request, poll)
    except ClientDisconnected:
        log.info("poll.abandoned", inbox_id=inbox_id)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    return EventListResponse.from_page(page)


@router.get("/{inbox_id}/stream")
async def stream_events(
    inbox_id: str,
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    service: InboxService = Depends(get_service),
):
    session = await service.open_stream(api_key, inbox_id)
    return StreamingResponse(
        sse_stream(session, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
