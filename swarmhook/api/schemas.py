from pydantic import BaseModel, Field
from typing import Any, Dict, List
from datetime import datetime
from urllib.parse import parse_qsl
import orjson
from ..models import EventPage, WebhookEvent


class CreateInboxRequest(BaseModel):
    ttl_hours: float | None = Field(default=None, description="Inbox lifetime in hours")
    metadata: Dict[str, Any] | None = None


class EventOut(BaseModel):
    id: str
    inbox_id: str
    received_at: datetime
    source_ip: str
    headers: Dict[str, str]
    content_type: str
    body: Any
    read: bool


class EventListResponse(BaseModel):
    events: List[EventOut]
    unread_count: int
    total_count: int

    @classmethod
    def from_page(cls, page: EventPage) -> "EventListResponse":
        return cls(
            events=[render_event(e) for e in page.events],
            unread_count=page.unread_count,
            total_count=page.total_count,
        )


def decode_body(content_type: str, body: bytes) -> Any:
    """Decode an opaque payload for display: JSON, form fields, or text."""
    if not body:
        return None
    ctype = content_type.lower()
    if "application/json" in ctype:
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError:
            pass
    elif "application/x-www-form-urlencoded" in ctype:
        return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    return body.decode("utf-8", errors="replace")


def render_event(event: WebhookEvent) -> EventOut:
    return EventOut(
        id=event.id,
        inbox_id=event.inbox_id,
        received_at=event.received_at,
        source_ip=event.source_ip,
        headers=event.headers,
        content_type=event.content_type,
        body=decode_body(event.content_type, event.body),
        read=event.read,
    )
