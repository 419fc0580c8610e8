from pydantic import BaseModel, Field
from typing import Any, Dict, List
from datetime import datetime

from .clock import parse_timestamp
from .errors import InvalidArgumentError


class Inbox(BaseModel):
    id: str
    agent_id: str = Field(..., description="Owner reference, not interpreted")
    api_key: str = Field(..., description="Inbox credential, distinct from id")
    created_at: datetime
    expires_at: datetime
    ttl_hours: float
    metadata: Dict[str, Any] | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def remaining_seconds(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())


class WebhookEvent(BaseModel):
    id: str
    seq: int
    inbox_id: str
    received_at: datetime
    source_ip: str = "unknown"
    headers: Dict[str, str] = Field(default_factory=dict)
    content_type: str = ""
    body: bytes = b""
    read: bool = False

    @property
    def order_key(self) -> tuple[datetime, int]:
        return (self.received_at, self.seq)


class EventCounts(BaseModel):
    total: int = 0
    unread: int = 0


class QueryOptions(BaseModel):
    unread_only: bool = False
    since: datetime | None = None
    limit: int = 50
    mark_read: bool = False

    @classmethod
    def build(
        cls,
        unread_only: bool = False,
        since: str | datetime | None = None,
        limit: int | None = None,
        mark_read: bool = False,
        default_limit: int = 50,
        max_limit: int | None = None,
    ) -> "QueryOptions":
        """
        Validate raw query parameters.

        Args:
            unread_only: Only return events not yet marked read
            since: ISO 8601 lower bound on received_at (inclusive)
            limit: Maximum number of events to return
            mark_read: Mark returned events read
            default_limit: Limit used when none is given
            max_limit: Upper bound applied to the limit (the capacity)

        Raises:
            InvalidArgumentError: For a non-positive limit or bad timestamp
        """
        if limit is None:
            limit = default_limit
        if limit <= 0:
            raise InvalidArgumentError("limit must be a positive integer", field="limit")
        if max_limit is not None:
            limit = min(limit, max_limit)
        return cls(
            unread_only=unread_only,
            since=parse_timestamp(since),
            limit=limit,
            mark_read=mark_read,
        )


class EventPage(BaseModel):
    events: List[WebhookEvent]
    unread_count: int
    total_count: int


class InboxDetails(BaseModel):
    """Inbox as shown to its owner; never includes the credential."""
    id: str
    agent_id: str
    webhook_url: str
    polling_url: str
    created_at: datetime
    expires_at: datetime
    ttl_hours: float
    metadata: Dict[str, Any] | None = None


class InboxDescriptor(InboxDetails):
    """Returned once, at creation time."""
    api_key: str


class InboxStatus(BaseModel):
    inbox_id: str
    status: str = "active"
    expires_at: datetime


class WebhookReceipt(BaseModel):
    success: bool = True
    event_id: str
    received_at: datetime
