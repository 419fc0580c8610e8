"""In-memory inbox store with deadline checks on read and periodic sweep."""
import bisect
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
import structlog
from .base import InboxStore
from ..clock import Clock
from ..models import EventCounts, Inbox, QueryOptions, WebhookEvent

log = structlog.get_logger()


def _order_key(event: WebhookEvent):
    return event.order_key


@dataclass
class _Entry:
    value: Any
    expires_at: datetime


@dataclass
class _EventBuffer:
    """Ordered events plus unread counter for one inbox."""

    events: list[WebhookEvent] = field(default_factory=list)
    unread: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class MemoryStore(InboxStore):
    """
    Thread-safe in-memory store.

    Every record carries an absolute deadline. Reads past the deadline treat
    the record as absent and drop it; ``sweep`` reclaims the rest. Mutations
    of one inbox's events are serialized by that inbox's buffer lock, so no
    lock is shared across inboxes beyond the short key-map lookup.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or Clock()
        self._records: dict[str, _Entry] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _inbox_key(inbox_id: str) -> str:
        return f"inbox:{inbox_id}"

    @staticmethod
    def _apikey_key(credential: str) -> str:
        return f"apikey:{credential}"

    @staticmethod
    def _events_key(inbox_id: str) -> str:
        return f"events:{inbox_id}"

    def _get(self, key: str) -> Any:
        with self._lock:
            entry = self._records.get(key)
            if entry is None:
                return None
            if self._clock.now() >= entry.expires_at:
                del self._records[key]
                return None
            return entry.value

    def _set(self, key: str, value: Any, expires_at: datetime):
        with self._lock:
            self._records[key] = _Entry(value=value, expires_at=expires_at)

    def _buffer(self, inbox_id: str, expires_at: datetime | None = None) -> _EventBuffer | None:
        """Get the event buffer, creating it with ``expires_at`` when given."""
        key = self._events_key(inbox_id)
        with self._lock:
            buffer = self._get(key)
            if buffer is None and expires_at is not None:
                buffer = _EventBuffer()
                self._set(key, buffer, expires_at)
            return buffer

    async def save_inbox(self, inbox: Inbox) -> None:
        with self._lock:
            self._set(self._inbox_key(inbox.id), inbox.model_copy(), inbox.expires_at)
            self._set(self._apikey_key(inbox.api_key), inbox.id, inbox.expires_at)

    async def load_inbox(self, inbox_id: str) -> Inbox | None:
        inbox = self._get(self._inbox_key(inbox_id))
        return inbox.model_copy() if inbox is not None else None

    async def lookup_credential(self, credential: str) -> str | None:
        return self._get(self._apikey_key(credential))

    async def append_event(self, inbox: Inbox, event: WebhookEvent, capacity: int) -> WebhookEvent:
        buffer = self._buffer(inbox.id, expires_at=inbox.expires_at)
        stored = event.model_copy()
        with buffer.lock:
            bisect.insort(buffer.events, stored, key=_order_key)
            buffer.unread += 1
            overflow = len(buffer.events) - capacity
            if overflow > 0:
                del buffer.events[:overflow]
                log.debug("events.trimmed", inbox_id=inbox.id, evicted=overflow, adapter="memory")
        return stored.model_copy()

    async def read_events(self, inbox_id: str, options: QueryOptions) -> list[WebhookEvent]:
        buffer = self._buffer(inbox_id)
        if buffer is None:
            return []

        with buffer.lock:
            snapshot = buffer.unread
            selected = [
                e for e in buffer.events
                if (options.since is None or e.received_at >= options.since)
                and not (options.unread_only and e.read)
            ][:options.limit]

            if options.mark_read and selected:
                for event in selected:
                    event.read = True
                buffer.unread = max(0, buffer.unread - snapshot)

            return [e.model_copy() for e in selected]

    async def recent_events(self, inbox_id: str, count: int) -> list[WebhookEvent]:
        buffer = self._buffer(inbox_id)
        if buffer is None or count <= 0:
            return []
        with buffer.lock:
            return [e.model_copy() for e in buffer.events[-count:]]

    async def counts(self, inbox_id: str) -> EventCounts:
        buffer = self._buffer(inbox_id)
        if buffer is None:
            return EventCounts()
        with buffer.lock:
            total = len(buffer.events)
            return EventCounts(total=total, unread=min(buffer.unread, total))

    async def sweep(self) -> int:
        with self._lock:
            now = self._clock.now()
            expired = [key for key, entry in self._records.items() if entry.expires_at <= now]
            for key in expired:
                del self._records[key]

        if expired:
            log.info("store.swept", removed=len(expired), adapter="memory")
        return len(expired)

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
