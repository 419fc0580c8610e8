"""Per-inbox bounded, ordered event log."""
import structlog
from .registry import InboxRegistry
from ..clock import Clock, IdGenerator
from ..models import EventCounts, QueryOptions, WebhookEvent
from ..stores.base import InboxStore

log = structlog.get_logger()


class EventLog:
    """
    Stores received events per inbox and answers queries over them.

    Events are addressed through the inbox id only. Every operation first
    resolves the inbox, so a query against an expired inbox fails with
    InboxNotFound instead of returning an empty page.
    """

    def __init__(
        self,
        store: InboxStore,
        registry: InboxRegistry,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        capacity: int = 100,
    ):
        self._store = store
        self._registry = registry
        self._clock = clock or Clock()
        self._ids = ids or IdGenerator()
        self.capacity = capacity

    async def append(
        self,
        inbox_id: str,
        source_ip: str,
        headers: dict[str, str],
        body: bytes,
        content_type: str = "",
    ) -> WebhookEvent:
        """
        Store an event for an inbox.

        Args:
            inbox_id: Target inbox
            source_ip: Origin address of the producer
            headers: Captured request headers
            body: Opaque payload
            content_type: Content type recorded for boundary decoding

        Returns:
            The stored event with its id and sequence assigned

        Raises:
            InboxNotFound: If the inbox is absent or expired
        """
        inbox = await self._registry.resolve(inbox_id)
        event = WebhookEvent(
            id=self._ids.event_id(),
            seq=self._ids.next_sequence(),
            inbox_id=inbox_id,
            received_at=self._clock.now(),
            source_ip=source_ip,
            headers=headers,
            content_type=content_type,
            body=body,
        )
        return await self._store.append_event(inbox, event, self.capacity)

    async def query(self, inbox_id: str, options: QueryOptions) -> list[WebhookEvent]:
        """Return events matching ``options`` in ascending (received_at, seq) order."""
        await self._registry.resolve(inbox_id)
        if options.limit > self.capacity:
            options = options.model_copy(update={"limit": self.capacity})

        events = await self._store.read_events(inbox_id, options)
        if options.mark_read and events:
            log.info("events.marked_read", inbox_id=inbox_id, count=len(events))
        return events

    async def recent(self, inbox_id: str, count: int) -> list[WebhookEvent]:
        """Return the ``count`` most recent events, oldest first."""
        await self._registry.resolve(inbox_id)
        return await self._store.recent_events(inbox_id, min(count, self.capacity))

    async def counts(self, inbox_id: str) -> EventCounts:
        await self._registry.resolve(inbox_id)
        return await self._store.counts(inbox_id)
