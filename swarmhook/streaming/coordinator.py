"""Continuous push sessions over the notification bus."""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator
import structlog
from ..clock import Clock
from ..metrics import Metrics
from ..models import Inbox, WebhookEvent
from ..services.event_log import EventLog
from ..services.notifications import NotificationBus, Subscription
from ..services.registry import InboxRegistry

log = structlog.get_logger()

WEBHOOK = "webhook"
KEEPALIVE = "keepalive"
CLOSED = "closed"


@dataclass
class StreamMessage:
    kind: str
    event: WebhookEvent | None = None
    timestamp: datetime | None = None
    reason: str | None = None


class StreamSession:
    """
    One open push channel for one inbox.

    Iterating ``messages`` subscribes to the bus, replays a snapshot of the
    most recent events, then forwards every publish. Keep-alives are emitted
    on a fixed interval. The session ends on disconnect, at the maximum
    session duration, or when the inbox expires; the subscription is removed
    on every exit path.
    """

    def __init__(self, coordinator: "StreamCoordinator", inbox: Inbox):
        self.inbox = inbox
        self._coordinator = coordinator
        self._subscription: Subscription | None = None
        self._opened = False

    @property
    def inbox_id(self) -> str:
        return self.inbox.id

    async def messages(self, disconnected: asyncio.Event | None = None) -> AsyncIterator[StreamMessage]:
        """
        Yield stream messages until the session ends.

        Args:
            disconnected: Set by the transport when the client goes away
        """
        c = self._coordinator
        clock = c.clock
        self._subscription = subscription = c.bus.listen(self.inbox.id)
        self._opened = True
        if c.metrics:
            c.metrics.streams_active.inc()
        log.info("stream.opened", inbox_id=self.inbox.id)

        reason = "disconnected"
        try:
            snapshot = await c.event_log.recent(self.inbox.id, c.snapshot_size)
            seen = {event.id for event in snapshot}
            for event in snapshot:
                yield StreamMessage(WEBHOOK, event=event)

            start = clock.monotonic()
            lifetime = self.inbox.remaining_seconds(clock.now())
            expires_first = lifetime <= c.max_session_seconds
            deadline = start + min(lifetime, c.max_session_seconds)
            next_keepalive = start + c.keepalive_seconds

            while True:
                if disconnected is not None and disconnected.is_set():
                    return

                now = clock.monotonic()
                if now >= deadline:
                    reason = "inbox_expired" if expires_first else "max_duration"
                    yield StreamMessage(CLOSED, timestamp=clock.now(), reason=reason)
                    return

                if now >= next_keepalive:
                    next_keepalive = now + c.keepalive_seconds
                    yield StreamMessage(KEEPALIVE, timestamp=clock.now())
                    continue

                event = await self._next_event(subscription, disconnected, min(deadline, next_keepalive) - now)
                if event is None or event.id in seen:
                    continue
                yield StreamMessage(WEBHOOK, event=event)
        finally:
            self.close()
            log.info("stream.closed", inbox_id=self.inbox.id, reason=reason)

    @staticmethod
    async def _next_event(
        subscription: Subscription,
        disconnected: asyncio.Event | None,
        timeout: float,
    ) -> WebhookEvent | None:
        if disconnected is None:
            try:
                return await asyncio.wait_for(subscription.get(), timeout)
            except asyncio.TimeoutError:
                return None

        get_task = asyncio.ensure_future(subscription.get())
        disconnect_task = asyncio.ensure_future(disconnected.wait())
        try:
            await asyncio.wait(
                {get_task, disconnect_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_task, disconnect_task):
                if not task.done():
                    task.cancel()

        if get_task.done() and not get_task.cancelled():
            return get_task.result()
        return None

    def close(self):
        """Release the bus subscription. Idempotent."""
        if self._subscription is not None and not self._subscription.closed:
            self._subscription.close()
        if self._opened:
            self._opened = False
            if self._coordinator.metrics:
                self._coordinator.metrics.streams_active.dec()


class StreamCoordinator:
    """Opens stream sessions for live inboxes."""

    def __init__(
        self,
        event_log: EventLog,
        bus: NotificationBus,
        registry: InboxRegistry,
        clock: Clock | None = None,
        snapshot_size: int = 10,
        keepalive_seconds: float = 30,
        max_session_seconds: float = 300,
        metrics: Metrics | None = None,
    ):
        self.event_log = event_log
        self.bus = bus
        self.registry = registry
        self.clock = clock or Clock()
        self.snapshot_size = snapshot_size
        self.keepalive_seconds = keepalive_seconds
        self.max_session_seconds = max_session_seconds
        self.metrics = metrics

    async def open(self, inbox_id: str) -> StreamSession:
        """
        Validate the inbox and create a session for it.

        Raises:
            InboxNotFound: If the inbox is absent or expired
        """
        inbox = await self.registry.resolve(inbox_id)
        return StreamSession(self, inbox)
