"""In-process, per-inbox wake-up channel for long polls and streams."""
import asyncio
from collections import defaultdict
import structlog
from ..models import WebhookEvent

log = structlog.get_logger()


class Waiter:
    """One-shot registration: woken by the next publish for its inbox."""

    def __init__(self, inbox_id: str, future: asyncio.Future):
        self.inbox_id = inbox_id
        self._future = future

    @property
    def woken(self) -> bool:
        return self._future.done() and not self._future.cancelled()

    def _wake(self, event: WebhookEvent) -> bool:
        if self._future.done():
            return False
        self._future.set_result(event)
        return True

    def _cancel(self):
        if not self._future.done():
            self._future.cancel()

    async def wait(self, timeout: float | None) -> WebhookEvent | None:
        """
        Wait for the wake-up.

        Returns:
            The published event, or None if ``timeout`` elapsed first
        """
        if self.woken:
            return self._future.result()
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            return None


class Subscription:
    """Persistent registration receiving every publish until closed."""

    def __init__(self, bus: "NotificationBus", inbox_id: str, maxsize: int = 0):
        self.inbox_id = inbox_id
        self._bus = bus
        self._queue: asyncio.Queue[WebhookEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def _deliver(self, event: WebhookEvent) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning("subscription.queue_full", inbox_id=self.inbox_id, event_id=event.id)
            return False

    async def get(self) -> WebhookEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self):
        """Remove the subscription from the bus. Idempotent."""
        if not self.closed:
            self.closed = True
            self._bus._remove_subscription(self)


class NotificationBus:
    """
    Fan-out notifier scoped per inbox id.

    Registration and publish are plain synchronous calls on the event loop,
    so a publish issued after ``subscribe`` returns is always observed by
    that waiter. Waiters are cleared on publish; subscriptions persist until
    closed.
    """

    def __init__(self, queue_size: int = 0):
        self._waiters: dict[str, set[Waiter]] = defaultdict(set)
        self._subscriptions: dict[str, set[Subscription]] = defaultdict(set)
        self._queue_size = queue_size

    def subscribe(self, inbox_id: str) -> Waiter:
        """Register a one-shot waiter for the next publish on ``inbox_id``."""
        future = asyncio.get_running_loop().create_future()
        waiter = Waiter(inbox_id, future)
        self._waiters[inbox_id].add(waiter)
        return waiter

    def unsubscribe(self, waiter: Waiter):
        """Remove a waiter. Idempotent."""
        waiters = self._waiters.get(waiter.inbox_id)
        if waiters is not None:
            waiters.discard(waiter)
            if not waiters:
                del self._waiters[waiter.inbox_id]
        waiter._cancel()

    def listen(self, inbox_id: str) -> Subscription:
        """Register a persistent subscription for every publish on ``inbox_id``."""
        subscription = Subscription(self, inbox_id, maxsize=self._queue_size)
        self._subscriptions[inbox_id].add(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription):
        subscriptions = self._subscriptions.get(subscription.inbox_id)
        if subscriptions is not None:
            subscriptions.discard(subscription)
            if not subscriptions:
                del self._subscriptions[subscription.inbox_id]

    def publish(self, inbox_id: str, event: WebhookEvent) -> int:
        """
        Deliver an event to every waiter and subscription of an inbox.

        Returns:
            Number of registrations that received the event
        """
        delivered = 0
        waiters = self._waiters.pop(inbox_id, set())
        for waiter in waiters:
            if waiter._wake(event):
                delivered += 1

        for subscription in list(self._subscriptions.get(inbox_id, ())):
            if subscription._deliver(event):
                delivered += 1

        log.debug("bus.published", inbox_id=inbox_id, event_id=event.id, delivered=delivered)
        return delivered

    def waiter_count(self, inbox_id: str | None = None) -> int:
        if inbox_id is not None:
            return len(self._waiters.get(inbox_id, ()))
        return sum(len(w) for w in self._waiters.values())

    def subscription_count(self, inbox_id: str | None = None) -> int:
        if inbox_id is not None:
            return len(self._subscriptions.get(inbox_id, ()))
        return sum(len(s) for s in self._subscriptions.values())
