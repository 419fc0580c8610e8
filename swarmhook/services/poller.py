"""Immediate and long polling on top of the event log and notification bus."""
import structlog
from .event_log import EventLog
from .notifications import NotificationBus
from .registry import InboxRegistry
from ..clock import Clock
from ..errors import InvalidArgumentError
from ..metrics import Metrics
from ..models import EventPage, QueryOptions

log = structlog.get_logger()


class PollCoordinator:
    """
    Implements ``poll`` with an optional bounded wait.

    The waiter is registered before unread events are re-checked, so an event
    stored between the check and the wait still wakes the caller.
    """

    def __init__(
        self,
        event_log: EventLog,
        bus: NotificationBus,
        registry: InboxRegistry,
        clock: Clock | None = None,
        max_wait_seconds: float = 60,
        metrics: Metrics | None = None,
    ):
        self._events = event_log
        self._bus = bus
        self._registry = registry
        self._clock = clock or Clock()
        self.max_wait_seconds = max_wait_seconds
        self._metrics = metrics

    async def poll(self, inbox_id: str, wait_seconds: float, options: QueryOptions) -> EventPage:
        """
        Return events, waiting up to ``wait_seconds`` for a new one when none are unread.

        The wait is capped at ``max_wait_seconds`` and at the inbox's remaining
        lifetime. A timeout is a normal outcome and returns the current result.

        Raises:
            InvalidArgumentError: If wait_seconds is negative
            InboxNotFound: If the inbox is absent or expired
        """
        if wait_seconds < 0:
            raise InvalidArgumentError("wait must not be negative", field="wait")

        outcome = "immediate"
        if wait_seconds > 0:
            outcome = await self._wait_for_event(inbox_id, wait_seconds)

        if self._metrics:
            self._metrics.record_poll(outcome)

        events = await self._events.query(inbox_id, options)
        counts = await self._events.counts(inbox_id)
        return EventPage(events=events, unread_count=counts.unread, total_count=counts.total)

    async def _wait_for_event(self, inbox_id: str, wait_seconds: float) -> str:
        waiter = self._bus.subscribe(inbox_id)
        try:
            counts = await self._events.counts(inbox_id)
            if counts.unread > 0:
                return "immediate"

            inbox = await self._registry.resolve(inbox_id)
            timeout = min(wait_seconds, self.max_wait_seconds, inbox.remaining_seconds(self._clock.now()))
            start = self._clock.monotonic()
            log.debug("poll.waiting", inbox_id=inbox_id, timeout=timeout)

            event = await waiter.wait(timeout)
            waited_ms = round((self._clock.monotonic() - start) * 1000, 2)
            if event is None:
                log.debug("poll.timeout", inbox_id=inbox_id, waited_ms=waited_ms)
                return "timeout"
            log.debug("poll.woken", inbox_id=inbox_id, event_id=event.id, waited_ms=waited_ms)
            return "woken"
        finally:
            self._bus.unsubscribe(waiter)
