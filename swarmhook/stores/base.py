"""Base interface for inbox storage backends."""
from abc import ABC, abstractmethod
from ..models import EventCounts, Inbox, QueryOptions, WebhookEvent


class InboxStore(ABC):
    """
    Abstract interface for inbox storage implementations.

    A backend persists four related records per inbox: the inbox record, the
    credential mapping, the ordered event collection and the unread counter.
    All four must carry the inbox's ``expires_at`` as their deadline, and a
    record read past that deadline must be reported as absent.
    """

    @abstractmethod
    async def save_inbox(self, inbox: Inbox) -> None:
        """
        Store the inbox record and its credential mapping.

        Args:
            inbox: Inbox to store; its expires_at is the deadline of both records
        """
        pass

    @abstractmethod
    async def load_inbox(self, inbox_id: str) -> Inbox | None:
        """
        Load an inbox record.

        Returns:
            The inbox, or None if absent or expired
        """
        pass

    @abstractmethod
    async def lookup_credential(self, credential: str) -> str | None:
        """
        Map an inbox credential to its inbox id.

        Returns:
            Inbox id, or None if unknown or expired
        """
        pass

    @abstractmethod
    async def append_event(self, inbox: Inbox, event: WebhookEvent, capacity: int) -> WebhookEvent:
        """
        Insert an event in (received_at, seq) order and bump the unread counter.

        The event log and counter are provisioned with the inbox deadline.
        Oldest events beyond ``capacity`` are evicted.

        Returns:
            The stored event
        """
        pass

    @abstractmethod
    async def read_events(self, inbox_id: str, options: QueryOptions) -> list[WebhookEvent]:
        """
        Read events in ascending order, optionally marking them read.

        Marking read and resetting the unread counter happen as one step:
        the counter drops by the value observed when the events were read,
        so appends racing with the reset are still counted.
        """
        pass

    @abstractmethod
    async def recent_events(self, inbox_id: str, count: int) -> list[WebhookEvent]:
        """Return the ``count`` most recent events in ascending order."""
        pass

    @abstractmethod
    async def counts(self, inbox_id: str) -> EventCounts:
        """Return total and unread counts for an inbox."""
        pass

    @abstractmethod
    async def sweep(self) -> int:
        """
        Reclaim storage held by expired records.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass

    def close(self):
        """Release backend resources."""
