"""Inbox registry: creation, resolution and expiry of inbox records."""
from datetime import timedelta
from typing import Any
import structlog
from ..clock import Clock, IdGenerator
from ..errors import InboxNotFound, InvalidTTLError
from ..models import Inbox
from ..stores.base import InboxStore

log = structlog.get_logger()


class InboxRegistry:
    """
    Owns inbox records and the credential-to-inbox mapping.

    Expiry is lazy: a record found past its deadline is reported exactly as an
    absent one. ``sweep`` only reclaims storage and is never needed for
    correctness.
    """

    def __init__(
        self,
        store: InboxStore,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        default_ttl_hours: float = 24,
        min_ttl_hours: float = 1,
        max_ttl_hours: float = 48,
    ):
        self._store = store
        self._clock = clock or Clock()
        self._ids = ids or IdGenerator()
        self.default_ttl_hours = default_ttl_hours
        self.min_ttl_hours = min_ttl_hours
        self.max_ttl_hours = max_ttl_hours

    async def create(
        self,
        owner: str,
        ttl_hours: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Inbox:
        """
        Create an inbox with a fresh id and credential.

        Args:
            owner: Opaque owner reference
            ttl_hours: Lifetime in hours (defaults to the configured default)
            metadata: Opaque owner-supplied data

        Returns:
            The stored inbox

        Raises:
            InvalidTTLError: If ttl_hours is outside the configured bounds
        """
        if ttl_hours is None:
            ttl_hours = self.default_ttl_hours
        if not self.min_ttl_hours <= ttl_hours <= self.max_ttl_hours:
            raise InvalidTTLError(
                f"ttl_hours must be between {self.min_ttl_hours} and {self.max_ttl_hours}",
                min_ttl_hours=self.min_ttl_hours,
                max_ttl_hours=self.max_ttl_hours,
            )

        created_at = self._clock.now()
        inbox = Inbox(
            id=self._ids.inbox_id(),
            agent_id=owner,
            api_key=self._ids.credential(),
            created_at=created_at,
            expires_at=created_at + timedelta(hours=ttl_hours),
            ttl_hours=ttl_hours,
            metadata=metadata,
        )
        await self._store.save_inbox(inbox)

        log.info(
            "inbox.created",
            inbox_id=inbox.id,
            agent_id=owner,
            ttl_hours=ttl_hours,
            expires_at=inbox.expires_at.isoformat(),
        )
        return inbox

    async def resolve(self, inbox_id: str) -> Inbox:
        """
        Return a live inbox.

        Raises:
            InboxNotFound: If the inbox is absent or past its deadline
        """
        inbox = await self._store.load_inbox(inbox_id)
        if inbox is None or inbox.is_expired(self._clock.now()):
            raise InboxNotFound(inbox_id)
        return inbox

    async def resolve_by_credential(self, credential: str) -> str:
        """
        Map a credential to a live inbox id.

        Raises:
            InboxNotFound: If the credential is unknown or its inbox expired
        """
        if not credential:
            raise InboxNotFound()
        inbox_id = await self._store.lookup_credential(credential)
        if inbox_id is None:
            raise InboxNotFound()
        # The mapping shares the record's deadline; confirm against the record
        await self.resolve(inbox_id)
        return inbox_id

    async def sweep(self) -> int:
        """Reclaim expired state from the store."""
        return await self._store.sweep()
