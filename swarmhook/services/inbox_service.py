"""Inbox service: the operations exposed to the HTTP layer."""
from functools import lru_cache
from typing import Any
import structlog
import orjson
from .event_log import EventLog
from .notifications import NotificationBus
from .poller import PollCoordinator
from .rate_limit import Admission, FixedWindowRateLimiter
from .registry import InboxRegistry
from ..clock import Clock, IdGenerator
from ..config import Settings, get_settings
from ..errors import (
    ForbiddenError,
    InboxNotFound,
    InvalidArgumentError,
    PayloadTooLargeError,
    RateLimitedError,
    UnauthorizedError,
)
from ..metrics import Metrics, get_metrics
from ..models import EventPage, InboxDescriptor, InboxDetails, InboxStatus, QueryOptions, WebhookReceipt
from ..stores import InboxStore, create_store
from ..streaming.coordinator import StreamCoordinator, StreamSession

log = structlog.get_logger()


class InboxService:
    """
    Wires the registry, event log, bus, coordinators and rate limiters.

    Producers call ``receive_webhook``; consumers authenticate with the inbox
    credential and call ``poll_events`` or ``open_stream``.
    """

    def __init__(
        self,
        settings: Settings,
        store: InboxStore | None = None,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        metrics: Metrics | None = None,
    ):
        self.settings = settings
        self.clock = clock or Clock()
        self.ids = ids or IdGenerator()
        self.store = store or create_store(settings, self.clock)
        self.metrics = metrics

        self.registry = InboxRegistry(
            self.store,
            clock=self.clock,
            ids=self.ids,
            default_ttl_hours=settings.DEFAULT_TTL_HOURS,
            min_ttl_hours=settings.MIN_TTL_HOURS,
            max_ttl_hours=settings.MAX_TTL_HOURS,
        )
        self.event_log = EventLog(
            self.store,
            self.registry,
            clock=self.clock,
            ids=self.ids,
            capacity=settings.MAX_EVENTS_PER_INBOX,
        )
        self.bus = NotificationBus(queue_size=settings.STREAM_QUEUE_SIZE)
        self.poller = PollCoordinator(
            self.event_log,
            self.bus,
            self.registry,
            clock=self.clock,
            max_wait_seconds=settings.MAX_WAIT_SECONDS,
            metrics=metrics,
        )
        self.streams = StreamCoordinator(
            self.event_log,
            self.bus,
            self.registry,
            clock=self.clock,
            snapshot_size=settings.STREAM_SNAPSHOT_SIZE,
            keepalive_seconds=settings.STREAM_KEEPALIVE_SECONDS,
            max_session_seconds=settings.STREAM_MAX_SESSION_SECONDS,
            metrics=metrics,
        )
        self.api_limiter = FixedWindowRateLimiter(
            settings.RATE_LIMIT_PER_MINUTE, settings.RATE_LIMIT_WINDOW_SECONDS, clock=self.clock
        )
        self.webhook_limiter = FixedWindowRateLimiter(
            settings.WEBHOOK_RATE_LIMIT_PER_MINUTE, settings.RATE_LIMIT_WINDOW_SECONDS, clock=self.clock
        )

    def webhook_url(self, inbox_id: str) -> str:
        return f"{self.settings.BASE_URL.rstrip('/')}/in/{inbox_id}"

    def polling_url(self, inbox_id: str) -> str:
        return f"{self.settings.BASE_URL.rstrip('/')}/api/v1/inboxes/{inbox_id}/events"

    async def create_inbox(
        self,
        owner: str,
        ttl_hours: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InboxDescriptor:
        inbox = await self.registry.create(owner, ttl_hours=ttl_hours, metadata=metadata)
        if self.metrics:
            self.metrics.record_inbox_created()
        return InboxDescriptor(
            webhook_url=self.webhook_url(inbox.id),
            polling_url=self.polling_url(inbox.id),
            **inbox.model_dump(),
        )

    async def receive_webhook(
        self,
        inbox_id: str,
        origin: str,
        headers: dict[str, str],
        body: bytes,
        content_type: str = "",
    ) -> WebhookReceipt:
        """
        Store a pushed event and wake every waiter of the inbox.

        Raises:
            PayloadTooLargeError: If the body exceeds MAX_PAYLOAD_BYTES
            InvalidArgumentError: If a JSON content type carries an unparseable body
            InboxNotFound: If the inbox is absent or expired
        """
        max_size = self.settings.MAX_PAYLOAD_BYTES
        if len(body) > max_size:
            log.warning("payload.too_large", inbox_id=inbox_id, size=len(body), max_size=max_size)
            raise PayloadTooLargeError(len(body), max_size)

        if body and "application/json" in content_type.lower():
            try:
                orjson.loads(body)
            except orjson.JSONDecodeError:
                raise InvalidArgumentError("Invalid request body", field="body")

        event = await self.event_log.append(inbox_id, origin, headers, body, content_type)
        delivered = self.bus.publish(inbox_id, event)

        if self.metrics:
            self.metrics.record_webhook(len(body))
        log.info(
            "webhook.received",
            inbox_id=inbox_id,
            event_id=event.id,
            source_ip=origin,
            size=len(body),
            notified=delivered,
        )
        return WebhookReceipt(event_id=event.id, received_at=event.received_at)

    async def check_inbox_alive(self, inbox_id: str) -> InboxStatus:
        inbox = await self.registry.resolve(inbox_id)
        return InboxStatus(inbox_id=inbox.id, expires_at=inbox.expires_at)

    async def describe_inbox(self, inbox_id: str) -> InboxDetails:
        """Inbox details for its owner, without the credential."""
        inbox = await self.registry.resolve(inbox_id)
        return InboxDetails(
            webhook_url=self.webhook_url(inbox.id),
            polling_url=self.polling_url(inbox.id),
            **inbox.model_dump(exclude={"api_key"}),
        )

    async def authenticate(self, credential: str | None) -> str:
        """
        Resolve an inbox credential to its inbox id.

        Raises:
            UnauthorizedError: If the credential is missing, unknown or expired
        """
        if not credential:
            raise UnauthorizedError("Missing API key")
        try:
            return await self.registry.resolve_by_credential(credential)
        except InboxNotFound:
            log.warning("auth.failed", reason="invalid_inbox_key")
            raise UnauthorizedError("Invalid API key")

    async def authorize(self, credential: str | None, inbox_id: str | None = None) -> str:
        """
        Authenticate and check the credential belongs to ``inbox_id`` when given.

        Raises:
            UnauthorizedError: If the credential is invalid
            ForbiddenError: If the credential belongs to another inbox
        """
        auth_inbox_id = await self.authenticate(credential)
        if inbox_id is not None and inbox_id != auth_inbox_id:
            log.warning("auth.forbidden", inbox_id=inbox_id)
            raise ForbiddenError("API key does not grant access to this inbox")
        return auth_inbox_id

    def admit(self, limiter: FixedWindowRateLimiter, key: str, scope: str) -> Admission:
        """
        Count a request against ``limiter``.

        Raises:
            RateLimitedError: If the key's window is exhausted
        """
        admission = limiter.admit(key)
        if not admission.allowed:
            if self.metrics:
                self.metrics.record_rate_limited(scope)
            raise RateLimitedError(
                admission.limit, admission.reset_at, admission.retry_after(self.clock.now())
            )
        return admission

    async def poll_events(
        self,
        credential: str | None,
        inbox_id: str | None = None,
        unread: bool = False,
        since: str | None = None,
        limit: int | None = None,
        mark_read: bool = False,
        wait: float = 0,
    ) -> EventPage:
        inbox_id = await self.authorize(credential, inbox_id)
        return await self.poll_inbox(inbox_id, unread, since, limit, mark_read, wait)

    async def poll_inbox(
        self,
        inbox_id: str,
        unread: bool = False,
        since: str | None = None,
        limit: int | None = None,
        mark_read: bool = False,
        wait: float = 0,
    ) -> EventPage:
        """Poll an already authorized inbox."""
        options = QueryOptions.build(
            unread_only=unread,
            since=since,
            limit=limit,
            mark_read=mark_read,
            default_limit=self.settings.DEFAULT_QUERY_LIMIT,
            max_limit=self.settings.MAX_EVENTS_PER_INBOX,
        )
        return await self.poller.poll(inbox_id, wait, options)

    async def open_stream(self, credential: str | None, inbox_id: str | None = None) -> StreamSession:
        inbox_id = await self.authorize(credential, inbox_id)
        return await self.streams.open(inbox_id)

    async def sweep(self) -> int:
        """Reclaim expired inbox state and elapsed rate-limit windows."""
        removed = await self.registry.sweep()
        self.api_limiter.sweep()
        self.webhook_limiter.sweep()
        return removed

    async def health_check(self) -> bool:
        return await self.store.health_check()

    def close(self):
        self.store.close()


@lru_cache(maxsize=1)
def get_service() -> InboxService:
    return InboxService(get_settings(), metrics=get_metrics())
