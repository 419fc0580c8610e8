"""Redis inbox store.

Layout per inbox, every key expiring at the same absolute deadline (PXAT):

    {prefix}inbox:{id}          JSON inbox record
    {prefix}apikey:{credential} inbox id
    {prefix}events:{id}         sorted set of events scored by received_at (us)
    {prefix}unread:{id}         integer counter
"""
import asyncio
import base64
from datetime import datetime
import structlog
import orjson
from redis import Redis
from redis.exceptions import RedisError, WatchError
from .base import InboxStore
from ..config import get_settings
from ..errors import StoreUnavailableError
from ..models import EventCounts, Inbox, QueryOptions, WebhookEvent

log = structlog.get_logger()
settings = get_settings()


def _score(ts: datetime) -> int:
    return int(ts.timestamp() * 1_000_000)


def _deadline_ms(inbox: Inbox) -> int:
    return int(inbox.expires_at.timestamp() * 1000)


def encode_event(event: WebhookEvent) -> bytes:
    """
    Sorted-set member for an event.

    Members sharing a score are ranked by their bytes, so the zero-padded
    sequence prefix keeps rank order equal to (received_at, seq).
    """
    data = event.model_dump(mode="json", exclude={"body"})
    data["body"] = base64.b64encode(event.body).decode("ascii")
    return b"%020d:" % event.seq + orjson.dumps(data)


def decode_event(raw: bytes) -> WebhookEvent:
    _, _, payload = raw.partition(b":")
    data = orjson.loads(payload)
    data["body"] = base64.b64decode(data.get("body", ""))
    return WebhookEvent.model_validate(data)


class RedisStore(InboxStore):
    """Redis implementation of the inbox store.

    Calls use a synchronous client run in worker threads so the event loop
    keeps serving waiters. The unread reset uses WATCH/MULTI so it only
    applies when no append raced with the read.
    """

    def __init__(self, redis_url: str | None = None, key_prefix: str | None = None, max_retries: int = 5):
        """
        Initialize Redis store.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            key_prefix: Prefix for every key (defaults to settings.REDIS_KEY_PREFIX)
            max_retries: Attempts for optimistic mark-read transactions
        """
        self.redis_url = redis_url or str(settings.REDIS_URL)
        self._prefix = settings.REDIS_KEY_PREFIX if key_prefix is None else key_prefix
        self._max_retries = max_retries
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    def _key(self, kind: str, ident: str) -> str:
        return f"{self._prefix}{kind}:{ident}"

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except RedisError as e:
            log.error("redis.operation_failed", operation=operation, error=str(e))
            raise StoreUnavailableError(f"Store unavailable during {operation}") from e

    async def save_inbox(self, inbox: Inbox) -> None:
        await self._run("save_inbox", self._save_inbox, inbox)

    def _save_inbox(self, inbox: Inbox):
        deadline = _deadline_ms(inbox)
        pipe = self._get_client().pipeline(transaction=True)
        pipe.set(self._key("inbox", inbox.id), orjson.dumps(inbox.model_dump(mode="json")), pxat=deadline)
        pipe.set(self._key("apikey", inbox.api_key), inbox.id, pxat=deadline)
        pipe.execute()

    async def load_inbox(self, inbox_id: str) -> Inbox | None:
        raw = await self._run("load_inbox", self._get_client().get, self._key("inbox", inbox_id))
        if raw is None:
            return None
        return Inbox.model_validate(orjson.loads(raw))

    async def lookup_credential(self, credential: str) -> str | None:
        raw = await self._run("lookup_credential", self._get_client().get, self._key("apikey", credential))
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    async def append_event(self, inbox: Inbox, event: WebhookEvent, capacity: int) -> WebhookEvent:
        await self._run("append_event", self._append_event, inbox, event, capacity)
        log.debug("event.stored", id=event.id, inbox_id=inbox.id, adapter="redis")
        return event

    def _append_event(self, inbox: Inbox, event: WebhookEvent, capacity: int):
        deadline = _deadline_ms(inbox)
        events_key = self._key("events", inbox.id)
        unread_key = self._key("unread", inbox.id)

        # An already-passed deadline makes PEXPIREAT delete the keys at once
        pipe = self._get_client().pipeline(transaction=True)
        pipe.zadd(events_key, {encode_event(event): _score(event.received_at)})
        pipe.pexpireat(events_key, deadline)
        pipe.zremrangebyrank(events_key, 0, -(capacity + 1))
        pipe.incr(unread_key)
        pipe.pexpireat(unread_key, deadline)
        pipe.execute()

    @staticmethod
    def _select(entries, options: QueryOptions) -> list[tuple[bytes, float, WebhookEvent]]:
        decoded = [(member, score, decode_event(member)) for member, score in entries]
        decoded.sort(key=lambda item: item[2].order_key)
        if options.unread_only:
            decoded = [item for item in decoded if not item[2].read]
        return decoded[:options.limit]

    async def read_events(self, inbox_id: str, options: QueryOptions) -> list[WebhookEvent]:
        return await self._run("read_events", self._read_events, inbox_id, options)

    def _read_events(self, inbox_id: str, options: QueryOptions) -> list[WebhookEvent]:
        client = self._get_client()
        events_key = self._key("events", inbox_id)
        unread_key = self._key("unread", inbox_id)
        min_score = _score(options.since) if options.since else "-inf"

        if not options.mark_read:
            entries = client.zrangebyscore(events_key, min_score, "+inf", withscores=True)
            return [event for _, _, event in self._select(entries, options)]

        with client.pipeline() as pipe:
            for _ in range(self._max_retries):
                try:
                    pipe.watch(events_key, unread_key)
                    snapshot = pipe.get(unread_key)
                    entries = pipe.zrangebyscore(events_key, min_score, "+inf", withscores=True)
                    selected = self._select(entries, options)

                    pipe.multi()
                    for member, score, event in selected:
                        if event.read:
                            continue
                        event.read = True
                        pipe.zrem(events_key, member)
                        pipe.zadd(events_key, {encode_event(event): score})
                    # DECRBY keeps the key's deadline where SET would drop it
                    if selected and snapshot is not None and int(snapshot) > 0:
                        pipe.decrby(unread_key, int(snapshot))
                    pipe.execute()
                    return [event for _, _, event in selected]
                except WatchError:
                    log.debug("redis.mark_read_retry", inbox_id=inbox_id)
                    continue

        raise StoreUnavailableError("Concurrent updates prevented marking events read")

    async def recent_events(self, inbox_id: str, count: int) -> list[WebhookEvent]:
        if count <= 0:
            return []
        entries = await self._run(
            "recent_events", self._get_client().zrange, self._key("events", inbox_id), -count, -1
        )
        events = [decode_event(member) for member in entries]
        events.sort(key=lambda e: e.order_key)
        return events

    async def counts(self, inbox_id: str) -> EventCounts:
        return await self._run("counts", self._counts, inbox_id)

    def _counts(self, inbox_id: str) -> EventCounts:
        pipe = self._get_client().pipeline(transaction=False)
        pipe.zcard(self._key("events", inbox_id))
        pipe.get(self._key("unread", inbox_id))
        total, unread = pipe.execute()
        total = int(total or 0)
        unread = int(unread or 0)
        return EventCounts(total=total, unread=max(0, min(unread, total)))

    async def sweep(self) -> int:
        """Redis expires keys natively."""
        return 0

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            client = self._get_client()
            return bool(await asyncio.to_thread(client.ping))
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
