"""Tests for the per-inbox event log."""
import pytest
from swarmhook.errors import InboxNotFound, InvalidArgumentError
from swarmhook.models import QueryOptions


async def _append(service, inbox_id, n, start=0):
    events = []
    for i in range(start, start + n):
        events.append(
            await service.event_log.append(
                inbox_id, "10.0.0.1", {"x-index": str(i)}, f'{{"i": {i}}}'.encode(), "application/json"
            )
        )
    return events


class TestAppend:
    """Appending events"""

    @pytest.mark.asyncio
    async def test_append_assigns_identity(self, service):
        inbox = await service.registry.create("agent_1")
        event = await service.event_log.append(inbox.id, "10.0.0.1", {"a": "b"}, b"hello", "text/plain")

        assert event.id.startswith("evt_")
        assert event.seq > 0
        assert event.inbox_id == inbox.id
        assert event.read is False
        assert event.body == b"hello"

    @pytest.mark.asyncio
    async def test_append_to_missing_inbox(self, service):
        with pytest.raises(InboxNotFound):
            await service.event_log.append("inbox_nope", "10.0.0.1", {}, b"x")

    @pytest.mark.asyncio
    async def test_sequences_increase(self, service):
        inbox = await service.registry.create("agent_1")
        events = await _append(service, inbox.id, 5)
        seqs = [e.seq for e in events]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 5

    @pytest.mark.asyncio
    async def test_counts(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 3)

        counts = await service.event_log.counts(inbox.id)
        assert counts.total == 3
        assert counts.unread == 3

    @pytest.mark.asyncio
    async def test_counts_for_untouched_inbox(self, service):
        inbox = await service.registry.create("agent_1")
        counts = await service.event_log.counts(inbox.id)
        assert (counts.total, counts.unread) == (0, 0)


class TestOrderingAndCapacity:
    """Ordering and bounded retention"""

    @pytest.mark.asyncio
    async def test_query_returns_ascending_order(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 30)

        events = await service.event_log.query(inbox.id, QueryOptions.build(limit=100))
        keys = [e.order_key for e in events]
        assert keys == sorted(keys)
        assert [e.headers["x-index"] for e in events] == [str(i) for i in range(30)]

    @pytest.mark.asyncio
    async def test_capacity_evicts_oldest(self, service):
        inbox = await service.registry.create("agent_1")
        first = (await _append(service, inbox.id, 1))[0]
        await _append(service, inbox.id, 100, start=1)

        events = await service.event_log.query(inbox.id, QueryOptions.build(limit=1000))
        assert len(events) == 100
        assert first.id not in {e.id for e in events}
        assert events[0].headers["x-index"] == "1"
        assert events[-1].headers["x-index"] == "100"

    @pytest.mark.asyncio
    async def test_capacity_plus_k(self, make_service):
        svc = make_service(MAX_EVENTS_PER_INBOX=5)
        inbox = await svc.registry.create("agent_1")
        await _append(svc, inbox.id, 8)

        events = await svc.event_log.query(inbox.id, QueryOptions.build(limit=50))
        assert [e.headers["x-index"] for e in events] == ["3", "4", "5", "6", "7"]

        counts = await svc.event_log.counts(inbox.id)
        assert counts.total == 5
        assert counts.unread <= counts.total

    @pytest.mark.asyncio
    async def test_limit_is_capped_by_capacity(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 10)
        events = await service.event_log.query(inbox.id, QueryOptions(limit=10_000))
        assert len(events) == 10


class TestQueryFilters:
    """since, unread and limit filters"""

    @pytest.mark.asyncio
    async def test_default_limit(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 60)
        events = await service.event_log.query(inbox.id, QueryOptions.build())
        assert len(events) == 50
        assert events[0].headers["x-index"] == "0"

    @pytest.mark.asyncio
    async def test_since_is_inclusive(self, service):
        inbox = await service.registry.create("agent_1")
        events = await _append(service, inbox.id, 5)
        since = events[2].received_at

        result = await service.event_log.query(inbox.id, QueryOptions.build(since=since.isoformat()))
        assert all(e.received_at >= since for e in result)
        assert events[2].id in {e.id for e in result}

    @pytest.mark.asyncio
    async def test_since_in_future_returns_nothing(self, service, clock):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 3)
        future = clock.now().replace(year=clock.now().year + 1)
        assert await service.event_log.query(inbox.id, QueryOptions.build(since=future)) == []

    @pytest.mark.parametrize("value", ["yesterday", "2026-13-45T00:00:00Z", "12:00"])
    def test_unparseable_since(self, value):
        with pytest.raises(InvalidArgumentError):
            QueryOptions.build(since=value)

    def test_since_with_z_suffix(self):
        options = QueryOptions.build(since="2026-10-19T12:00:00Z")
        assert options.since.isoformat() == "2026-10-19T12:00:00+00:00"

    @pytest.mark.parametrize("limit", [0, -5])
    def test_non_positive_limit(self, limit):
        with pytest.raises(InvalidArgumentError):
            QueryOptions.build(limit=limit)

    @pytest.mark.asyncio
    async def test_query_missing_inbox(self, service):
        with pytest.raises(InboxNotFound):
            await service.event_log.query("inbox_missing", QueryOptions.build())


class TestMarkRead:
    """Read flags and the unread counter"""

    @pytest.mark.asyncio
    async def test_mark_read_resets_unread(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 3)

        events = await service.event_log.query(inbox.id, QueryOptions.build(mark_read=True))
        assert len(events) == 3
        assert all(e.read for e in events)
        assert (await service.event_log.counts(inbox.id)).unread == 0

        unread = await service.event_log.query(inbox.id, QueryOptions.build(unread_only=True))
        assert unread == []

    @pytest.mark.asyncio
    async def test_mark_read_twice_is_idempotent(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 2)

        for _ in range(2):
            await service.event_log.query(inbox.id, QueryOptions.build(mark_read=True))
            counts = await service.event_log.counts(inbox.id)
            assert counts.unread == 0

    @pytest.mark.asyncio
    async def test_appends_after_mark_read_are_counted(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 2)
        await service.event_log.query(inbox.id, QueryOptions.build(mark_read=True))

        await _append(service, inbox.id, 1, start=2)

        counts = await service.event_log.counts(inbox.id)
        assert counts.unread == 1
        unread = await service.event_log.query(inbox.id, QueryOptions.build(unread_only=True))
        assert [e.headers["x-index"] for e in unread] == ["2"]

    @pytest.mark.asyncio
    async def test_unread_filter_applies_before_limit(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 3)
        await service.event_log.query(inbox.id, QueryOptions.build(limit=2, mark_read=True))

        result = await service.event_log.query(inbox.id, QueryOptions.build(unread_only=True, limit=2))
        assert [e.headers["x-index"] for e in result] == ["2"]

    @pytest.mark.asyncio
    async def test_returned_events_are_copies(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 1)

        events = await service.event_log.query(inbox.id, QueryOptions.build())
        events[0].read = True

        assert (await service.event_log.query(inbox.id, QueryOptions.build(unread_only=True)))


class TestRecent:
    """Snapshot of the most recent events"""

    @pytest.mark.asyncio
    async def test_recent_returns_tail_in_order(self, service):
        inbox = await service.registry.create("agent_1")
        await _append(service, inbox.id, 15)

        recent = await service.event_log.recent(inbox.id, 10)
        assert [e.headers["x-index"] for e in recent] == [str(i) for i in range(5, 15)]

    @pytest.mark.asyncio
    async def test_recent_on_empty_inbox(self, service):
        inbox = await service.registry.create("agent_1")
        assert await service.event_log.recent(inbox.id, 10) == []
