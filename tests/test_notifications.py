"""Tests for the per-inbox notification bus."""
import asyncio
from datetime import datetime, timezone
import pytest
from swarmhook.models import WebhookEvent
from swarmhook.services.notifications import NotificationBus


def _event(inbox_id="inbox_a", seq=1):
    return WebhookEvent(
        id=f"evt_{seq}",
        seq=seq,
        inbox_id=inbox_id,
        received_at=datetime.now(timezone.utc),
    )


class TestWaiters:
    """One-shot waiters"""

    @pytest.mark.asyncio
    async def test_publish_wakes_waiter(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")

        assert bus.publish("inbox_a", _event()) == 1
        assert waiter.woken
        assert (await waiter.wait(1)).id == "evt_1"

    @pytest.mark.asyncio
    async def test_publish_clears_waiters(self):
        bus = NotificationBus()
        bus.subscribe("inbox_a")
        bus.subscribe("inbox_a")
        assert bus.waiter_count("inbox_a") == 2

        assert bus.publish("inbox_a", _event()) == 2
        assert bus.waiter_count("inbox_a") == 0

    @pytest.mark.asyncio
    async def test_publish_is_scoped_to_inbox(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")

        assert bus.publish("inbox_b", _event("inbox_b")) == 0
        assert not waiter.woken
        assert await waiter.wait(0.05) is None

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")

        start = asyncio.get_running_loop().time()
        assert await waiter.wait(0.1) is None
        assert asyncio.get_running_loop().time() - start >= 0.09

    @pytest.mark.asyncio
    async def test_publish_without_waiters(self):
        bus = NotificationBus()
        assert bus.publish("inbox_a", _event()) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")

        bus.unsubscribe(waiter)
        bus.unsubscribe(waiter)

        assert bus.waiter_count() == 0
        assert bus.publish("inbox_a", _event()) == 0

    @pytest.mark.asyncio
    async def test_publish_from_another_task(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")

        async def later():
            await asyncio.sleep(0.05)
            bus.publish("inbox_a", _event())

        task = asyncio.create_task(later())
        event = await waiter.wait(2)
        await task
        assert event is not None


class TestSubscriptions:
    """Persistent subscriptions"""

    @pytest.mark.asyncio
    async def test_subscription_receives_every_publish(self):
        bus = NotificationBus()
        subscription = bus.listen("inbox_a")

        for seq in range(1, 4):
            bus.publish("inbox_a", _event(seq=seq))

        assert subscription.pending() == 3
        received = [(await subscription.get()).seq for _ in range(3)]
        assert received == [1, 2, 3]
        assert bus.subscription_count("inbox_a") == 1

    @pytest.mark.asyncio
    async def test_close_removes_subscription(self):
        bus = NotificationBus()
        subscription = bus.listen("inbox_a")

        subscription.close()
        subscription.close()

        assert subscription.closed
        assert bus.subscription_count() == 0
        assert bus.publish("inbox_a", _event()) == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        bus = NotificationBus(queue_size=2)
        subscription = bus.listen("inbox_a")

        delivered = [bus.publish("inbox_a", _event(seq=seq)) for seq in range(1, 4)]

        assert delivered == [1, 1, 0]
        assert subscription.dropped == 1
        assert subscription.pending() == 2

    @pytest.mark.asyncio
    async def test_waiters_and_subscriptions_together(self):
        bus = NotificationBus()
        waiter = bus.subscribe("inbox_a")
        subscription = bus.listen("inbox_a")

        assert bus.publish("inbox_a", _event()) == 2
        assert waiter.woken
        assert subscription.pending() == 1
