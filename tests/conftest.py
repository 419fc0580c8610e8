"""Shared fixtures."""
from datetime import timedelta
import pytest
from swarmhook.clock import Clock
from swarmhook.config import Settings
from swarmhook.services.inbox_service import InboxService, get_service
from swarmhook.stores.memory import MemoryStore


class FakeClock(Clock):
    """Real clock shifted by an adjustable offset; monotonic time is untouched."""

    def __init__(self):
        self._offset = timedelta(0)

    def now(self):
        return super().now() + self._offset

    def advance(self, **kwargs):
        self._offset += timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = dict(
        MAX_EVENTS_PER_INBOX=100,
        DEFAULT_QUERY_LIMIT=50,
        RATE_LIMIT_PER_MINUTE=10_000,
        WEBHOOK_RATE_LIMIT_PER_MINUTE=10_000,
        STREAM_KEEPALIVE_SECONDS=0.2,
        STREAM_MAX_SESSION_SECONDS=1.0,
        MAX_WAIT_SECONDS=60,
        BASE_URL="https://hooks.test",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def service(settings, store, clock):
    return InboxService(settings, store=store, clock=clock)


@pytest.fixture
def make_service(store, clock):
    """Build a service over the shared store and clock with settings overrides."""

    def factory(metrics=None, **overrides):
        return InboxService(make_settings(**overrides), store=store, clock=clock, metrics=metrics)

    return factory


@pytest.fixture
def app_service(service):
    """Route the FastAPI app to the test service."""
    from swarmhook.main import app

    app.dependency_overrides[get_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_service, None)
