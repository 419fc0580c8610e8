"""Storage backends for inbox state."""
import structlog
from .base import InboxStore
from .memory import MemoryStore
from .redis_store import RedisStore
from ..clock import Clock
from ..config import Settings

log = structlog.get_logger()


def create_store(settings: Settings, clock: Clock | None = None) -> InboxStore:
    """
    Create the store selected by the STORE_ADAPTER setting.

    Returns:
        InboxStore instance based on STORE_ADAPTER setting
    """
    if settings.STORE_ADAPTER == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "store.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return MemoryStore(clock=clock)

        log.info("store.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisStore(redis_url=str(settings.REDIS_URL), key_prefix=settings.REDIS_KEY_PREFIX)

    log.info("store.selected", type="memory")
    return MemoryStore(clock=clock)


__all__ = ["InboxStore", "MemoryStore", "RedisStore", "create_store"]
