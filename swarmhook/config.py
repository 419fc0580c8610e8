from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    BASE_URL: str = "http://localhost:8080"
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    # Storage backend selection: "memory" or "redis"
    STORE_ADAPTER: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None
    REDIS_KEY_PREFIX: str = "swarmhook:"
    # Inbox lifetime bounds (hours)
    DEFAULT_TTL_HOURS: float = 24
    MIN_TTL_HOURS: float = 1
    MAX_TTL_HOURS: float = 48
    # Event log
    MAX_EVENTS_PER_INBOX: int = 100
    DEFAULT_QUERY_LIMIT: int = 50
    MAX_PAYLOAD_BYTES: int = 1024 * 1024
    # Long polling and streaming
    MAX_WAIT_SECONDS: float = 60
    STREAM_SNAPSHOT_SIZE: int = 10
    STREAM_KEEPALIVE_SECONDS: float = 30
    STREAM_MAX_SESSION_SECONDS: float = 300
    STREAM_QUEUE_SIZE: int = 100
    # Rate limiting (fixed window)
    RATE_LIMIT_PER_MINUTE: int = 60
    WEBHOOK_RATE_LIMIT_PER_MINUTE: int = 600
    RATE_LIMIT_WINDOW_SECONDS: float = 60
    # Agent keys: comma-separated "key:agent_id" pairs
    AGENT_API_KEYS: str = ""
    SWEEP_INTERVAL_SECONDS: float = 60

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
