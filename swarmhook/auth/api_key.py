"""API key authentication for agents and inboxes."""
from fastapi import Depends, Security
from fastapi.security import APIKeyHeader
from typing import Optional
import structlog
from ..config import get_settings
from ..errors import UnauthorizedError
from ..services.inbox_service import InboxService, get_service

log = structlog.get_logger()
settings = get_settings()

# Agent keys and inbox credentials share the header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

ANONYMOUS_AGENT = "anonymous"


class AgentKeyRegistry:
    """
    In-memory agent key lookup.

    Agent registration lives outside this service; keys are loaded from the
    AGENT_API_KEYS setting as comma-separated ``key:agent_id`` pairs. A bare key
    is assigned the agent id ``default``.
    """

    def __init__(self, raw_keys: str | None = None):
        """Initialize agent key registry from configuration."""
        self._keys: dict[str, str] = {}
        self._load_keys(settings.AGENT_API_KEYS if raw_keys is None else raw_keys)

    def _load_keys(self, raw_keys: str):
        for entry in raw_keys.split(","):
            entry = entry.strip()
            if not entry:
                continue
            key, _, agent_id = entry.partition(":")
            self._keys[key.strip()] = agent_id.strip() or "default"

        log.info("agent_keys.loaded", count=len(self._keys))

    def validate(self, key: str) -> str | None:
        """
        Validate an agent key.

        Returns:
            Agent id owning the key, or None if the key is unknown
        """
        return self._keys.get(key)

    def count(self) -> int:
        """Get total number of registered keys."""
        return len(self._keys)


# Global registry instance
registry = AgentKeyRegistry()


async def verify_agent_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency resolving the calling agent from the X-API-Key header.

    Returns:
        Agent id (``anonymous`` when no agent keys are configured)

    Raises:
        UnauthorizedError: If the key is missing or unknown
    """
    # If no keys are configured, skip authentication
    if registry.count() == 0:
        log.debug("auth.skipped", reason="no_keys_configured")
        return ANONYMOUS_AGENT

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise UnauthorizedError("Missing API key. Provide X-API-Key header.")

    agent_id = registry.validate(api_key)
    if agent_id is None:
        log.warning("auth.failed", reason="invalid_agent_key")
        raise UnauthorizedError("Invalid API key")

    return agent_id


async def verify_inbox_key(
    inbox_id: str,
    api_key: Optional[str] = Security(api_key_header),
    service: InboxService = Depends(get_service),
) -> str:
    """
    Dependency checking the X-API-Key header is the credential of ``inbox_id``.

    Returns:
        The authenticated inbox id
    """
    return await service.authorize(api_key, inbox_id)
