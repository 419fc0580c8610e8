"""Error taxonomy shared by the core services and the HTTP boundary."""
from datetime import datetime
from typing import Any


class SwarmhookError(Exception):
    """
    Base class for errors reported to callers.

    Each subclass carries the HTTP status it maps to and a stable error code
    used in structured error responses.
    """

    status_code: int = 500
    error: str = "InternalError"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "status_code": self.status_code,
            **self.detail,
        }


class NotFoundError(SwarmhookError):
    status_code = 404
    error = "NotFound"


class InboxNotFound(NotFoundError):
    """Inbox is absent or expired; the two cases are indistinguishable."""

    def __init__(self, inbox_id: str | None = None):
        super().__init__("Inbox not found or expired")
        self.inbox_id = inbox_id


class UnauthorizedError(SwarmhookError):
    status_code = 401
    error = "Unauthorized"


class ForbiddenError(SwarmhookError):
    status_code = 403
    error = "Forbidden"


class InvalidArgumentError(SwarmhookError):
    status_code = 400
    error = "InvalidArgument"


class InvalidTTLError(InvalidArgumentError):
    error = "InvalidTTL"


class PayloadTooLargeError(SwarmhookError):
    status_code = 413
    error = "PayloadTooLarge"

    def __init__(self, size: int, max_size: int):
        super().__init__(
            f"Request payload exceeds maximum size of {max_size} bytes",
            max_size=max_size,
            received_size=size,
        )


class RateLimitedError(SwarmhookError):
    status_code = 429
    error = "RateLimited"

    def __init__(self, limit: int, reset_at: datetime, retry_after: int):
        super().__init__(
            "Rate limit exceeded",
            limit=limit,
            reset_at=reset_at.isoformat(),
            retry_after=retry_after,
        )
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = retry_after


class InternalError(SwarmhookError):
    status_code = 500
    error = "Internal"


class StoreUnavailableError(InternalError):
    """The backing store could not complete an operation."""

    status_code = 503
    error = "StoreUnavailable"
