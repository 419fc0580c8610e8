"""Time source and identifier generation."""
import itertools
import secrets
import string
import threading
import time
from datetime import datetime, timezone

from .errors import InvalidArgumentError

_ALPHABET = string.ascii_letters + string.digits + "_-"


class Clock:
    """Wall-clock and monotonic time source."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class IdGenerator:
    """
    Collision-resistant identifiers plus a process-wide event sequence.

    The sequence breaks ties between events received within the same clock
    quantum.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    @staticmethod
    def token(size: int) -> str:
        return "".join(secrets.choice(_ALPHABET) for _ in range(size))

    def inbox_id(self) -> str:
        return f"inbox_{self.token(16)}"

    def credential(self) -> str:
        return f"iwh_{self.token(32)}"

    def event_id(self) -> str:
        return f"evt_{self.token(12)}"

    def next_sequence(self) -> int:
        with self._lock:
            return next(self._counter)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. A trailing ``Z`` is accepted.

    Raises:
        InvalidArgumentError: If the value cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidArgumentError(f"Invalid timestamp: {value!r}", field="since")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
