"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2026-10-19T04:30:00.123456Z",
    "level": "info",
    "service": "swarmhook",
    "correlation_id": "uuid-v4",
    "event": "webhook.received",
    "module": "swarmhook.services.inbox_service",
    "func_name": "receive_webhook",
    "lineno": 42,
    ...additional context...
}
"""
import structlog
import logging
from typing import Any

SERVICE_NAME = "swarmhook"


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add service name to all log entries."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(json_output: bool = True, level: str = "INFO"):
    """
    Configure structured logging with standardized fields.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        level: Minimum log level name (e.g. "INFO", "DEBUG").
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    shared_processors = [
        # Includes correlation_id bound by middleware
        structlog.contextvars.merge_contextvars,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
    )

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []


def get_logger():
    """Get a configured structlog logger."""
    return structlog.get_logger()
