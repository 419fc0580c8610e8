from .correlation import CorrelationIdMiddleware, get_correlation_id
from .error_handler import register_error_handlers
from .metrics import MetricsMiddleware
from .validation import PayloadSizeMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "MetricsMiddleware",
    "PayloadSizeMiddleware",
    "get_correlation_id",
    "register_error_handlers",
]
