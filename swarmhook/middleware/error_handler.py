"""Structured error responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog
from .correlation import get_correlation_id
from ..errors import RateLimitedError, SwarmhookError, UnauthorizedError

log = structlog.get_logger()


async def swarmhook_error_handler(request: Request, exc: SwarmhookError) -> JSONResponse:
    correlation_id = get_correlation_id()
    log_method = log.error if exc.status_code >= 500 else log.warning
    log_method(
        "request.failed",
        error=exc.error,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
    )

    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = "0"
    elif isinstance(exc, UnauthorizedError):
        headers["WWW-Authenticate"] = "ApiKey"

    return JSONResponse(
        status_code=exc.status_code,
        content={
            **exc.to_dict(),
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
        headers=headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = get_correlation_id()
    log.error(
        "unhandled.exception",
        error=str(exc),
        error_type=exc.__class__.__name__,
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(SwarmhookError, swarmhook_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
