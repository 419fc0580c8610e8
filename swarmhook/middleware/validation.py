"""Request size validation middleware."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog
from .correlation import get_correlation_id
from ..errors import PayloadTooLargeError

log = structlog.get_logger()


class PayloadSizeMiddleware(BaseHTTPMiddleware):
    """
    Rejects POST/PUT/PATCH requests whose Content-Length exceeds the limit.

    Bodies sent without a Content-Length are measured again by the service
    before anything is stored.
    """

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
                size = int(content_length)
                log.warning(
                    "payload.too_large",
                    size=size,
                    max_size=self.max_bytes,
                    path=request.url.path
                )
                exc = PayloadTooLargeError(size, self.max_bytes)
                return JSONResponse(
                    status_code=exc.status_code,
                    content={
                        **exc.to_dict(),
                        "correlation_id": get_correlation_id(),
                        "path": str(request.url.path),
                    },
                )

        return await call_next(request)
