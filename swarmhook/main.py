"""
SwarmHook - Ephemeral webhook inboxes for agents.

Features:
- Inboxes that expire together with all of their events
- Immediate polling, long polling, SSE and WebSocket streaming
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
import asyncio
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .api.webhooks import router as webhooks_router
from .api.ws_router import router as ws_router
from .middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    PayloadSizeMiddleware,
    register_error_handlers,
)
from .metrics import VERSION, get_metrics
from .health import HealthChecker
from .services.inbox_service import InboxService, get_service

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)
logger = get_logger()

metrics = get_metrics()
health_checker = HealthChecker(service_name="swarmhook", version=VERSION)

app = FastAPI(
    title="SwarmHook",
    version=VERSION,
    description="Ephemeral webhook inboxes with polling, long polling and streaming",
)

# Last added runs first: correlation ID, then metrics, then size check
app.add_middleware(PayloadSizeMiddleware, max_bytes=settings.MAX_PAYLOAD_BYTES)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

register_error_handlers(app)

app.include_router(router)
app.include_router(webhooks_router)
app.include_router(ws_router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)

_sweeper: asyncio.Task | None = None


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready(service: InboxService = Depends(get_service)):
    """
    Readiness probe - comprehensive health check.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    result = await health_checker.readiness(service.store)
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(result, status_code=status_code)


async def _sweep_loop(service: InboxService, interval: float):
    """Periodically reclaim expired inbox state and refresh process metrics."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await service.sweep()
            metrics.update_system_metrics()
            logger.debug("sweep.completed", removed=removed)
        except Exception as e:
            logger.error("sweep.failed", error=str(e), exc_info=True)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.

    Logs service startup and starts the expiry sweeper.
    """
    global _sweeper
    service = app.dependency_overrides.get(get_service, get_service)()
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        store=type(service.store).__name__,
    )
    _sweeper = asyncio.create_task(_sweep_loop(service, settings.SWEEP_INTERVAL_SECONDS))


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.

    Stops the sweeper and releases the store.
    """
    global _sweeper
    logger.info("service_stopping")
    if _sweeper is not None:
        _sweeper.cancel()
        _sweeper = None
    app.dependency_overrides.get(get_service, get_service)().close()
    metrics.app_up.labels(service="swarmhook", version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "swarmhook.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
