"""
Health check endpoints for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import time
import psutil
from .logging import get_logger
from .stores.base import InboxStore

logger = get_logger()


class HealthChecker:
    """
    Health checker for the SwarmHook service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service handle traffic?)
    """

    def __init__(self, service_name: str = "swarmhook", version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version
        self._started = time.monotonic()

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(time.monotonic() - self._started, 2),
        }

    async def readiness(self, store: InboxStore) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Inbox store connectivity
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "store": await self._check_store(store),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }

    async def _check_store(self, store: InboxStore) -> Dict[str, Any]:
        start = time.time()
        healthy = await store.health_check()
        latency_ms = round((time.time() - start) * 1000, 2)
        if not healthy:
            logger.warning("store_health_check_failed", backend=type(store).__name__)
            return {"status": "error", "backend": type(store).__name__}
        return {"status": "ok", "backend": type(store).__name__, "latency_ms": latency_ms}

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
