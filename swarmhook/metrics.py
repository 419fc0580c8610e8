"""
Prometheus metrics for the SwarmHook service.
"""
from functools import lru_cache
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os

VERSION = "0.1.0"


class Metrics:
    """
    Centralized metrics for the SwarmHook service.
    """

    def __init__(self, service_name: str = "swarmhook", version: str = VERSION, registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics
        self.inboxes_created_total = Counter(
            "swarmhook_inboxes_created_total",
            "Total inboxes created",
            registry=self.registry,
        )

        self.webhooks_received_total = Counter(
            "swarmhook_webhooks_received_total",
            "Total webhook events stored",
            registry=self.registry,
        )

        self.webhook_size_bytes = Histogram(
            "swarmhook_webhook_size_bytes",
            "Webhook payload size in bytes",
            buckets=(256, 1024, 4096, 16384, 65536, 262144, 1048576),
            registry=self.registry,
        )

        self.polls_total = Counter(
            "swarmhook_polls_total",
            "Poll requests by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.streams_active = Gauge(
            "swarmhook_streams_active",
            "Number of open event streams",
            registry=self.registry,
        )

        self.rate_limited_total = Counter(
            "swarmhook_rate_limited_total",
            "Requests denied by the rate limiter",
            ["scope"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())

            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                num_fds = process.num_fds()
                self.process_open_fds.labels(service=self.service_name).set(num_fds)
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error:
            pass

    def record_inbox_created(self):
        self.inboxes_created_total.inc()

    def record_webhook(self, size_bytes: int):
        """Record a stored webhook event."""
        self.webhooks_received_total.inc()
        self.webhook_size_bytes.observe(size_bytes)

    def record_poll(self, outcome: str):
        self.polls_total.labels(outcome=outcome).inc()

    def record_rate_limited(self, scope: str):
        self.rate_limited_total.labels(scope=scope).inc()


@lru_cache(maxsize=1)
def get_metrics() -> Metrics:
    return Metrics()
