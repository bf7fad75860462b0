"""Prometheus export of health snapshots and HTTP request timings."""

import threading
from dataclasses import dataclass, field
from typing import Any

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from ..constants import CONSTANTS
from .models import HealthSnapshot, HealthStatus

logger = structlog.get_logger(__name__)

STATUS_VALUES = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0.0,
}


@dataclass
class MetricsConfig:
    """Configuration for metrics export."""

    enabled: bool = True
    process_metrics_enabled: bool = True
    duration_buckets: list[float] = field(
        default_factory=lambda: list(CONSTANTS.REQUEST_DURATION_BUCKETS)
    )
    content_type: str = CONSTANTS.PROMETHEUS_CONTENT_TYPE


class MetricsExporter:
    """Keeps Prometheus metrics in sync with health snapshots.

    Gauges are overwritten on every update. The request counters only move
    forward, by the difference between the snapshot totals and the totals
    seen at the previous update.
    """

    def __init__(self, config: MetricsConfig | None = None, registry: CollectorRegistry | None = None):
        """Initialize the exporter.

        Args:
            config: Exporter configuration
            registry: Registry to register metrics on (a new one by default)
        """
        self.config = config or MetricsConfig()
        self.registry = registry or CollectorRegistry()
        self.metrics: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._synced_requests = 0
        self._synced_errors = 0

        if self.config.process_metrics_enabled:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)

        self._initialize_prometheus()
        logger.debug("Metrics exporter initialized")

    def _initialize_prometheus(self) -> None:
        self.metrics["uptime"] = Gauge(
            "app_uptime_seconds", "Application uptime in seconds", registry=self.registry
        )
        self.metrics["memory_usage"] = Gauge(
            "app_memory_usage_bytes",
            "Approximate memory usage in bytes",
            ["type"],
            registry=self.registry,
        )
        self.metrics["memory_usage_percent"] = Gauge(
            "app_memory_usage_percent", "Approximate memory usage percentage", registry=self.registry
        )
        self.metrics["cpu_usage"] = Gauge(
            "app_cpu_usage_percent", "Process CPU usage percentage", registry=self.registry
        )
        self.metrics["response_time"] = Gauge(
            "app_response_time_ms", "Average response time in milliseconds", registry=self.registry
        )
        self.metrics["requests_per_second"] = Gauge(
            "app_requests_per_second", "Requests per second over uptime", registry=self.registry
        )
        self.metrics["db_connections"] = Gauge(
            "app_database_connections",
            "Database connections",
            ["type"],
            registry=self.registry,
        )
        self.metrics["disk_usage"] = Gauge(
            "app_disk_usage_percent", "Disk usage percentage", registry=self.registry
        )
        self.metrics["service_status"] = Gauge(
            "app_service_status",
            "Service status (1 healthy, 0.5 degraded, 0 unhealthy)",
            ["service"],
            registry=self.registry,
        )
        self.metrics["service_response_time"] = Gauge(
            "app_service_response_time_ms",
            "Service probe response time in milliseconds",
            ["service"],
            registry=self.registry,
        )
        self.metrics["health_status"] = Gauge(
            "app_health_status",
            "Overall health (1 healthy, 0.5 degraded, 0 unhealthy)",
            registry=self.registry,
        )
        self.metrics["requests_total"] = Counter(
            "app_requests_total", "Total number of requests", registry=self.registry
        )
        self.metrics["errors_total"] = Counter(
            "app_requests_errors_total", "Total number of error responses", registry=self.registry
        )
        self.metrics["request_duration"] = Histogram(
            "http_request_duration_ms",
            "HTTP request duration in milliseconds",
            ["method", "route", "status_code"],
            buckets=self.config.duration_buckets,
            registry=self.registry,
        )

    def observe_request(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        """Record one request in the duration histogram."""
        self.metrics["request_duration"].labels(
            method=method, route=route, status_code=str(status_code)
        ).observe(duration_ms)

    def update(self, snapshot: HealthSnapshot) -> None:
        """Copy a snapshot into the gauges and advance the counters."""
        metrics = snapshot.metrics
        requests = metrics.requests

        with self._lock:
            self.metrics["uptime"].set(metrics.uptime_seconds)
            self.metrics["memory_usage"].labels(type="used").set(metrics.memory.used)
            self.metrics["memory_usage"].labels(type="total").set(metrics.memory.total)
            self.metrics["memory_usage"].labels(type="free").set(metrics.memory.free)
            self.metrics["memory_usage_percent"].set(metrics.memory.percentage)
            self.metrics["cpu_usage"].set(metrics.cpu_usage_percent)
            self.metrics["response_time"].set(metrics.response_time_ms)
            self.metrics["requests_per_second"].set(requests.requests_per_second)
            self.metrics["db_connections"].labels(type="active").set(metrics.database_connections)
            self.metrics["db_connections"].labels(type="max").set(metrics.max_database_connections)
            self.metrics["disk_usage"].set(metrics.disk_usage_percent)

            for name, health in snapshot.services.items():
                self.metrics["service_status"].labels(service=name).set(STATUS_VALUES[health.status])
                if health.response_time_ms is not None:
                    self.metrics["service_response_time"].labels(service=name).set(
                        health.response_time_ms
                    )

            self.metrics["health_status"].set(STATUS_VALUES[snapshot.status])

            if requests.total > self._synced_requests:
                self.metrics["requests_total"].inc(requests.total - self._synced_requests)
                self._synced_requests = requests.total
            if requests.errors > self._synced_errors:
                self.metrics["errors_total"].inc(requests.errors - self._synced_errors)
                self._synced_errors = requests.errors

    def render(self, snapshot: HealthSnapshot | None = None) -> bytes:
        """Render the registry in the Prometheus text format.

        Args:
            snapshot: Snapshot to apply first, if any
        """
        if snapshot is not None:
            self.update(snapshot)
        return generate_latest(self.registry)
