"""Shared fixtures and test configuration for pytest."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from eventwatch.monitoring.alerts import AlertConfig, AlertDispatcher
from eventwatch.monitoring.anomalies import AnomalyRegistry
from eventwatch.monitoring.health import HealthAggregator
from eventwatch.monitoring.metrics import MetricsConfig, MetricsExporter
from eventwatch.monitoring.models import (
    HealthSnapshot,
    HealthStatus,
    MemoryUsage,
    RequestMetrics,
    ServiceHealth,
    SystemMetrics,
)
from eventwatch.monitoring.recorder import RequestMetricsRecorder
from eventwatch.monitoring.service import MonitoringService, SchedulerConfig
from eventwatch.monitoring.thresholds import ThresholdEvaluator

GIB = 1024**3

# Configure structlog before any module caches a logger
structlog.reset_defaults()
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer(exception_formatter=structlog.dev.plain_traceback),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    context_class=dict,
    cache_logger_on_first_use=False,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticProbe:
    """Probe returning a fixed result."""

    def __init__(self, name: str, status: HealthStatus = HealthStatus.HEALTHY, response_time_ms=5.0, details=None):
        self.name = name
        self.result = ServiceHealth(
            status=status, response_time_ms=response_time_ms, details=details or {}
        )
        self.calls = 0

    async def check(self) -> ServiceHealth:
        self.calls += 1
        return self.result


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def probe_factory():
    return StaticProbe


@pytest.fixture
def snapshot_factory():
    """Build health snapshots with neutral defaults."""

    def _make(
        status: HealthStatus = HealthStatus.HEALTHY,
        services: dict[str, ServiceHealth] | None = None,
        memory_percent: float = 10.0,
        response_time_ms: float = 50.0,
        total: int = 0,
        errors: int = 0,
        requests_per_second: float = 0.0,
        recent: tuple[float, ...] = (),
        connections: int = 0,
        disk_percent: float = 10.0,
        cpu_percent: float = 5.0,
    ) -> HealthSnapshot:
        if services is None:
            services = {
                name: ServiceHealth(status=HealthStatus.HEALTHY, response_time_ms=5.0)
                for name in ("database", "storage", "application")
            }
        total_memory = 8 * 1024**3
        used = int(total_memory * memory_percent / 100)
        return HealthSnapshot(
            status=status,
            timestamp=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
            version="1.0.0",
            services=services,
            metrics=SystemMetrics(
                uptime_seconds=120.0,
                response_time_ms=response_time_ms,
                memory=MemoryUsage(used, total_memory, total_memory - used, memory_percent),
                cpu_usage_percent=cpu_percent,
                database_connections=connections,
                max_database_connections=100,
                requests=RequestMetrics(
                    total=total,
                    errors=errors,
                    average_response_time_ms=response_time_ms,
                    requests_per_second=requests_per_second,
                    recent_response_times=recent,
                ),
                disk_usage_percent=disk_percent,
            ),
        )

    return _make


@pytest.fixture
def collector_stub():
    """Self metrics collector returning fixed, quiet readings."""
    collector = MagicMock()
    collector.cpu_usage = AsyncMock(return_value=5.0)
    collector.memory_usage.return_value = MemoryUsage(GIB, 8 * GIB, 7 * GIB, 12.5)
    collector.uptime_seconds.return_value = 60.0
    collector.disk_usage_percent.return_value = 20.0
    collector.pid = 1234
    return collector


@pytest.fixture
def service_factory(collector_stub, fake_clock):
    """Build a monitoring service over static probes without notification channels."""

    def _make(statuses: dict[str, HealthStatus] | None = None, alerts_enabled: bool = True):
        statuses = statuses or {}
        probes = [
            StaticProbe(name, statuses.get(name, HealthStatus.HEALTHY))
            for name in ("database", "storage", "application")
        ]
        anomalies = AnomalyRegistry()
        return MonitoringService(
            aggregator=HealthAggregator(probes, collector_stub, RequestMetricsRecorder(clock=fake_clock)),
            evaluator=ThresholdEvaluator(),
            dispatcher=AlertDispatcher(
                AlertConfig(enabled=alerts_enabled, channels=[]), anomalies=anomalies, clock=fake_clock
            ),
            exporter=MetricsExporter(MetricsConfig(process_metrics_enabled=False)),
            anomalies=anomalies,
            scheduler=SchedulerConfig(enabled=False),
        )

    return _make
