"""Health aggregation across dependency probes and self metrics."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from ..constants import CONSTANTS
from .models import HealthSnapshot, HealthStatus, ServiceHealth, SystemMetrics, worst_status
from .probes import HealthProbe
from .recorder import RequestMetricsRecorder
from .system import SelfMetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class HealthConfig:
    """Configuration for health aggregation."""

    probe_timeout_seconds: float = CONSTANTS.PROBE_TIMEOUT_SECONDS
    version: str = CONSTANTS.APP_VERSION
    database_warning_ms: float = CONSTANTS.DATABASE_WARNING_MS
    database_critical_ms: float = CONSTANTS.DATABASE_CRITICAL_MS
    storage_warning_ms: float = CONSTANTS.STORAGE_WARNING_MS
    storage_critical_ms: float = CONSTANTS.STORAGE_CRITICAL_MS
    memory_warning_percent: float = CONSTANTS.APPLICATION_MEMORY_WARNING_PERCENT
    memory_critical_percent: float = CONSTANTS.APPLICATION_MEMORY_CRITICAL_PERCENT


class HealthAggregator:
    """Builds health snapshots from probes, the collector and the recorder.

    Every call performs live I/O against each dependency. Callers that poll
    frequently should cache the returned snapshot themselves.
    """

    def __init__(
        self,
        probes: Sequence[HealthProbe],
        collector: SelfMetricsCollector,
        recorder: RequestMetricsRecorder,
        config: HealthConfig | None = None,
    ):
        """Initialize the aggregator.

        Args:
            probes: Dependency probes, keyed in the snapshot by ``probe.name``
            collector: Self metrics collector
            recorder: Request metrics recorder
            config: Aggregation configuration
        """
        self.probes = list(probes)
        self.collector = collector
        self.recorder = recorder
        self.config = config or HealthConfig()

    async def get_health_snapshot(self) -> HealthSnapshot:
        """Run all probes and sample self metrics.

        Returns:
            Aggregated snapshot whose status is the worst service status
        """
        results = await asyncio.gather(
            *(self._run_probe(probe) for probe in self.probes),
            self.collector.cpu_usage(),
        )
        probe_results: list[ServiceHealth] = list(results[:-1])
        cpu_usage = results[-1]

        services = {probe.name: result for probe, result in zip(self.probes, probe_results)}

        database = services.get("database")
        details = database.details if database else {}
        connections = int(details.get("connections", 0))
        max_connections = int(
            details.get("max_connections", CONSTANTS.DATABASE_DEFAULT_MAX_CONNECTIONS)
        )

        requests = self.recorder.snapshot()
        metrics = SystemMetrics(
            uptime_seconds=self.collector.uptime_seconds(),
            response_time_ms=requests.average_response_time_ms,
            memory=self.collector.memory_usage(),
            cpu_usage_percent=cpu_usage,
            database_connections=connections,
            max_database_connections=max_connections,
            requests=requests,
            disk_usage_percent=self.collector.disk_usage_percent(),
        )

        status = worst_status(*(health.status for health in services.values()))
        if status != HealthStatus.HEALTHY:
            logger.info(
                "System health is not healthy",
                status=status.value,
                services={name: health.status.value for name, health in services.items()},
            )

        return HealthSnapshot(
            status=status,
            timestamp=datetime.now(UTC),
            version=self.config.version,
            services=services,
            metrics=metrics,
        )

    async def _run_probe(self, probe: HealthProbe) -> ServiceHealth:
        try:
            return await asyncio.wait_for(probe.check(), timeout=self.config.probe_timeout_seconds)
        except TimeoutError:
            logger.warning(
                "Health probe timed out",
                probe=probe.name,
                timeout=self.config.probe_timeout_seconds,
            )
            return ServiceHealth(
                status=HealthStatus.UNHEALTHY,
                response_time_ms=self.config.probe_timeout_seconds * 1000,
                details={"error": f"Timed out after {self.config.probe_timeout_seconds}s"},
            )
        except Exception as e:
            logger.error("Health probe raised", probe=probe.name, error=str(e))
            return ServiceHealth(status=HealthStatus.UNHEALTHY, details={"error": str(e)})
