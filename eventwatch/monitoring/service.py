"""Composition root wiring the monitoring components and their background tasks."""

import asyncio
import platform
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.config import Config as BotoConfig
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..constants import CONSTANTS
from ..core.exceptions import UnknownConditionError
from .alerts import AlertDispatcher
from .anomalies import AnomalyRegistry
from .health import HealthAggregator
from .metrics import MetricsExporter
from .models import AlertEvent, AlertHistoryRecord, AlertMetric, AlertSeverity, HealthSnapshot
from .probes import ApplicationProbe, DatabaseProbe, ProbeThresholds, StorageProbe
from .recorder import RequestMetricsRecorder
from .system import SelfMetricsCollector
from .thresholds import ThresholdEvaluator

if TYPE_CHECKING:
    from ..core.config import DatabaseConfig, MonitoringConfig, StorageConfig

logger = structlog.get_logger(__name__)


@dataclass
class SchedulerConfig:
    """Intervals of the background monitoring tasks, in seconds."""

    enabled: bool = True
    alert_check_interval: float = CONSTANTS.ALERT_CHECK_INTERVAL
    metrics_cleanup_interval: float = CONSTANTS.METRICS_CLEANUP_INTERVAL
    anomaly_cleanup_interval: float = CONSTANTS.ANOMALY_CLEANUP_INTERVAL
    error_backoff: float = CONSTANTS.LOOP_ERROR_BACKOFF


@dataclass(frozen=True)
class SimulatedCondition:
    """Canned alert used to exercise the dispatch path."""

    severity: AlertSeverity
    service: str
    metric: AlertMetric
    threshold: float
    current_value: float
    message: str


SIMULATED_CONDITIONS: dict[str, SimulatedCondition] = {
    "high_memory": SimulatedCondition(
        AlertSeverity.CRITICAL,
        "application",
        AlertMetric.MEMORY,
        85,
        95,
        "Simulated critical memory usage: 95%",
    ),
    "slow_response": SimulatedCondition(
        AlertSeverity.CRITICAL,
        "application",
        AlertMetric.RESPONSE_TIME,
        2000,
        2500,
        "Simulated critical response time: 2500ms",
    ),
    "high_errors": SimulatedCondition(
        AlertSeverity.CRITICAL,
        "application",
        AlertMetric.ERROR_RATE,
        10,
        15,
        "Simulated critical error rate: 15%",
    ),
    "disk_full": SimulatedCondition(
        AlertSeverity.CRITICAL,
        "application",
        AlertMetric.DISK_SPACE,
        90,
        95,
        "Simulated critical disk usage: 95%",
    ),
    "db_overload": SimulatedCondition(
        AlertSeverity.CRITICAL,
        "database",
        AlertMetric.CONNECTIONS,
        50,
        60,
        "Simulated database overload: 60 connections",
    ),
}


def create_engine(config: "DatabaseConfig") -> AsyncEngine | None:
    """Async engine for the configured database, None when disabled."""
    if not config.enabled:
        return None

    options: dict[str, Any] = {"echo": config.echo, "pool_pre_ping": True}
    if not config.url.startswith("sqlite"):
        options["pool_size"] = config.pool_size
    return create_async_engine(config.url, **options)


def create_storage_client(config: "StorageConfig", timeout: float) -> Any | None:
    """boto3 S3 client for the configured endpoint, None when disabled."""
    if not config.enabled:
        return None

    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
        config=BotoConfig(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1},
        ),
    )


class MonitoringService:
    """Owns the monitoring components and the periodic background tasks.

    The service is constructed explicitly, either from a ``MonitoringConfig``
    or by injecting components, and lives on ``app.state.monitoring``.
    """

    def __init__(
        self,
        aggregator: HealthAggregator,
        evaluator: ThresholdEvaluator,
        dispatcher: AlertDispatcher,
        exporter: MetricsExporter,
        anomalies: AnomalyRegistry,
        scheduler: SchedulerConfig | None = None,
        engine: AsyncEngine | None = None,
    ):
        """Initialize the service.

        Args:
            aggregator: Health aggregator (owns probes, collector and recorder)
            evaluator: Threshold evaluator
            dispatcher: Alert dispatcher
            exporter: Prometheus exporter
            anomalies: Anomaly registry
            scheduler: Background task intervals
            engine: Database engine disposed at shutdown
        """
        self.aggregator = aggregator
        self.evaluator = evaluator
        self.dispatcher = dispatcher
        self.exporter = exporter
        self.anomalies = anomalies
        self.scheduler = scheduler or SchedulerConfig()
        self.engine = engine
        self.started_at = datetime.now(UTC)

        self._tasks: list[asyncio.Task] = []
        self._running = False

    @classmethod
    def from_config(cls, config: "MonitoringConfig") -> "MonitoringService":
        """Build every component from configuration."""
        collector = SelfMetricsCollector(config.system)
        recorder = RequestMetricsRecorder()
        engine = create_engine(config.database)
        storage_client = create_storage_client(config.storage, config.health.probe_timeout_seconds)

        probes = [
            DatabaseProbe(
                engine,
                ProbeThresholds(config.health.database_warning_ms, config.health.database_critical_ms),
            ),
            StorageProbe(
                storage_client,
                required_bucket=config.storage.required_bucket,
                thresholds=ProbeThresholds(
                    config.health.storage_warning_ms, config.health.storage_critical_ms
                ),
                endpoint=config.storage.endpoint_url,
            ),
            ApplicationProbe(
                collector,
                ProbeThresholds(
                    config.health.memory_warning_percent, config.health.memory_critical_percent
                ),
            ),
        ]

        anomalies = AnomalyRegistry(config.anomalies)
        return cls(
            aggregator=HealthAggregator(probes, collector, recorder, config.health),
            evaluator=ThresholdEvaluator(config.thresholds),
            dispatcher=AlertDispatcher(config.alerts, anomalies=anomalies),
            exporter=MetricsExporter(config.metrics),
            anomalies=anomalies,
            scheduler=config.scheduler,
            engine=engine,
        )

    @property
    def recorder(self) -> RequestMetricsRecorder:
        return self.aggregator.recorder

    @property
    def collector(self) -> SelfMetricsCollector:
        return self.aggregator.collector

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic alert check and cleanup tasks."""
        if not self.scheduler.enabled or self._running:
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(
                self._periodic("alert_check", self.scheduler.alert_check_interval, self.run_alert_check)
            ),
            asyncio.create_task(
                self._periodic(
                    "metrics_cleanup", self.scheduler.metrics_cleanup_interval, self._cleanup_metrics
                )
            ),
            asyncio.create_task(
                self._periodic(
                    "anomaly_cleanup",
                    self.scheduler.anomaly_cleanup_interval,
                    self._cleanup_anomalies,
                )
            ),
        ]
        logger.info(
            "Started monitoring tasks",
            alert_check_interval=self.scheduler.alert_check_interval,
            tasks=len(self._tasks),
        )

    async def shutdown(self) -> None:
        """Cancel background tasks and release the database engine."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []

        if self.engine is not None:
            await self.engine.dispose()

        logger.info("Monitoring service shutdown")

    async def _periodic(
        self, name: str, interval: float, func: Callable[[], Awaitable[Any]]
    ) -> None:
        while self._running:
            try:
                await asyncio.sleep(interval)
                await func()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Monitoring task failed", task=name, error=str(e))
                await asyncio.sleep(self.scheduler.error_backoff)

    async def _cleanup_metrics(self) -> None:
        self.recorder.cleanup()

    async def _cleanup_anomalies(self) -> None:
        self.anomalies.cleanup()

    async def get_health_snapshot(self) -> HealthSnapshot:
        return await self.aggregator.get_health_snapshot()

    async def check_thresholds(self, snapshot: HealthSnapshot | None = None) -> list[AlertEvent]:
        """Evaluate the threshold table against a fresh (or given) snapshot."""
        if snapshot is None:
            snapshot = await self.get_health_snapshot()
        return self.evaluator.evaluate(snapshot)

    async def run_alert_check(self) -> list[AlertHistoryRecord]:
        """One full cycle: snapshot, evaluate, dispatch, resolve cleared alerts.

        Returns:
            History records of the alerts that were dispatched
        """
        snapshot = await self.get_health_snapshot()
        events = self.evaluator.evaluate(snapshot)
        self.exporter.update(snapshot)

        records = []
        if self.dispatcher.config.enabled:
            for event in events:
                record = await self.dispatcher.dispatch(event)
                if record is not None:
                    records.append(record)

        self.dispatcher.resolve_cleared(event.key for event in events)

        logger.debug(
            "Alert check completed",
            status=snapshot.status.value,
            alerts=len(events),
            dispatched=len(records),
        )
        return records

    async def render_metrics(self) -> bytes:
        """Prometheus exposition of a fresh snapshot."""
        snapshot = await self.get_health_snapshot()
        return self.exporter.render(snapshot)

    def available_conditions(self) -> list[str]:
        return list(SIMULATED_CONDITIONS)

    async def simulate_condition(self, condition: str) -> tuple[AlertEvent, AlertHistoryRecord | None]:
        """Push a canned alert through the normal dispatch path.

        Nothing is dispatched, and no record is returned, while alerting is disabled.

        Raises:
            UnknownConditionError: If the condition name is not recognized
        """
        simulated = SIMULATED_CONDITIONS.get(condition)
        if simulated is None:
            raise UnknownConditionError(condition, self.available_conditions())

        alert = AlertEvent(
            severity=simulated.severity,
            message=simulated.message,
            service=simulated.service,
            metric=simulated.metric.value,
            threshold=simulated.threshold,
            current_value=simulated.current_value,
        )
        logger.info("Simulating alert condition", condition=condition, key=alert.key)
        if not self.dispatcher.config.enabled:
            logger.info("Alerting disabled, simulated alert not dispatched", condition=condition)
            return alert, None

        record = await self.dispatcher.dispatch(alert)
        return alert, record

    def info(self) -> dict[str, Any]:
        return {
            "name": CONSTANTS.APP_NAME,
            "version": self.aggregator.config.version,
            "environment": CONSTANTS.ENVIRONMENT,
            "python_version": sys.version.split()[0],
            "platform": platform.system().lower(),
            "architecture": platform.machine(),
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": int(self.collector.uptime_seconds()),
            "pid": self.collector.pid,
        }
