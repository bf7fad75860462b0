"""Threshold evaluation of health snapshots into alert events."""

from dataclasses import dataclass

import structlog

from ..constants import CONSTANTS
from .models import AlertEvent, AlertMetric, AlertSeverity, HealthSnapshot, HealthStatus

logger = structlog.get_logger(__name__)


@dataclass
class ThresholdTable:
    """Warning and critical limits used by the evaluator."""

    memory_warning: float = 75.0  # percent
    memory_critical: float = 85.0
    response_time_warning: float = 1000.0  # ms
    response_time_critical: float = 2000.0
    error_rate_warning: float = 5.0  # percent
    error_rate_critical: float = 10.0
    error_rate_min_requests: int = 10
    connections_warning: int = 30
    connections_critical: int = 50
    requests_per_second_warning: float = 100.0
    disk_warning: float = 80.0  # percent
    disk_critical: float = 90.0
    cpu_warning: float = 85.0  # percent
    cpu_critical: float = 95.0

    error_pattern_min_requests: int = 20
    error_pattern_min_errors: int = 5
    error_pattern_rate: float = 15.0  # percent

    trend_sample_count: int = CONSTANTS.TREND_SAMPLE_COUNT
    trend_increase_ms: float = 500.0
    trend_average_ms: float = 800.0


class ThresholdEvaluator:
    """Turns a health snapshot into a list of alert events.

    Evaluation is pure: the same snapshot always yields the same events, each
    stamped with the snapshot timestamp. Only the most severe band of a
    metric fires.
    """

    def __init__(self, thresholds: ThresholdTable | None = None):
        self.thresholds = thresholds or ThresholdTable()

    def evaluate(self, snapshot: HealthSnapshot) -> list[AlertEvent]:
        """Evaluate every rule against a snapshot.

        Args:
            snapshot: Health snapshot to evaluate

        Returns:
            Alert events for every breached rule
        """
        t = self.thresholds
        metrics = snapshot.metrics
        requests = metrics.requests
        events: list[AlertEvent] = []

        def emit(
            severity: AlertSeverity,
            message: str,
            service: str,
            metric: AlertMetric,
            threshold: float,
            current_value: float,
        ) -> None:
            events.append(
                AlertEvent(
                    severity=severity,
                    message=message,
                    service=service,
                    metric=metric.value,
                    threshold=threshold,
                    current_value=current_value,
                    timestamp=snapshot.timestamp,
                )
            )

        memory = metrics.memory.percentage
        if memory > t.memory_critical:
            emit(
                AlertSeverity.CRITICAL,
                f"Critical memory usage: {memory:.1f}%",
                "application",
                AlertMetric.MEMORY,
                t.memory_critical,
                memory,
            )
        elif memory > t.memory_warning:
            emit(
                AlertSeverity.WARNING,
                f"High memory usage: {memory:.1f}%",
                "application",
                AlertMetric.MEMORY,
                t.memory_warning,
                memory,
            )

        response_time = metrics.response_time_ms
        if response_time > t.response_time_critical:
            emit(
                AlertSeverity.CRITICAL,
                f"Critical response time: {response_time:.0f}ms",
                "application",
                AlertMetric.RESPONSE_TIME,
                t.response_time_critical,
                response_time,
            )
        elif response_time > t.response_time_warning:
            emit(
                AlertSeverity.WARNING,
                f"Slow response time: {response_time:.0f}ms",
                "application",
                AlertMetric.RESPONSE_TIME,
                t.response_time_warning,
                response_time,
            )

        if requests.total >= t.error_rate_min_requests:
            error_rate = requests.error_rate
            if error_rate > t.error_rate_critical:
                emit(
                    AlertSeverity.CRITICAL,
                    f"Critical error rate: {error_rate:.1f}%",
                    "application",
                    AlertMetric.ERROR_RATE,
                    t.error_rate_critical,
                    error_rate,
                )
            elif error_rate > t.error_rate_warning:
                emit(
                    AlertSeverity.WARNING,
                    f"High error rate: {error_rate:.1f}%",
                    "application",
                    AlertMetric.ERROR_RATE,
                    t.error_rate_warning,
                    error_rate,
                )

        connections = metrics.database_connections
        if connections > t.connections_critical:
            emit(
                AlertSeverity.CRITICAL,
                f"Critical database connection count: {connections}",
                "database",
                AlertMetric.CONNECTIONS,
                t.connections_critical,
                connections,
            )
        elif connections > t.connections_warning:
            emit(
                AlertSeverity.WARNING,
                f"High database connection count: {connections}",
                "database",
                AlertMetric.CONNECTIONS,
                t.connections_warning,
                connections,
            )

        rps = requests.requests_per_second
        if rps > t.requests_per_second_warning:
            emit(
                AlertSeverity.WARNING,
                f"High request rate: {rps:.1f} req/s",
                "application",
                AlertMetric.REQUESTS_PER_SECOND,
                t.requests_per_second_warning,
                rps,
            )

        disk = metrics.disk_usage_percent
        if disk > t.disk_critical:
            emit(
                AlertSeverity.CRITICAL,
                f"Critical disk usage: {disk:.1f}%",
                "application",
                AlertMetric.DISK_SPACE,
                t.disk_critical,
                disk,
            )
        elif disk > t.disk_warning:
            emit(
                AlertSeverity.WARNING,
                f"High disk usage: {disk:.1f}%",
                "application",
                AlertMetric.DISK_SPACE,
                t.disk_warning,
                disk,
            )

        cpu = metrics.cpu_usage_percent
        if cpu > t.cpu_critical:
            emit(
                AlertSeverity.CRITICAL,
                f"Critical CPU usage: {cpu:.1f}%",
                "application",
                AlertMetric.CPU,
                t.cpu_critical,
                cpu,
            )
        elif cpu > t.cpu_warning:
            emit(
                AlertSeverity.WARNING,
                f"High CPU usage: {cpu:.1f}%",
                "application",
                AlertMetric.CPU,
                t.cpu_warning,
                cpu,
            )

        for name, health in snapshot.services.items():
            if health.status == HealthStatus.UNHEALTHY:
                emit(
                    AlertSeverity.CRITICAL,
                    f"Service {name} is unhealthy",
                    name,
                    AlertMetric.AVAILABILITY,
                    100,
                    0,
                )
            elif health.status == HealthStatus.DEGRADED:
                current = health.response_time_ms or 0
                emit(
                    AlertSeverity.WARNING,
                    f"Service {name} is degraded",
                    name,
                    AlertMetric.PERFORMANCE,
                    current,
                    current,
                )

        if (
            requests.total >= t.error_pattern_min_requests
            and requests.errors >= t.error_pattern_min_errors
            and requests.error_rate > t.error_pattern_rate
        ):
            emit(
                AlertSeverity.CRITICAL,
                f"Error spike: {requests.errors} errors in {requests.total} requests",
                "application",
                AlertMetric.ERROR_PATTERN,
                t.error_pattern_rate,
                requests.error_rate,
            )

        recent = requests.recent_response_times
        if len(recent) >= t.trend_sample_count:
            window = recent[-t.trend_sample_count :]
            increase = window[-1] - window[0]
            average = sum(window) / len(window)
            if increase > t.trend_increase_ms and average > t.trend_average_ms:
                emit(
                    AlertSeverity.WARNING,
                    f"Response time trending up: +{increase:.0f}ms, average {average:.0f}ms",
                    "application",
                    AlertMetric.PERFORMANCE_TREND,
                    t.trend_average_ms,
                    average,
                )

        if events:
            logger.debug("Threshold evaluation produced alerts", count=len(events))
        return events
