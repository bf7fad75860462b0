"""Data model shared by the probes, aggregator, evaluator and dispatcher."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class HealthStatus(Enum):
    """Health status levels, ordered from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity_rank(self) -> int:
        """Position in the precedence ``unhealthy > degraded > healthy``."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst_status(*statuses: HealthStatus) -> HealthStatus:
    """Return the worst of the given statuses (healthy when none given)."""
    if not statuses:
        return HealthStatus.HEALTHY
    return max(statuses, key=lambda status: status.severity_rank)


@dataclass(frozen=True)
class ServiceHealth:
    """Result of one dependency probe."""

    status: HealthStatus
    response_time_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)
    last_check: datetime = field(default_factory=lambda: datetime.now(UTC))
    uptime_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "details": dict(self.details),
        }
        if self.response_time_ms is not None:
            data["response_time_ms"] = round(self.response_time_ms, 2)
        if self.uptime_seconds is not None:
            data["uptime_seconds"] = int(self.uptime_seconds)
        return data


@dataclass(frozen=True)
class MemoryUsage:
    """Approximate process memory usage against an assumed system total."""

    used: int
    total: int
    free: int
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "used": self.used,
            "total": self.total,
            "free": self.free,
            "percentage": round(self.percentage, 2),
        }


@dataclass(frozen=True)
class RequestMetrics:
    """Point-in-time view of the rolling request metrics."""

    total: int = 0
    errors: int = 0
    average_response_time_ms: float = 0.0
    requests_per_second: float = 0.0
    recent_response_times: tuple[float, ...] = ()

    @property
    def error_rate(self) -> float:
        """Error rate in percent; zero when nothing was recorded."""
        if self.total <= 0:
            return 0.0
        return (self.errors / self.total) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "errors": self.errors,
            "error_rate": round(self.error_rate, 2),
            "average_response_time_ms": self.average_response_time_ms,
            "requests_per_second": self.requests_per_second,
        }


@dataclass(frozen=True)
class SystemMetrics:
    """Metrics block of a health snapshot."""

    uptime_seconds: float = 0.0
    response_time_ms: float = 0.0
    memory: MemoryUsage = field(default_factory=lambda: MemoryUsage(0, 0, 0, 0.0))
    cpu_usage_percent: float = 0.0
    database_connections: int = 0
    max_database_connections: int = 100
    requests: RequestMetrics = field(default_factory=RequestMetrics)
    disk_usage_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime_seconds": int(self.uptime_seconds),
            "response_time_ms": self.response_time_ms,
            "memory": self.memory.to_dict(),
            "cpu_usage_percent": round(self.cpu_usage_percent, 2),
            "connections": {
                "database": self.database_connections,
                "max_database": self.max_database_connections,
            },
            "requests": self.requests.to_dict(),
            "disk_usage_percent": round(self.disk_usage_percent, 2),
        }


@dataclass(frozen=True)
class HealthSnapshot:
    """One aggregated, timestamped view of overall system health."""

    status: HealthStatus
    timestamp: datetime
    version: str
    services: Mapping[str, ServiceHealth]
    metrics: SystemMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "services": {name: health.to_dict() for name, health in self.services.items()},
            "metrics": self.metrics.to_dict(),
        }


class AlertSeverity(Enum):
    """Alert severity levels."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AlertMetric(str, Enum):
    """Metric names produced by the threshold evaluator."""

    AVAILABILITY = "availability"
    PERFORMANCE = "performance"
    MEMORY = "memory"
    RESPONSE_TIME = "response_time"
    ERROR_RATE = "error_rate"
    CONNECTIONS = "connections"
    REQUESTS_PER_SECOND = "requests_per_second"
    DISK_SPACE = "disk_space"
    CPU = "cpu"
    ERROR_PATTERN = "error_pattern"
    PERFORMANCE_TREND = "performance_trend"


@dataclass(frozen=True)
class AlertEvent:
    """One evaluated threshold breach."""

    severity: AlertSeverity
    message: str
    service: str
    metric: str
    threshold: float
    current_value: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> str:
        """Deduplication key shared by repeated breaches of the same metric."""
        return f"{self.service}_{self.metric}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "service": self.service,
            "metric": self.metric,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "timestamp": self.timestamp.isoformat(),
        }


class AlertStatus(Enum):
    """Lifecycle states of a dispatched alert."""

    TRIGGERED = "triggered"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    CLOSED = "closed"


@dataclass
class AlertHistoryRecord:
    """Record of a dispatched alert."""

    id: str
    alert_key: str
    timestamp: datetime
    message: str
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.TRIGGERED
    channels: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (AlertStatus.TRIGGERED, AlertStatus.ACKNOWLEDGED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert_key": self.alert_key,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "severity": self.severity.value,
            "status": self.status.value,
            "channels": list(self.channels),
            "metadata": dict(self.metadata),
            "acknowledged_at": _isoformat(self.acknowledged_at),
            "resolved_at": _isoformat(self.resolved_at),
            "closed_at": _isoformat(self.closed_at),
        }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
