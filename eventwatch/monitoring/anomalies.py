"""Anomaly registry: triage records filed from alerts or by operators."""

import csv
import io
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import structlog

from ..constants import CONSTANTS
from ..core.exceptions import AnomalyNotFoundError
from .models import AlertEvent, AlertSeverity

logger = structlog.get_logger(__name__)


class AnomalyStatus(Enum):
    """Triage states of an anomaly."""

    DETECTED = "detected"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


class UserImpact(Enum):
    """Estimated impact of an anomaly on end users."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RemediationPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RemediationCategory(Enum):
    RESTART = "restart"
    CONFIG = "config"
    SCALING = "scaling"
    MONITORING = "monitoring"
    INVESTIGATION = "investigation"
    OTHER = "other"


class AnomalyCategory(Enum):
    """Known anomaly patterns with canned remediation advice."""

    HIGH_MEMORY_USAGE = "high_memory_usage"
    HIGH_RESPONSE_TIME = "high_response_time"
    SERVICE_UNAVAILABLE = "service_unavailable"
    HIGH_ERROR_RATE = "high_error_rate"
    DATABASE_CONNECTION_ISSUES = "database_connection_issues"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AnomalyPattern:
    """Description of a known anomaly pattern."""

    title: str
    description: str
    common_causes: tuple[str, ...]
    recommended_actions: tuple[str, ...]
    preventive_measures: tuple[str, ...]


PATTERNS: dict[AnomalyCategory, AnomalyPattern] = {
    AnomalyCategory.HIGH_MEMORY_USAGE: AnomalyPattern(
        title="High memory usage",
        description="Memory consumption above normal thresholds",
        common_causes=(
            "Memory leak in the application",
            "Unusual workload",
            "Inadequate configuration",
            "Zombie processes",
        ),
        recommended_actions=(
            "Identify the processes consuming memory",
            "Check the application logs",
            "Restart services if necessary",
            "Adjust memory limits",
            "Optimize database queries",
        ),
        preventive_measures=(
            "Proactive monitoring",
            "Regular load testing",
            "Performance profiling",
            "Early warning alerts",
        ),
    ),
    AnomalyCategory.HIGH_RESPONSE_TIME: AnomalyPattern(
        title="High response time",
        description="API or service latency above acceptable thresholds",
        common_causes=(
            "Database overload",
            "Insufficient resources",
            "Unoptimized queries",
            "Network problems",
            "Slow external services",
        ),
        recommended_actions=(
            "Analyze slow queries",
            "Check the database state",
            "Check network connectivity",
            "Restart degraded services",
            "Adjust scaling",
        ),
        preventive_measures=(
            "Index optimization",
            "Application caching",
            "Load balancing",
            "Dependency monitoring",
        ),
    ),
    AnomalyCategory.SERVICE_UNAVAILABLE: AnomalyPattern(
        title="Service unavailable",
        description="Critical service unreachable or not functioning",
        common_causes=(
            "Application crash",
            "Configuration problem",
            "Exhausted system resources",
            "External dependency unavailable",
            "Network problem",
        ),
        recommended_actions=(
            "Restart the service immediately",
            "Check the error logs",
            "Check dependencies",
            "Switch to a degraded mode",
            "Notify the teams involved",
        ),
        preventive_measures=(
            "Automatic health checks",
            "Automatic retries",
            "Circuit breaker pattern",
            "Service redundancy",
        ),
    ),
    AnomalyCategory.HIGH_ERROR_RATE: AnomalyPattern(
        title="High error rate",
        description="Significant increase in application errors",
        common_causes=(
            "Recently introduced bug",
            "Incorrect configuration",
            "Corrupted data",
            "Failing external integration",
            "System overload",
        ),
        recommended_actions=(
            "Analyze recent error logs",
            "Roll back the last deployment if necessary",
            "Check configurations",
            "Test external integrations",
            "Enable maintenance mode if critical",
        ),
        preventive_measures=(
            "Robust automated tests",
            "Progressive rollouts",
            "Business metric monitoring",
            "Data validation",
        ),
    ),
    AnomalyCategory.DATABASE_CONNECTION_ISSUES: AnomalyPattern(
        title="Database connection issues",
        description="Trouble accessing the database or degraded database performance",
        common_causes=(
            "Saturated connection pool",
            "Overloaded database",
            "Network problem",
            "Maintenance or table locks",
            "Inadequate timeout configuration",
        ),
        recommended_actions=(
            "Check the database server state",
            "Analyze active connections",
            "Restart the connection pool",
            "Optimize running queries",
            "Adjust timeouts if necessary",
        ),
        preventive_measures=(
            "Database connection monitoring",
            "Correctly sized connection pool",
            "Optimized queries",
            "Database health checks",
        ),
    ),
}

DEFAULT_RECOMMENDED_ACTIONS = (
    "Analyze the logs of the affected service",
    "Check system resource usage",
    "Check external dependencies",
    "Consider a restart if necessary",
)

MANUAL_RECOMMENDED_ACTIONS = (
    "Analyze the root cause of the problem",
    "Document the reproduction steps",
    "Assess the impact on users",
    "Plan corrective actions",
)

METRIC_CATEGORIES: dict[str, AnomalyCategory] = {
    "memory": AnomalyCategory.HIGH_MEMORY_USAGE,
    "response_time": AnomalyCategory.HIGH_RESPONSE_TIME,
    "availability": AnomalyCategory.SERVICE_UNAVAILABLE,
    "error_rate": AnomalyCategory.HIGH_ERROR_RATE,
    "error_pattern": AnomalyCategory.HIGH_ERROR_RATE,
    "connections": AnomalyCategory.DATABASE_CONNECTION_ISSUES,
}

METRIC_COMPONENTS: dict[str, str] = {
    "memory": "memory",
    "cpu": "cpu",
    "connections": "database",
}


def categorize(metric: str) -> AnomalyCategory:
    """Known anomaly category of an alert metric (``UNKNOWN`` when none applies)."""
    return METRIC_CATEGORIES.get(metric, AnomalyCategory.UNKNOWN)


def recommended_actions(metric: str) -> list[str]:
    pattern = PATTERNS.get(categorize(metric))
    if pattern is None:
        return list(DEFAULT_RECOMMENDED_ACTIONS)
    return list(pattern.recommended_actions)


def user_impact(severity: AlertSeverity, service: str) -> UserImpact:
    """Estimate user impact from alert severity and the affected service."""
    if severity == AlertSeverity.CRITICAL:
        if service in ("application", "database"):
            return UserImpact.CRITICAL
        return UserImpact.HIGH
    if severity == AlertSeverity.WARNING:
        return UserImpact.MEDIUM
    return UserImpact.LOW


def alert_tags(alert: AlertEvent) -> list[str]:
    tags = [alert.service, alert.metric, alert.severity.value]
    component = METRIC_COMPONENTS.get(alert.metric)
    if component == "database":
        tags.append("database")
    if alert.metric == "memory":
        tags.append("performance")
    if alert.severity == AlertSeverity.CRITICAL:
        tags.append("urgent")
    return tags


@dataclass
class Remediation:
    """A corrective action applied to an anomaly."""

    id: str
    action: str
    description: str
    priority: RemediationPriority = RemediationPriority.MEDIUM
    category: RemediationCategory = RemediationCategory.OTHER
    estimated_effort: str = "unknown"
    status: str = "planned"
    applied_at: datetime | None = None
    applied_by: str | None = None
    rollback_plan: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "description": self.description,
            "priority": self.priority.value,
            "category": self.category.value,
            "estimated_effort": self.estimated_effort,
            "status": self.status,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "applied_by": self.applied_by,
            "rollback_plan": self.rollback_plan,
        }


@dataclass
class Anomaly:
    """Structured triage record."""

    id: str
    title: str
    description: str
    severity: AlertSeverity
    service: str
    detected_at: datetime
    detection_method: str
    source: str
    reporter: str
    status: AnomalyStatus = AnomalyStatus.DETECTED
    component: str | None = None
    metric: str = "manual_observation"
    threshold: float = 0
    current_value: float = 0
    environment: str = CONSTANTS.ENVIRONMENT
    version: str = CONSTANTS.APP_VERSION
    user_impact: UserImpact = UserImpact.MEDIUM
    recommended_actions: list[str] = field(default_factory=list)
    remediations: list[Remediation] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    status_history: list[dict[str, Any]] = field(default_factory=list)
    related_anomalies: list[str] = field(default_factory=list)
    alert_ids: list[str] = field(default_factory=list)
    investigation_started_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (AnomalyStatus.DETECTED, AnomalyStatus.INVESTIGATING)

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "status": self.status.value,
            "service": self.service,
            "component": self.component,
            "metric": self.metric,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "detected_at": self.detected_at.isoformat(),
            "detection_method": self.detection_method,
            "source": self.source,
            "reporter": self.reporter,
            "environment": self.environment,
            "version": self.version,
            "user_impact": self.user_impact.value,
            "recommended_actions": list(self.recommended_actions),
            "remediations": [remediation.to_dict() for remediation in self.remediations],
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
            "status_history": list(self.status_history),
            "related_anomalies": list(self.related_anomalies),
            "alert_ids": list(self.alert_ids),
            "investigation_started_at": iso(self.investigation_started_at),
            "resolved_at": iso(self.resolved_at),
            "closed_at": iso(self.closed_at),
        }


@dataclass
class AnomalyFilters:
    """Filters accepted by ``AnomalyRegistry.list_anomalies``."""

    status: list[AnomalyStatus] | None = None
    severity: list[AlertSeverity] | None = None
    service: list[str] | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
    offset: int = 0


@dataclass
class AnomalyConfig:
    """Configuration for the anomaly registry."""

    retention_days: int = CONSTANTS.ANOMALY_RETENTION_DAYS
    related_window_hours: int = CONSTANTS.ANOMALY_RELATED_WINDOW_HOURS
    max_records: int = CONSTANTS.ANOMALY_MAX_RECORDS
    environment: str = CONSTANTS.ENVIRONMENT
    version: str = CONSTANTS.APP_VERSION


EXPORT_COLUMNS = (
    "id",
    "title",
    "severity",
    "status",
    "service",
    "component",
    "metric",
    "threshold",
    "current_value",
    "detected_at",
    "resolved_at",
    "user_impact",
    "reporter",
)


class AnomalyRegistry:
    """In-memory store of anomaly records."""

    def __init__(
        self,
        config: AnomalyConfig | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize the registry.

        Args:
            config: Registry configuration
            now: Wall clock returning timezone-aware datetimes
        """
        self.config = config or AnomalyConfig()
        self._now = now
        self._anomalies: dict[str, Anomaly] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._anomalies)

    def file_from_alert(self, alert: AlertEvent, context: dict[str, Any] | None = None) -> Anomaly:
        """File an anomaly for a dispatched alert.

        Args:
            alert: The alert that was dispatched
            context: Extra metadata merged into the record

        Returns:
            The new anomaly
        """
        detected_at = alert.timestamp
        anomaly = Anomaly(
            id=_new_id("anomaly"),
            title=f"Anomaly detected: {alert.message}",
            description=(
                f"Automatically detected on service {alert.service}. "
                f"Metric {alert.metric}: current value {alert.current_value} exceeds "
                f"the configured threshold of {alert.threshold}. "
                f"Alert message: {alert.message}"
            ),
            severity=alert.severity,
            service=alert.service,
            component=METRIC_COMPONENTS.get(alert.metric),
            metric=alert.metric,
            threshold=alert.threshold,
            current_value=alert.current_value,
            detected_at=detected_at,
            detection_method="automatic",
            source="monitoring",
            reporter="system",
            environment=self.config.environment,
            version=self.config.version,
            user_impact=user_impact(alert.severity, alert.service),
            recommended_actions=recommended_actions(alert.metric),
            tags=alert_tags(alert),
            metadata={
                "alert": alert.to_dict(),
                "category": categorize(alert.metric).value,
                "detection_rules": [f"threshold_{alert.metric}", f"service_{alert.service}"],
                **(context or {}),
            },
            alert_ids=[f"alert_{alert.service}_{alert.metric}_{int(detected_at.timestamp())}"],
        )

        with self._lock:
            anomaly.related_anomalies = [related.id for related in self._find_related(anomaly)]
            self._anomalies[anomaly.id] = anomaly
            self._evict_overflow()

        logger.info(
            "Anomaly filed",
            anomaly_id=anomaly.id,
            service=anomaly.service,
            metric=anomaly.metric,
            severity=anomaly.severity.value,
        )
        return anomaly

    def file_manual(
        self,
        title: str,
        description: str,
        severity: AlertSeverity,
        service: str,
        reporter: str,
        component: str | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Anomaly:
        """File an anomaly reported by an operator."""
        anomaly = Anomaly(
            id=_new_id("anomaly"),
            title=title,
            description=description,
            severity=severity,
            service=service,
            component=component,
            detected_at=self._now(),
            detection_method="manual",
            source="manual_report",
            reporter=reporter,
            environment=self.config.environment,
            version=self.config.version,
            user_impact=UserImpact.MEDIUM,
            recommended_actions=list(MANUAL_RECOMMENDED_ACTIONS),
            tags=list(tags or []),
            metadata=dict(metadata or {}),
        )

        with self._lock:
            self._anomalies[anomaly.id] = anomaly
            self._evict_overflow()

        logger.info("Manual anomaly filed", anomaly_id=anomaly.id, reporter=reporter)
        return anomaly

    def get(self, anomaly_id: str) -> Anomaly:
        """Look up an anomaly.

        Raises:
            AnomalyNotFoundError: If no anomaly has this id
        """
        anomaly = self._anomalies.get(anomaly_id)
        if anomaly is None:
            raise AnomalyNotFoundError(f"Anomaly not found: {anomaly_id}")
        return anomaly

    def update_status(
        self,
        anomaly_id: str,
        status: AnomalyStatus,
        updated_by: str,
        notes: str | None = None,
    ) -> Anomaly:
        """Move an anomaly to a new triage status.

        Args:
            anomaly_id: Anomaly to update
            status: New status
            updated_by: Operator making the change
            notes: Optional notes, recorded in the status history

        Returns:
            The updated anomaly
        """
        with self._lock:
            anomaly = self.get(anomaly_id)
            previous = anomaly.status
            now = self._now()
            anomaly.status = status

            if status == AnomalyStatus.INVESTIGATING and anomaly.investigation_started_at is None:
                anomaly.investigation_started_at = now
            elif status == AnomalyStatus.RESOLVED:
                anomaly.resolved_at = now
            elif status == AnomalyStatus.CLOSED:
                anomaly.closed_at = now

            if notes:
                anomaly.status_history.append(
                    {
                        "timestamp": now.isoformat(),
                        "from_status": previous.value,
                        "to_status": status.value,
                        "updated_by": updated_by,
                        "notes": notes,
                    }
                )

        logger.info(
            "Anomaly status updated",
            anomaly_id=anomaly_id,
            from_status=previous.value,
            to_status=status.value,
        )
        return anomaly

    def apply_remediation(
        self,
        anomaly_id: str,
        action: str,
        description: str,
        applied_by: str,
        priority: RemediationPriority = RemediationPriority.MEDIUM,
        category: RemediationCategory = RemediationCategory.OTHER,
        estimated_effort: str = "unknown",
        rollback_plan: str | None = None,
    ) -> Remediation:
        """Attach a corrective action to an anomaly.

        A ``detected`` anomaly moves to ``investigating``.
        """
        with self._lock:
            anomaly = self.get(anomaly_id)
            now = self._now()
            remediation = Remediation(
                id=_new_id("remediation"),
                action=action,
                description=description,
                priority=priority,
                category=category,
                estimated_effort=estimated_effort,
                applied_at=now,
                applied_by=applied_by,
                rollback_plan=rollback_plan,
            )
            anomaly.remediations.append(remediation)

            if anomaly.status == AnomalyStatus.DETECTED:
                anomaly.status = AnomalyStatus.INVESTIGATING
                anomaly.investigation_started_at = now

        logger.info("Remediation applied", anomaly_id=anomaly_id, action=action)
        return remediation

    def list_anomalies(self, filters: AnomalyFilters | None = None) -> tuple[list[Anomaly], int]:
        """Filtered anomalies, newest first.

        Returns:
            The requested page and the total number of matches
        """
        filters = filters or AnomalyFilters()
        anomalies = list(self._anomalies.values())

        if filters.status:
            anomalies = [a for a in anomalies if a.status in filters.status]
        if filters.severity:
            anomalies = [a for a in anomalies if a.severity in filters.severity]
        if filters.service:
            anomalies = [a for a in anomalies if a.service in filters.service]
        if filters.start is not None:
            start = _as_utc(filters.start)
            anomalies = [a for a in anomalies if a.detected_at >= start]
        if filters.end is not None:
            end = _as_utc(filters.end)
            anomalies = [a for a in anomalies if a.detected_at <= end]

        anomalies.sort(key=lambda a: a.detected_at, reverse=True)
        total = len(anomalies)

        if filters.limit is not None:
            anomalies = anomalies[filters.offset : filters.offset + filters.limit]

        return anomalies, total

    def get_stats(self) -> dict[str, Any]:
        """Aggregate counts and resolution figures."""
        anomalies = list(self._anomalies.values())
        by_status: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        by_service: dict[str, int] = {}
        for anomaly in anomalies:
            by_status[anomaly.status.value] = by_status.get(anomaly.status.value, 0) + 1
            by_severity[anomaly.severity.value] = by_severity.get(anomaly.severity.value, 0) + 1
            by_service[anomaly.service] = by_service.get(anomaly.service, 0) + 1

        resolved = [a for a in anomalies if a.resolved_at is not None]
        avg_resolution_minutes = 0
        if resolved:
            total_seconds = sum((a.resolved_at - a.detected_at).total_seconds() for a in resolved)
            avg_resolution_minutes = round(total_seconds / len(resolved) / 60)

        week_ago = self._now() - timedelta(days=7)
        resolved_this_week = sum(
            1
            for a in resolved
            if a.status == AnomalyStatus.RESOLVED and a.resolved_at >= week_ago
        )
        critical_open = sum(
            1 for a in anomalies if a.severity == AlertSeverity.CRITICAL and a.is_open
        )

        return {
            "total": len(anomalies),
            "by_status": by_status,
            "by_severity": by_severity,
            "by_service": by_service,
            "avg_resolution_minutes": avg_resolution_minutes,
            "resolved_this_week": resolved_this_week,
            "critical_open": critical_open,
        }

    def export_csv(self, filters: AnomalyFilters | None = None) -> str:
        """Render matching anomalies as CSV text."""
        anomalies, _ = self.list_anomalies(filters)
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for anomaly in anomalies:
            writer.writerow(anomaly.to_dict())
        return buffer.getvalue()

    def cleanup(self, max_age_days: int | None = None) -> int:
        """Remove closed anomalies whose closing time is older than the cutoff.

        Returns:
            Number of anomalies removed
        """
        days = self.config.retention_days if max_age_days is None else max_age_days
        cutoff = self._now() - timedelta(days=days)

        with self._lock:
            expired = [
                anomaly_id
                for anomaly_id, anomaly in self._anomalies.items()
                if anomaly.status == AnomalyStatus.CLOSED
                and anomaly.closed_at is not None
                and anomaly.closed_at < cutoff
            ]
            for anomaly_id in expired:
                del self._anomalies[anomaly_id]

        if expired:
            logger.info("Removed old anomalies", count=len(expired))
        return len(expired)

    def _evict_overflow(self) -> None:
        # Caller holds the lock; finished records go before open ones, oldest first
        overflow = len(self._anomalies) - self.config.max_records
        if overflow <= 0:
            return

        finished = [a.id for a in self._anomalies.values() if not a.is_open]
        remaining = [a.id for a in self._anomalies.values() if a.is_open]
        evicted = (finished + remaining)[:overflow]
        for anomaly_id in evicted:
            del self._anomalies[anomaly_id]
        logger.warning("Anomaly registry full, evicted oldest records", count=len(evicted))

    def _find_related(self, anomaly: Anomaly) -> list[Anomaly]:
        since = anomaly.detected_at - timedelta(hours=self.config.related_window_hours)
        return [
            existing
            for existing in self._anomalies.values()
            if existing.id != anomaly.id
            and existing.detected_at >= since
            and (
                existing.service == anomaly.service
                or existing.metric == anomaly.metric
                or (anomaly.component is not None and existing.component == anomaly.component)
            )
        ]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored timestamps."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value
