"""Monitoring and health aggregation.

This package provides:
- Dependency health probes for the database, object storage and the process itself
- Rolling request metrics and approximate self metrics
- Health aggregation into timestamped snapshots
- Threshold evaluation, alert dispatch with cooldowns and anomaly triage records
- Prometheus export of snapshots and request timings
"""

from .alerts import AlertConfig, AlertDispatcher, ChannelConfig, ChannelType
from .anomalies import AnomalyConfig, AnomalyRegistry
from .health import HealthAggregator, HealthConfig
from .metrics import MetricsConfig, MetricsExporter
from .models import (
    AlertEvent,
    AlertHistoryRecord,
    AlertMetric,
    AlertSeverity,
    AlertStatus,
    HealthSnapshot,
    HealthStatus,
    ServiceHealth,
)
from .probes import ApplicationProbe, DatabaseProbe, ProbeThresholds, StorageProbe
from .recorder import RequestMetricsRecorder
from .service import MonitoringService, SchedulerConfig
from .system import SelfMetricsCollector, SystemMetricsConfig
from .thresholds import ThresholdEvaluator, ThresholdTable

__all__ = [
    "AlertConfig",
    "AlertDispatcher",
    "ChannelConfig",
    "ChannelType",
    "AnomalyConfig",
    "AnomalyRegistry",
    "HealthAggregator",
    "HealthConfig",
    "MetricsConfig",
    "MetricsExporter",
    "AlertEvent",
    "AlertHistoryRecord",
    "AlertMetric",
    "AlertSeverity",
    "AlertStatus",
    "HealthSnapshot",
    "HealthStatus",
    "ServiceHealth",
    "ApplicationProbe",
    "DatabaseProbe",
    "ProbeThresholds",
    "StorageProbe",
    "RequestMetricsRecorder",
    "MonitoringService",
    "SchedulerConfig",
    "SelfMetricsCollector",
    "SystemMetricsConfig",
    "ThresholdEvaluator",
    "ThresholdTable",
]
