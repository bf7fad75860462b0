"""Configuration settings for the monitoring subsystem."""

from dataclasses import dataclass, field

from ..constants import CONSTANTS
from ..monitoring.alerts import AlertConfig
from ..monitoring.anomalies import AnomalyConfig
from ..monitoring.health import HealthConfig
from ..monitoring.metrics import MetricsConfig
from ..monitoring.service import SchedulerConfig
from ..monitoring.system import SystemMetricsConfig
from ..monitoring.thresholds import ThresholdTable


@dataclass
class DatabaseConfig:
    """Relational database connection settings."""

    enabled: bool = True
    url: str = CONSTANTS.DATABASE_URL
    pool_size: int = CONSTANTS.DATABASE_POOL_SIZE
    echo: bool = False


@dataclass
class StorageConfig:
    """S3 compatible object storage settings."""

    enabled: bool = True
    endpoint_url: str = CONSTANTS.STORAGE_ENDPOINT_URL
    access_key: str | None = CONSTANTS.STORAGE_ACCESS_KEY
    secret_key: str | None = CONSTANTS.STORAGE_SECRET_KEY
    region: str = CONSTANTS.STORAGE_REGION
    required_bucket: str = CONSTANTS.STORAGE_REQUIRED_BUCKET


@dataclass
class MonitoringConfig:
    """Complete monitoring configuration.

    Every section defaults to values from ``eventwatch.constants``, which in
    turn read the environment.
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    system: SystemMetricsConfig = field(default_factory=SystemMetricsConfig)
    thresholds: ThresholdTable = field(default_factory=ThresholdTable)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    anomalies: AnomalyConfig = field(default_factory=AnomalyConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
