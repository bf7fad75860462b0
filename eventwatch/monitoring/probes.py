"""Live health probes for the services the backend depends on."""

import asyncio
import platform
import sys
import time
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from botocore.exceptions import ClientError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ..constants import CONSTANTS
from ..core.exceptions import ProbeError
from .models import HealthStatus, ServiceHealth
from .system import SelfMetricsCollector

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProbeThresholds:
    """Warning and critical limits for one probe measurement."""

    warning: float
    critical: float


def classify(value: float, thresholds: ProbeThresholds) -> HealthStatus:
    """Map a measurement onto a health status.

    Args:
        value: Measured value (latency in ms or a percentage)
        thresholds: Limits to compare against

    Returns:
        Unhealthy above the critical limit, degraded above the warning limit
    """
    if value > thresholds.critical:
        return HealthStatus.UNHEALTHY
    if value > thresholds.warning:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthProbe(Protocol):
    """A single live check of one dependency."""

    name: str

    async def check(self) -> ServiceHealth: ...


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _failure(error: Exception | str, started: float | None = None) -> ServiceHealth:
    return ServiceHealth(
        status=HealthStatus.UNHEALTHY,
        response_time_ms=_elapsed_ms(started) if started is not None else None,
        details={"error": str(error)},
    )


class DatabaseProbe:
    """Round-trip check against the relational database."""

    name = "database"

    def __init__(
        self,
        engine: AsyncEngine | None,
        thresholds: ProbeThresholds | None = None,
        default_max_connections: int = CONSTANTS.DATABASE_DEFAULT_MAX_CONNECTIONS,
    ):
        """Initialize the probe.

        Args:
            engine: Async SQLAlchemy engine, None when no database is configured
            thresholds: Latency limits in milliseconds
            default_max_connections: Connection limit reported when it cannot be read
        """
        self.engine = engine
        self.thresholds = thresholds or ProbeThresholds(
            CONSTANTS.DATABASE_WARNING_MS, CONSTANTS.DATABASE_CRITICAL_MS
        )
        self.default_max_connections = default_max_connections

    async def check(self) -> ServiceHealth:
        if self.engine is None:
            return _failure("Database not configured")

        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            response_time = _elapsed_ms(started)
        except Exception as e:
            logger.warning("Database probe failed", error=str(e))
            return _failure(e, started)

        active, max_connections = await self.connection_counts()
        usage = (active / max_connections * 100) if max_connections else 0.0

        return ServiceHealth(
            status=classify(response_time, self.thresholds),
            response_time_ms=response_time,
            details={
                "connections": active,
                "max_connections": max_connections,
                "connection_usage": f"{usage:.0f}%",
            },
        )

    async def connection_counts(self) -> tuple[int, int]:
        """Active and maximum connection counts.

        Only PostgreSQL exposes these; any other backend, or a failed query,
        reports ``(0, default_max_connections)``.
        """
        if self.engine is None:
            return 0, self.default_max_connections

        try:
            async with self.engine.connect() as conn:
                active = await conn.scalar(
                    text("SELECT count(*) FROM pg_stat_activity WHERE state = 'active'")
                )
                max_connections = await conn.scalar(text("SHOW max_connections"))
            return int(active or 0), int(max_connections or self.default_max_connections)
        except Exception as e:
            logger.debug("Connection introspection unavailable", error=str(e))
            return 0, self.default_max_connections


class StorageProbe:
    """Round-trip check against S3 compatible object storage."""

    name = "storage"

    def __init__(
        self,
        client: Any | None,
        required_bucket: str = CONSTANTS.STORAGE_REQUIRED_BUCKET,
        thresholds: ProbeThresholds | None = None,
        endpoint: str | None = None,
    ):
        """Initialize the probe.

        Args:
            client: boto3 S3 client, None when no storage is configured
            required_bucket: Bucket whose absence degrades the service
            thresholds: Latency limits in milliseconds
            endpoint: Endpoint reported in the probe details
        """
        self.client = client
        self.required_bucket = required_bucket
        self.thresholds = thresholds or ProbeThresholds(
            CONSTANTS.STORAGE_WARNING_MS, CONSTANTS.STORAGE_CRITICAL_MS
        )
        self.endpoint = endpoint

    async def check(self) -> ServiceHealth:
        if self.client is None:
            return _failure("Storage not configured")

        started = time.perf_counter()
        try:
            response = await asyncio.to_thread(self.client.list_buckets)
            bucket_exists = await self._bucket_exists()
            response_time = _elapsed_ms(started)
        except Exception as e:
            logger.warning("Storage probe failed", error=str(e))
            return _failure(e, started)

        status = classify(response_time, self.thresholds)
        if not bucket_exists:
            status = HealthStatus.DEGRADED

        return ServiceHealth(
            status=status,
            response_time_ms=response_time,
            details={
                "buckets_count": len(response.get("Buckets", [])),
                "required_bucket": self.required_bucket,
                "required_bucket_exists": bucket_exists,
                "endpoint": self.endpoint,
            },
        )

    async def _bucket_exists(self) -> bool:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.required_bucket)
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            if error_code in ("404", "NoSuchBucket", "NotFound"):
                return False
            raise ProbeError("Bucket check failed", service=self.name, cause=e) from e


class ApplicationProbe:
    """Self check of the running process based on approximate memory use."""

    name = "application"

    def __init__(self, collector: SelfMetricsCollector, thresholds: ProbeThresholds | None = None):
        self.collector = collector
        self.thresholds = thresholds or ProbeThresholds(
            CONSTANTS.APPLICATION_MEMORY_WARNING_PERCENT,
            CONSTANTS.APPLICATION_MEMORY_CRITICAL_PERCENT,
        )

    async def check(self) -> ServiceHealth:
        started = time.perf_counter()
        try:
            memory = self.collector.memory_usage()
        except Exception as e:
            logger.warning("Application probe failed", error=str(e))
            return _failure(e, started)

        return ServiceHealth(
            status=classify(memory.percentage, self.thresholds),
            response_time_ms=_elapsed_ms(started),
            uptime_seconds=self.collector.uptime_seconds(),
            details={
                "memory_usage": f"{memory.percentage:.2f}%",
                "memory_used_mb": round(memory.used / 1024 / 1024, 1),
                "python_version": sys.version.split()[0],
                "platform": platform.system().lower(),
                "pid": self.collector.pid,
            },
        )
