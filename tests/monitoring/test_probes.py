"""Tests for dependency health probes."""

from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from sqlalchemy.ext.asyncio import create_async_engine

from eventwatch.monitoring.models import HealthStatus, MemoryUsage
from eventwatch.monitoring.probes import (
    ApplicationProbe,
    DatabaseProbe,
    ProbeThresholds,
    StorageProbe,
    classify,
)

GIB = 1024**3


def _not_found() -> ClientError:
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")


class TestClassify:
    """Test threshold classification."""

    def test_bands(self):
        thresholds = ProbeThresholds(warning=1000, critical=5000)

        assert classify(500, thresholds) == HealthStatus.HEALTHY
        assert classify(1000, thresholds) == HealthStatus.HEALTHY
        assert classify(1001, thresholds) == HealthStatus.DEGRADED
        assert classify(5000, thresholds) == HealthStatus.DEGRADED
        assert classify(5001, thresholds) == HealthStatus.UNHEALTHY


@pytest_asyncio.fixture
async def sqlite_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    await engine.dispose()


class TestDatabaseProbe:
    """Test the database probe."""

    @pytest.mark.asyncio
    async def test_healthy_round_trip(self, sqlite_engine):
        probe = DatabaseProbe(sqlite_engine)

        result = await probe.check()

        assert result.status == HealthStatus.HEALTHY
        assert result.response_time_ms is not None
        assert result.details["connections"] == 0
        assert result.details["max_connections"] == 100
        assert result.details["connection_usage"] == "0%"

    @pytest.mark.asyncio
    async def test_connection_counts_fallback(self, sqlite_engine):
        probe = DatabaseProbe(sqlite_engine)

        assert await probe.connection_counts() == (0, 100)

    @pytest.mark.asyncio
    async def test_latency_above_warning_degrades(self, sqlite_engine):
        probe = DatabaseProbe(sqlite_engine, ProbeThresholds(warning=-1, critical=10_000))

        result = await probe.check()

        assert result.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await DatabaseProbe(None).check()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.details["error"] == "Database not configured"

    @pytest.mark.asyncio
    async def test_connection_failure_is_unhealthy(self):
        engine = MagicMock()
        engine.connect.side_effect = ConnectionRefusedError("connection refused")

        result = await DatabaseProbe(engine).check()

        assert result.status == HealthStatus.UNHEALTHY
        assert "connection refused" in result.details["error"]


class TestStorageProbe:
    """Test the object storage probe."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.list_buckets.return_value = {"Buckets": [{"Name": "images"}, {"Name": "avatars"}]}
        return client

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        result = await StorageProbe(client, endpoint="http://minio:9000").check()

        assert result.status == HealthStatus.HEALTHY
        assert result.details["buckets_count"] == 2
        assert result.details["required_bucket_exists"] is True
        assert result.details["endpoint"] == "http://minio:9000"
        client.head_bucket.assert_called_once_with(Bucket="images")

    @pytest.mark.asyncio
    async def test_missing_bucket_degrades(self, client):
        client.head_bucket.side_effect = _not_found()

        result = await StorageProbe(client).check()

        assert result.status == HealthStatus.DEGRADED
        assert result.details["required_bucket_exists"] is False

    @pytest.mark.asyncio
    async def test_missing_bucket_degrades_regardless_of_latency(self, client):
        client.head_bucket.side_effect = _not_found()
        probe = StorageProbe(client, thresholds=ProbeThresholds(warning=-2, critical=-1))

        result = await probe.check()

        assert result.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_access_denied_is_unhealthy(self, client):
        client.head_bucket.side_effect = ClientError(
            {"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket"
        )

        result = await StorageProbe(client).check()

        assert result.status == HealthStatus.UNHEALTHY
        assert "Bucket check failed" in result.details["error"]
        assert "(Service: storage)" in result.details["error"]

    @pytest.mark.asyncio
    async def test_failure_is_unhealthy(self, client):
        client.list_buckets.side_effect = RuntimeError("endpoint unreachable")

        result = await StorageProbe(client).check()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.details["error"] == "endpoint unreachable"

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await StorageProbe(None).check()

        assert result.status == HealthStatus.UNHEALTHY


class TestApplicationProbe:
    """Test the application self probe."""

    def _collector(self, percentage: float) -> MagicMock:
        collector = MagicMock()
        used = int(8 * GIB * percentage / 100)
        collector.memory_usage.return_value = MemoryUsage(used, 8 * GIB, 8 * GIB - used, percentage)
        collector.uptime_seconds.return_value = 120.0
        collector.pid = 99
        return collector

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("percentage", "expected"),
        [
            (90.0, HealthStatus.UNHEALTHY),
            (80.0, HealthStatus.DEGRADED),
            (50.0, HealthStatus.HEALTHY),
        ],
    )
    async def test_memory_bands(self, percentage, expected):
        result = await ApplicationProbe(self._collector(percentage)).check()

        assert result.status == expected
        assert result.uptime_seconds == 120.0
        assert result.details["pid"] == 99
        assert result.details["memory_usage"] == f"{percentage:.2f}%"

    @pytest.mark.asyncio
    async def test_collector_failure_is_unhealthy(self):
        collector = self._collector(10.0)
        collector.memory_usage.side_effect = RuntimeError("psutil unavailable")

        result = await ApplicationProbe(collector).check()

        assert result.status == HealthStatus.UNHEALTHY
