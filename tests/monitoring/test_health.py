"""Tests for health aggregation."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from eventwatch.monitoring.health import HealthAggregator, HealthConfig
from eventwatch.monitoring.models import HealthStatus, MemoryUsage
from eventwatch.monitoring.recorder import RequestMetricsRecorder

GIB = 1024**3


class SlowProbe:
    name = "storage"

    async def check(self):
        await asyncio.sleep(10)


class BrokenProbe:
    name = "database"

    async def check(self):
        raise RuntimeError("driver crashed")


@pytest.fixture
def collector():
    collector = MagicMock()
    collector.cpu_usage = AsyncMock(return_value=12.5)
    collector.memory_usage.return_value = MemoryUsage(GIB, 8 * GIB, 7 * GIB, 12.5)
    collector.uptime_seconds.return_value = 300.0
    collector.disk_usage_percent.return_value = 40.0
    return collector


class TestHealthConfig:
    def test_default_config(self):
        config = HealthConfig()

        assert config.probe_timeout_seconds == 5.0
        assert config.database_warning_ms == 1000
        assert config.storage_critical_ms == 10000
        assert config.memory_warning_percent == 75.0


class TestHealthAggregator:
    """Test snapshot aggregation."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, collector, probe_factory, fake_clock):
        probes = [probe_factory(name) for name in ("database", "storage", "application")]
        aggregator = HealthAggregator(probes, collector, RequestMetricsRecorder(clock=fake_clock))

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.status == HealthStatus.HEALTHY
        assert set(snapshot.services) == {"database", "storage", "application"}
        assert snapshot.metrics.cpu_usage_percent == 12.5
        assert snapshot.metrics.disk_usage_percent == 40.0
        assert snapshot.metrics.uptime_seconds == 300.0
        assert snapshot.version == "1.0.0"
        assert all(probe.calls == 1 for probe in probes)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("statuses", "expected"),
        [
            ((HealthStatus.HEALTHY, HealthStatus.DEGRADED, HealthStatus.HEALTHY), HealthStatus.DEGRADED),
            ((HealthStatus.UNHEALTHY, HealthStatus.DEGRADED, HealthStatus.HEALTHY), HealthStatus.UNHEALTHY),
            ((HealthStatus.HEALTHY, HealthStatus.HEALTHY, HealthStatus.UNHEALTHY), HealthStatus.UNHEALTHY),
        ],
    )
    async def test_overall_status_is_worst(self, collector, probe_factory, statuses, expected):
        probes = [
            probe_factory(name, status)
            for name, status in zip(("database", "storage", "application"), statuses)
        ]
        aggregator = HealthAggregator(probes, collector, RequestMetricsRecorder())

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.status == expected

    @pytest.mark.asyncio
    async def test_database_connections_from_probe_details(self, collector, probe_factory):
        probes = [probe_factory("database", details={"connections": 42, "max_connections": 200})]
        aggregator = HealthAggregator(probes, collector, RequestMetricsRecorder())

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.metrics.database_connections == 42
        assert snapshot.metrics.max_database_connections == 200

    @pytest.mark.asyncio
    async def test_database_connections_default(self, collector, probe_factory):
        aggregator = HealthAggregator([probe_factory("storage")], collector, RequestMetricsRecorder())

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.metrics.database_connections == 0
        assert snapshot.metrics.max_database_connections == 100

    @pytest.mark.asyncio
    async def test_probe_timeout_is_unhealthy(self, collector, probe_factory):
        aggregator = HealthAggregator(
            [probe_factory("database"), SlowProbe()],
            collector,
            RequestMetricsRecorder(),
            HealthConfig(probe_timeout_seconds=0.01),
        )

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.services["storage"].status == HealthStatus.UNHEALTHY
        assert "Timed out" in snapshot.services["storage"].details["error"]
        assert snapshot.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_probe_exception_is_unhealthy(self, collector, probe_factory):
        aggregator = HealthAggregator(
            [BrokenProbe(), probe_factory("application")], collector, RequestMetricsRecorder()
        )

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.services["database"].status == HealthStatus.UNHEALTHY
        assert snapshot.services["database"].details["error"] == "driver crashed"
        assert snapshot.services["application"].status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_request_metrics_included(self, collector, probe_factory, fake_clock):
        recorder = RequestMetricsRecorder(clock=fake_clock)
        recorder.record("/events", 100.0)
        recorder.record("/events", 300.0, is_error=True)
        fake_clock.advance(1)
        aggregator = HealthAggregator([probe_factory("application")], collector, recorder)

        snapshot = await aggregator.get_health_snapshot()

        assert snapshot.metrics.response_time_ms == 200.0
        assert snapshot.metrics.requests.total == 2
        assert snapshot.metrics.requests.errors == 1
        assert snapshot.metrics.requests.requests_per_second == 2.0

    @pytest.mark.asyncio
    async def test_snapshot_to_dict(self, collector, probe_factory):
        aggregator = HealthAggregator([probe_factory("database")], collector, RequestMetricsRecorder())

        data = (await aggregator.get_health_snapshot()).to_dict()

        assert data["status"] == "healthy"
        assert data["services"]["database"]["status"] == "healthy"
        assert data["metrics"]["connections"] == {"database": 0, "max_database": 100}
        assert data["metrics"]["memory"]["percentage"] == 12.5
