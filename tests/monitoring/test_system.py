"""Tests for the self metrics collector."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from eventwatch.monitoring.system import SelfMetricsCollector, SystemMetricsConfig

GIB = 1024**3


@pytest.fixture
def collector():
    collector = SelfMetricsCollector(SystemMetricsConfig(total_memory_bytes=8 * GIB, cpu_sample_interval=0.01))
    collector._process = MagicMock()
    collector._process.pid = 4242
    return collector


class TestSelfMetricsCollector:
    """Test approximate process metrics."""

    def test_default_config(self):
        config = SystemMetricsConfig()

        assert config.total_memory_bytes == 8 * GIB
        assert config.cpu_sample_interval == 0.1
        assert config.disk_path == "/"

    def test_memory_usage_against_assumed_total(self, collector):
        collector._process.memory_info.return_value = SimpleNamespace(rss=2 * GIB)

        memory = collector.memory_usage()

        assert memory.used == 2 * GIB
        assert memory.total == 8 * GIB
        assert memory.free == 6 * GIB
        assert memory.percentage == 25.0

    def test_memory_percentage_capped(self, collector):
        collector._process.memory_info.return_value = SimpleNamespace(rss=10 * GIB)

        memory = collector.memory_usage()

        assert memory.percentage == 100.0
        assert memory.free == 0

    @pytest.mark.asyncio
    async def test_cpu_usage_bounded(self, collector):
        collector._process.cpu_times.side_effect = [
            SimpleNamespace(user=1.0, system=0.5),
            SimpleNamespace(user=100.0, system=50.0),
        ]

        usage = await collector.cpu_usage()

        assert usage == 100.0

    @pytest.mark.asyncio
    async def test_cpu_usage_idle(self, collector):
        collector._process.cpu_times.return_value = SimpleNamespace(user=1.0, system=0.5)

        usage = await collector.cpu_usage()

        assert usage == 0.0

    def test_uptime_increases(self, collector):
        with patch("eventwatch.monitoring.system.time.monotonic", return_value=collector._started_at + 30):
            assert collector.uptime_seconds() == 30

    def test_pid(self, collector):
        assert collector.pid == 4242

    def test_disk_usage_percent(self, collector):
        with patch("psutil.disk_usage", return_value=SimpleNamespace(percent=42.5)):
            assert collector.disk_usage_percent() == 42.5

    def test_disk_usage_unavailable(self, collector):
        with patch("psutil.disk_usage", side_effect=OSError("no such path")):
            assert collector.disk_usage_percent() == 0.0
