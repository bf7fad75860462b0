"""Process-local resource metrics: memory, CPU, uptime and disk usage.

All figures here are approximations. Memory is the resident set size measured
against an assumed system total (``SYSTEM_MEMORY_BYTES``) rather than real
hardware introspection, and CPU usage is the process CPU time consumed over a
short sampling window divided by the wall-clock length of that window.
"""

import asyncio
import time
from dataclasses import dataclass

import psutil
import structlog

from ..constants import CONSTANTS
from .models import MemoryUsage

logger = structlog.get_logger(__name__)


@dataclass
class SystemMetricsConfig:
    """Configuration for the self metrics collector."""

    total_memory_bytes: int = CONSTANTS.SYSTEM_MEMORY_BYTES
    cpu_sample_interval: float = CONSTANTS.CPU_SAMPLE_INTERVAL  # seconds
    disk_path: str = CONSTANTS.DISK_USAGE_PATH


class SelfMetricsCollector:
    """Collects approximate resource usage of the current process."""

    def __init__(self, config: SystemMetricsConfig | None = None):
        """Initialize the collector.

        Args:
            config: Collector configuration
        """
        self.config = config or SystemMetricsConfig()
        self._process = psutil.Process()
        self._started_at = time.monotonic()

    @property
    def pid(self) -> int:
        return self._process.pid

    def uptime_seconds(self) -> float:
        """Seconds elapsed since the collector was created."""
        return time.monotonic() - self._started_at

    def memory_usage(self) -> MemoryUsage:
        """Resident memory relative to the configured system total.

        Returns:
            Memory usage with the percentage capped at 100
        """
        used = self._process.memory_info().rss
        total = max(self.config.total_memory_bytes, 1)
        return MemoryUsage(
            used=used,
            total=total,
            free=max(total - used, 0),
            percentage=min((used / total) * 100, 100.0),
        )

    async def cpu_usage(self) -> float:
        """Sample process CPU usage over the configured window.

        Returns:
            CPU usage percentage in ``[0, 100]``
        """
        start_cpu = self._cpu_seconds()
        start_wall = time.perf_counter()

        await asyncio.sleep(self.config.cpu_sample_interval)

        cpu_delta = self._cpu_seconds() - start_cpu
        wall_delta = time.perf_counter() - start_wall
        if wall_delta <= 0:
            return 0.0

        return max(0.0, min((cpu_delta / wall_delta) * 100, 100.0))

    def disk_usage_percent(self) -> float:
        """Used space of the configured filesystem, in percent."""
        try:
            return float(psutil.disk_usage(self.config.disk_path).percent)
        except OSError as e:
            logger.warning("Disk usage unavailable", path=self.config.disk_path, error=str(e))
            return 0.0

    def _cpu_seconds(self) -> float:
        times = self._process.cpu_times()
        return times.user + times.system
