"""In-process rolling store of request counts and response-time samples."""

import threading
import time
from collections import deque
from collections.abc import Callable

import structlog

from ..constants import CONSTANTS
from .models import RequestMetrics

logger = structlog.get_logger(__name__)


class RequestMetricsRecorder:
    """Rolling request metrics fed by the HTTP layer on every completed request.

    Counters only ever grow during the process lifetime. Response-time samples
    are kept in bounded rings: a global one and one per request path, each
    evicting its oldest sample when full.
    """

    def __init__(
        self,
        max_samples: int = CONSTANTS.MAX_RESPONSE_TIME_SAMPLES,
        max_path_samples: int = CONSTANTS.MAX_PATH_SAMPLES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the recorder.

        Args:
            max_samples: Capacity of the global response-time ring
            max_path_samples: Capacity of each per-path ring
            clock: Monotonic clock used for the uptime-based request rate
        """
        self.max_samples = max_samples
        self.max_path_samples = max_path_samples
        self._clock = clock
        self._started_at = clock()
        self._lock = threading.Lock()

        self._total_requests = 0
        self._error_count = 0
        self._response_times: deque[float] = deque(maxlen=max_samples)
        self._path_samples: dict[str, deque[float]] = {}

    def record(self, path: str, response_time_ms: float, is_error: bool = False) -> None:
        """Record one completed request.

        Args:
            path: Request path
            response_time_ms: Response time in milliseconds
            is_error: Whether the request ended in an error response
        """
        with self._lock:
            self._total_requests += 1
            if is_error:
                self._error_count += 1

            self._response_times.append(response_time_ms)

            samples = self._path_samples.get(path)
            if samples is None:
                samples = deque(maxlen=self.max_path_samples)
                self._path_samples[path] = samples
            samples.append(response_time_ms)

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def error_count(self) -> int:
        return self._error_count

    def uptime_seconds(self) -> float:
        return self._clock() - self._started_at

    def response_times(self) -> list[float]:
        """Samples in the global ring, oldest first."""
        with self._lock:
            return list(self._response_times)

    def path_response_times(self, path: str) -> list[float]:
        """Samples recorded for one path, oldest first."""
        with self._lock:
            return list(self._path_samples.get(path, ()))

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._path_samples)

    def recent_response_times(self, count: int = CONSTANTS.TREND_SAMPLE_COUNT) -> list[float]:
        """The ``count`` most recent samples, oldest first."""
        if count <= 0:
            return []
        with self._lock:
            return list(self._response_times)[-count:]

    def average_response_time(self) -> float:
        """Mean of the global ring in milliseconds (0 when empty)."""
        with self._lock:
            if not self._response_times:
                return 0.0
            return round(sum(self._response_times) / len(self._response_times), 2)

    def requests_per_second(self) -> float:
        """Total requests divided by process uptime.

        This is a lifetime average rather than a sliding-window rate, so it
        lags behind bursts and underestimates recent load on long uptimes.
        Alert thresholds are tuned against this definition.
        """
        uptime = self.uptime_seconds()
        if uptime <= 0:
            return 0.0
        return round(self._total_requests / uptime, 2)

    def snapshot(self) -> RequestMetrics:
        """Current request metrics."""
        return RequestMetrics(
            total=self._total_requests,
            errors=self._error_count,
            average_response_time_ms=self.average_response_time(),
            requests_per_second=self.requests_per_second(),
            recent_response_times=tuple(self.recent_response_times()),
        )

    def cleanup(self) -> int:
        """Truncate every ring to its capacity.

        Counters and known paths are kept. Returns the number of samples
        dropped, which stays zero unless a capacity was lowered at runtime.
        """
        dropped = 0
        with self._lock:
            if self._response_times.maxlen != self.max_samples:
                dropped += max(len(self._response_times) - self.max_samples, 0)
                self._response_times = deque(self._response_times, maxlen=self.max_samples)

            for path, samples in self._path_samples.items():
                if samples.maxlen != self.max_path_samples:
                    dropped += max(len(samples) - self.max_path_samples, 0)
                    self._path_samples[path] = deque(samples, maxlen=self.max_path_samples)

        logger.debug("Request metrics cleanup", dropped=dropped, paths=len(self._path_samples))
        return dropped
