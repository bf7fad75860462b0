"""API middleware modules for request processing and observability."""

from .monitoring import RequestMetricsMiddleware

__all__ = [
    "RequestMetricsMiddleware",
]
