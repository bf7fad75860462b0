"""Health aggregation, alerting and metrics export for the events backend."""

__version__ = "1.0.0"
