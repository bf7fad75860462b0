"""Command-line interface modules for eventwatch."""

from .monitor_cli import app

__all__ = [
    "app",
]
