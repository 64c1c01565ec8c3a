"""Observability layer - logging and metrics."""

from memer.observability.logging import setup_logging
from memer.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
