"""
Observability module: Metrics and structured logging.
"""

from ydbcore.observability.metrics import (
    Counter,
    DriverMetrics,
    Gauge,
    Histogram,
    MetricsCollector,
)
from ydbcore.observability.logging import LogLevel, log_context, setup_logging

__all__ = [
    "Counter",
    "DriverMetrics",
    "Gauge",
    "Histogram",
    "MetricsCollector",
    "LogLevel",
    "log_context",
    "setup_logging",
]
