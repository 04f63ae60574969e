"""
Observability module: Metrics and structured logging.
"""

from sessionstore.observability.metrics import (
    MetricsCollector,
    Counter,
    Histogram,
    SessionMetrics,
)
from sessionstore.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    LogLevel,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Histogram",
    "SessionMetrics",
    "StructuredLogger",
    "JsonFormatter",
    "LogLevel",
    "setup_logging",
]
