"""
Metrics Collector: Prometheus-Compatible Session Operation Metrics

Provides:
- Labelled counters for operation outcomes
- Millisecond latency histograms per operation
- Prometheus text export

All metric types are thread-safe; session operations run on request
handler threads.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Any, Iterator, Optional, Sequence

LabelKey = tuple[tuple[str, str], ...]


def _label_key(label_names: tuple[str, ...], labels: dict[str, str]) -> LabelKey:
    return tuple(sorted((k, str(labels.get(k, ""))) for k in label_names))


class Counter:
    """
    Monotonically increasing counter metric.

    Usage:
        ops = Counter("session_operations_total", ["operation", "outcome"])
        ops.inc(operation="get", outcome="hit")
    """

    __slots__ = ("_name", "_help", "_label_names", "_values", "_lock")

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = _label_key(self._label_names, labels)
        with self._lock:
            self._values[key] += value

    def get(self, **labels: str) -> float:
        key = _label_key(self._label_names, labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        """Iterate all label combinations."""
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield dict(key), value

    @property
    def name(self) -> str:
        return self._name

    @property
    def help(self) -> str:
        return self._help


class Histogram:
    """
    Histogram with configurable buckets (milliseconds).

    Usage:
        latency = Histogram("session_operation_latency_ms", ["operation"])

        with latency.time(operation="update"):
            store.update(session_id, attrs)
    """

    __slots__ = (
        "_name", "_help", "_label_names", "_buckets",
        "_bucket_counts", "_sums", "_counts", "_lock",
    )

    DEFAULT_BUCKETS = (
        0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0,
        100.0, 250.0, 500.0, 1000.0, 5000.0, float("inf"),
    )

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))

        # Ensure +Inf bucket
        if self._buckets[-1] != float("inf"):
            self._buckets = self._buckets + (float("inf"),)

        self._bucket_counts: dict[LabelKey, list[int]] = {}
        self._sums: dict[LabelKey, float] = defaultdict(float)
        self._counts: dict[LabelKey, int] = defaultdict(int)
        self._lock = threading.Lock()

    def observe(self, value: float, **labels: str) -> None:
        key = _label_key(self._label_names, labels)

        with self._lock:
            counts = self._bucket_counts.setdefault(key, [0] * len(self._buckets))
            # Cumulative buckets
            for i, bound in enumerate(self._buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] += value
            self._counts[key] += 1

    def time(self, **labels: str) -> HistogramTimer:
        """Context manager for timing operations."""
        return HistogramTimer(self, labels)

    def count(self, **labels: str) -> int:
        key = _label_key(self._label_names, labels)
        with self._lock:
            return self._counts.get(key, 0)

    def collect(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            snapshot = [
                (key, list(counts), self._sums[key], self._counts[key])
                for key, counts in self._bucket_counts.items()
            ]
        for key, counts, total, n in snapshot:
            yield {
                "labels": dict(key),
                "buckets": list(zip(self._buckets, counts)),
                "sum": total,
                "count": n,
            }

    @property
    def name(self) -> str:
        return self._name

    @property
    def help(self) -> str:
        return self._help


class HistogramTimer:
    """Context manager recording elapsed milliseconds into a histogram."""

    __slots__ = ("_histogram", "_labels", "_start")

    def __init__(self, histogram: Histogram, labels: dict[str, str]) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start = 0.0

    def __enter__(self) -> HistogramTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        elapsed_ms = (time.perf_counter() - self._start) * 1000
        self._histogram.observe(elapsed_ms, **self._labels)


class MetricsCollector:
    """
    Central registry for all metrics.

    Usage:
        collector = MetricsCollector.get_instance()
        ops = collector.counter("session_operations_total", ["operation", "outcome"])
        output = collector.export_prometheus()
    """

    __slots__ = ("_counters", "_histograms", "_lock")

    _instance: Optional[MetricsCollector] = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> MetricsCollector:
        """Get process-wide singleton instance."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def counter(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> Counter:
        """Get or create counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name, label_names, help_text)
            return self._counters[name]

    def histogram(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        """Get or create histogram."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name, label_names, help_text, buckets)
            return self._histograms[name]

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines: list[str] = []

        with self._lock:
            counters = list(self._counters.values())
            histograms = list(self._histograms.values())

        for counter in counters:
            if counter.help:
                lines.append(f"# HELP {counter.name} {counter.help}")
            lines.append(f"# TYPE {counter.name} counter")
            for labels, value in counter.collect():
                lines.append(f"{counter.name}{self._format_labels(labels)} {value}")

        for histogram in histograms:
            if histogram.help:
                lines.append(f"# HELP {histogram.name} {histogram.help}")
            lines.append(f"# TYPE {histogram.name} histogram")
            for data in histogram.collect():
                labels = data["labels"]
                for bound, count in data["buckets"]:
                    le = "+Inf" if bound == float("inf") else str(bound)
                    label_str = self._format_labels({**labels, "le": le})
                    lines.append(f"{histogram.name}_bucket{label_str} {count}")
                label_str = self._format_labels(labels)
                lines.append(f"{histogram.name}_sum{label_str} {data['sum']}")
                lines.append(f"{histogram.name}_count{label_str} {data['count']}")

        return "\n".join(lines)

    @staticmethod
    def _format_labels(labels: dict[str, str]) -> str:
        if not labels:
            return ""
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"


class SessionMetrics:
    """Pre-registered metrics for session store operations."""

    __slots__ = ("operations", "latency")

    def __init__(self, collector: Optional[MetricsCollector] = None) -> None:
        collector = collector or MetricsCollector.get_instance()
        self.operations = collector.counter(
            "session_operations_total",
            ("operation", "outcome"),
            "Session store operations by outcome",
        )
        self.latency = collector.histogram(
            "session_operation_latency_ms",
            ("operation",),
            "Session store operation latency in milliseconds",
        )

    def record(self, operation: str, outcome: str) -> None:
        self.operations.inc(operation=operation, outcome=outcome)
