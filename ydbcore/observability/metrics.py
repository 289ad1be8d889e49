"""
Metrics: Prometheus-Compatible Counters, Gauges and Histograms

In-process registry for driver health: session churn, pool pressure,
retries, transaction outcomes and query latency. Export is plain
Prometheus text; scraping is left to the embedding application.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence


@dataclass(frozen=True)
class MetricLabels:
    """Immutable label set for metric dimensions."""
    labels: tuple[tuple[str, str], ...]

    @classmethod
    def from_dict(cls, d: dict[str, str]) -> MetricLabels:
        return cls(labels=tuple(sorted(d.items())))

    def to_dict(self) -> dict[str, str]:
        return dict(self.labels)


class _Metric:
    """Name, help text and label handling shared by all metric kinds."""

    __slots__ = ("_name", "_help", "_label_names", "_lock")

    kind = "untyped"

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._lock = threading.Lock()

    def _make_key(self, labels: dict[str, str]) -> MetricLabels:
        filtered = {k: labels.get(k, "") for k in self._label_names}
        return MetricLabels.from_dict(filtered)

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help


class Counter(_Metric):
    """
    Monotonically increasing counter metric.

    Usage:
        commits = Counter("ydbcore_tx_commits_total", ["outcome"])
        commits.inc(outcome="success")
    """

    __slots__ = ("_values",)

    kind = "counter"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[MetricLabels, float] = defaultdict(float)

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = self._make_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, **labels: str) -> float:
        key = self._make_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield (key.to_dict(), value)


class Gauge(_Metric):
    """Gauge metric holding the last value set."""

    __slots__ = ("_values",)

    kind = "gauge"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[MetricLabels, float] = {}

    def set(self, value: float, **labels: str) -> None:
        key = self._make_key(labels)
        with self._lock:
            self._values[key] = value

    def get(self, **labels: str) -> float:
        key = self._make_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield (key.to_dict(), value)


class Histogram(_Metric):
    """
    Histogram with cumulative buckets.

    Usage:
        latency = Histogram("ydbcore_query_seconds", buckets=[0.01, 0.1, 1.0])
        with latency.time(kind="query"):
            ...
    """

    __slots__ = ("_buckets", "_bucket_counts", "_sums", "_counts")

    kind = "histogram"

    DEFAULT_BUCKETS = (
        0.001, 0.005, 0.01, 0.025, 0.05, 0.1,
        0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf"),
    )

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(name, label_names, help_text)
        self._buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        if self._buckets[-1] != float("inf"):
            self._buckets = self._buckets + (float("inf"),)

        self._bucket_counts: dict[MetricLabels, list[int]] = {}
        self._sums: dict[MetricLabels, float] = defaultdict(float)
        self._counts: dict[MetricLabels, int] = defaultdict(int)

    def observe(self, value: float, **labels: str) -> None:
        key = self._make_key(labels)
        with self._lock:
            counts = self._bucket_counts.setdefault(key, [0] * len(self._buckets))
            for i, bound in enumerate(self._buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] += value
            self._counts[key] += 1

    def time(self, **labels: str) -> HistogramTimer:
        return HistogramTimer(self, labels)

    def count(self, **labels: str) -> int:
        key = self._make_key(labels)
        with self._lock:
            return self._counts.get(key, 0)

    def collect(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            snapshot = [
                (key, list(counts), self._sums.get(key, 0.0), self._counts.get(key, 0))
                for key, counts in self._bucket_counts.items()
            ]
        for key, counts, total, n in snapshot:
            yield {
                "labels": key.to_dict(),
                "buckets": list(zip(self._buckets, counts)),
                "sum": total,
                "count": n,
            }


class HistogramTimer:
    """Context manager for histogram timing."""

    __slots__ = ("_histogram", "_labels", "_start")

    def __init__(self, histogram: Histogram, labels: dict[str, str]) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start = 0.0

    def __enter__(self) -> HistogramTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self._histogram.observe(time.perf_counter() - self._start, **self._labels)


class MetricsCollector:
    """
    Registry for all metrics.

    Usage:
        collector = MetricsCollector()
        created = collector.counter("ydbcore_sessions_created_total")
        text = collector.export_prometheus()
    """

    __slots__ = ("_counters", "_gauges", "_histograms", "_lock")

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Counter:
        """Get or create counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name, label_names, help_text)
            return self._counters[name]

    def gauge(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Gauge:
        """Get or create gauge."""
        with self._lock:
            if name not in self._gauges:
                self._gauges[name] = Gauge(name, label_names, help_text)
            return self._gauges[name]

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

        for metric in (*self._counters.values(), *self._gauges.values()):
            self._header(lines, metric)
            for labels, value in metric.collect():
                lines.append(f"{metric.name}{self._format_labels(labels)} {value}")

        for histogram in self._histograms.values():
            self._header(lines, histogram)
            for data in histogram.collect():
                labels = data["labels"]
                for bound, count in data["buckets"]:
                    bound_str = "+Inf" if bound == float("inf") else str(bound)
                    bucket_labels = self._format_labels({**labels, "le": bound_str})
                    lines.append(f"{histogram.name}_bucket{bucket_labels} {count}")
                label_str = self._format_labels(labels)
                lines.append(f"{histogram.name}_sum{label_str} {data['sum']}")
                lines.append(f"{histogram.name}_count{label_str} {data['count']}")

        return "\n".join(lines)

    @staticmethod
    def _header(lines: list[str], metric: _Metric) -> None:
        if metric.help_text:
            lines.append(f"# HELP {metric.name} {metric.help_text}")
        lines.append(f"# TYPE {metric.name} {metric.kind}")

    @staticmethod
    def _format_labels(labels: dict[str, str]) -> str:
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items()) if v != ""]
        if not pairs:
            return ""
        return "{" + ",".join(pairs) + "}"


class DriverMetrics:
    """
    Named metrics recorded by the session pool and the query client.

    A single instance is shared by one client and its pool.
    """

    __slots__ = (
        "collector",
        "sessions_created",
        "sessions_deleted",
        "sessions_broken",
        "sessions_in_use",
        "acquire_waits",
        "acquire_timeouts",
        "retries",
        "tx_outcomes",
        "query_latency",
    )

    def __init__(self, collector: Optional[MetricsCollector] = None) -> None:
        self.collector = collector or MetricsCollector()
        c = self.collector
        self.sessions_created = c.counter(
            "ydbcore_sessions_created_total", help_text="Sessions created on the server",
        )
        self.sessions_deleted = c.counter(
            "ydbcore_sessions_deleted_total", help_text="Sessions removed from the pool",
        )
        self.sessions_broken = c.counter(
            "ydbcore_sessions_broken_total", ["reason"], "Sessions discarded as broken",
        )
        self.sessions_in_use = c.gauge(
            "ydbcore_sessions_in_use", help_text="Sessions currently checked out",
        )
        self.acquire_waits = c.counter(
            "ydbcore_pool_acquire_waits_total", help_text="Acquisitions that had to wait",
        )
        self.acquire_timeouts = c.counter(
            "ydbcore_pool_acquire_timeouts_total", help_text="Acquisitions that timed out",
        )
        self.retries = c.counter(
            "ydbcore_retries_total", help_text="Attempts repeated after transport failures",
        )
        self.tx_outcomes = c.counter(
            "ydbcore_tx_total", ["outcome"], "Transactions by terminal outcome",
        )
        self.query_latency = c.histogram(
            "ydbcore_operation_seconds", ["operation"], "Client operation latency",
        )
