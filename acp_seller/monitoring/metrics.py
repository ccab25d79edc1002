"""
ACP Seller Scheduler - Metrics

In-process metrics with Prometheus text export.

Metrics Categories:
- Dispatch metrics (attempts sent to the executor, in-flight attempts)
- Outcome metrics (success, retryable and fatal results per phase)
- Lifecycle metrics (terminal transitions, evictions)
- Timing (attempt duration)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, cast

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_DURATION_BUCKETS = [0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]


# =============================================================================
# Metric Types
# =============================================================================

@dataclass
class _LabeledMetric:
    name: str
    description: str
    labels: list[str] = field(default_factory=list)
    # Bound label cardinality so job ids can never blow up memory
    _max_cardinality: int = 1000
    _cardinality_warned: bool = field(default=False, repr=False)

    def _label_key(self, labels: dict[str, str]) -> tuple[str, ...]:
        return tuple(str(labels.get(name, "")) for name in self.labels)

    def _admit(self, key: tuple[str, ...], known: dict[tuple[str, ...], Any]) -> bool:
        if key in known or len(known) < self._max_cardinality:
            return True
        if not self._cardinality_warned:
            logger.warning(
                "metric_cardinality_limit",
                metric=self.name,
                limit=self._max_cardinality,
            )
            self._cardinality_warned = True
        return False


@dataclass
class Counter(_LabeledMetric):
    """A monotonically increasing counter."""

    _values: dict[tuple[str, ...], float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        if self._admit(key, self._values):
            self._values[key] = self._values.get(key, 0) + value

    def value(self, **labels: str) -> float:
        return self._values.get(self._label_key(labels), 0)

    def collect(self) -> list[dict[str, Any]]:
        return [
            {"labels": dict(zip(self.labels, key, strict=False)), "value": value}
            for key, value in self._values.items()
        ]


@dataclass
class Gauge(_LabeledMetric):
    """A metric that can go up and down."""

    _values: dict[tuple[str, ...], float] = field(default_factory=dict)

    def set(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        if self._admit(key, self._values):
            self._values[key] = value

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        if self._admit(key, self._values):
            self._values[key] = self._values.get(key, 0) + value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        self.inc(-value, **labels)

    def value(self, **labels: str) -> float:
        return self._values.get(self._label_key(labels), 0)

    def collect(self) -> list[dict[str, Any]]:
        return [
            {"labels": dict(zip(self.labels, key, strict=False)), "value": value}
            for key, value in self._values.items()
        ]


@dataclass
class Histogram(_LabeledMetric):
    """Samples observations into cumulative buckets."""

    buckets: list[float] = field(default_factory=lambda: list(DEFAULT_DURATION_BUCKETS))
    # Running totals only; individual observations are not retained
    _stats: dict[tuple[str, ...], dict[str, Any]] = field(default_factory=dict)

    def observe(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        if not self._admit(key, self._stats):
            return
        stats = self._stats.setdefault(
            key,
            {"count": 0, "sum": 0.0, "bucket_counts": dict.fromkeys([*self.buckets, float("inf")], 0)},
        )
        stats["count"] += 1
        stats["sum"] += value
        for bucket in stats["bucket_counts"]:
            if value <= bucket:
                stats["bucket_counts"][bucket] += 1

    def count(self, **labels: str) -> int:
        stats = self._stats.get(self._label_key(labels))
        return stats["count"] if stats else 0

    def collect(self) -> list[dict[str, Any]]:
        return [
            {
                "labels": dict(zip(self.labels, key, strict=False)),
                "buckets": stats["bucket_counts"].copy(),
                "sum": stats["sum"],
                "count": stats["count"],
            }
            for key, stats in self._stats.items()
        ]


# =============================================================================
# Metrics Registry
# =============================================================================

class MetricsRegistry:
    """
    Registry of named metrics sharing a prefix.

    Usage:
        registry = MetricsRegistry()
        dispatched = registry.counter("attempts_dispatched_total", "Attempts sent", ["phase"])
        dispatched.inc(phase="transaction")
    """

    def __init__(self, prefix: str = "acp_seller"):
        self.prefix = prefix
        self._metrics: dict[str, Counter | Gauge | Histogram] = {}
        self._start_time = time.time()

    def _get_or_create(self, cls: type, name: str, description: str, **kwargs: Any) -> Any:
        full_name = f"{self.prefix}_{name}"
        if full_name not in self._metrics:
            self._metrics[full_name] = cls(name=full_name, description=description, **kwargs)
        return self._metrics[full_name]

    def counter(self, name: str, description: str, labels: list[str] | None = None) -> Counter:
        return cast(Counter, self._get_or_create(Counter, name, description, labels=labels or []))

    def gauge(self, name: str, description: str, labels: list[str] | None = None) -> Gauge:
        return cast(Gauge, self._get_or_create(Gauge, name, description, labels=labels or []))

    def histogram(
        self,
        name: str,
        description: str,
        labels: list[str] | None = None,
        buckets: list[float] | None = None,
    ) -> Histogram:
        return cast(
            Histogram,
            self._get_or_create(
                Histogram,
                name,
                description,
                labels=labels or [],
                buckets=buckets or list(DEFAULT_DURATION_BUCKETS),
            ),
        )

    def to_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []

        for metric in self._metrics.values():
            lines.append(f"# HELP {metric.name} {metric.description}")

            if isinstance(metric, Histogram):
                lines.append(f"# TYPE {metric.name} histogram")
                for item in metric.collect():
                    base_labels = item["labels"]
                    for bucket, count in item["buckets"].items():
                        le = "+Inf" if bucket == float("inf") else str(bucket)
                        label_str = self._format_labels({**base_labels, "le": le})
                        lines.append(f"{metric.name}_bucket{label_str} {count}")
                    label_str = self._format_labels(base_labels)
                    lines.append(f"{metric.name}_sum{label_str} {item['sum']}")
                    lines.append(f"{metric.name}_count{label_str} {item['count']}")
            else:
                kind = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {kind}")
                for item in metric.collect():
                    label_str = self._format_labels(item["labels"])
                    lines.append(f"{metric.name}{label_str} {item['value']}")

            lines.append("")

        lines.append(f"# HELP {self.prefix}_process_start_time_seconds Start time of the process")
        lines.append(f"# TYPE {self.prefix}_process_start_time_seconds gauge")
        lines.append(f"{self.prefix}_process_start_time_seconds {self._start_time}")
        return "\n".join(lines)

    @staticmethod
    def _format_labels(labels: dict[str, Any]) -> str:
        parts = [f'{k}="{v}"' for k, v in labels.items() if v]
        return "{" + ",".join(parts) + "}" if parts else ""


# =============================================================================
# Scheduler Metrics
# =============================================================================

class SchedulerMetrics:
    """The scheduler's metric set, registered on one registry."""

    def __init__(self, registry: MetricsRegistry | None = None):
        self.registry = registry or get_metrics_registry()
        self.attempts_dispatched = self.registry.counter(
            "attempts_dispatched_total",
            "Transaction attempts dispatched to the executor",
            ["phase"],
        )
        self.attempt_outcomes = self.registry.counter(
            "attempt_outcomes_total",
            "Transaction attempt outcomes",
            ["phase", "outcome"],
        )
        self.terminal_transitions = self.registry.counter(
            "terminal_transitions_total",
            "Jobs reaching a terminal phase",
            ["phase"],
        )
        self.jobs_evicted = self.registry.counter(
            "jobs_evicted_total",
            "Terminal jobs evicted by retention",
        )
        self.attempts_in_flight = self.registry.gauge(
            "attempts_in_flight",
            "Transaction attempts currently in flight",
        )
        self.attempt_duration = self.registry.histogram(
            "attempt_duration_seconds",
            "Executor call duration in seconds",
            ["phase"],
        )

    @contextmanager
    def track_attempt(self, phase: str) -> Iterator[None]:
        """Track an attempt as in flight and time it."""
        self.attempts_in_flight.inc()
        start = time.monotonic()
        try:
            yield
        finally:
            self.attempts_in_flight.dec()
            self.attempt_duration.observe(time.monotonic() - start, phase=phase)


# =============================================================================
# Global Functions
# =============================================================================

metrics = MetricsRegistry()


def get_metrics_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return metrics


def reset_metrics() -> None:
    """Reset all metrics (for testing)."""
    global metrics
    metrics = MetricsRegistry()


__all__ = [
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "SchedulerMetrics",
    "metrics",
    "get_metrics_registry",
    "reset_metrics",
]
