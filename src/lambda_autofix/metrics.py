"""
Prometheus metrics for lambda-autofix.

Counters and histograms for remediation attempts, skips and cycles, exposed in
Prometheus text format so a scraper or a log shipper can pick them up.
"""

from typing import TYPE_CHECKING, Dict, Optional
import threading

if TYPE_CHECKING:
    from .models import AttemptRecord, RunSummary


class MetricsCollector:
    """
    Singleton metrics collector for lambda-autofix.

    Collects and exposes metrics in Prometheus-compatible format.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize metrics storage."""
        self._gauges: Dict[str, Dict[str, float]] = {}
        self._counters: Dict[str, Dict[str, int]] = {}
        self._histograms: Dict[str, Dict[str, list]] = {}

    def reset(self):
        """Drop every recorded value."""
        self._initialize()

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """
        Set a gauge metric value.

        Args:
            name: Metric name
            value: Metric value
            labels: Label dictionary (e.g., {'outcome': 'committed'})
        """
        label_key = self._make_label_key(labels or {})
        self._gauges.setdefault(name, {})[label_key] = value

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Increment amount (default 1)
            labels: Label dictionary
        """
        label_key = self._make_label_key(labels or {})
        series = self._counters.setdefault(name, {})
        series[label_key] = series.get(label_key, 0) + value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """
        Record a histogram observation.

        Args:
            name: Metric name
            value: Observed value
            labels: Label dictionary
        """
        label_key = self._make_label_key(labels or {})
        self._histograms.setdefault(name, {}).setdefault(label_key, []).append(value)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Current value of a counter series, 0 when never incremented."""
        return self._counters.get(name, {}).get(self._make_label_key(labels or {}), 0)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self._gauges.get(name, {}).get(self._make_label_key(labels or {}))

    def get_metrics(self) -> str:
        """
        Get all metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        for name, labels_dict in self._gauges.items():
            lines.append(f"# TYPE {name} gauge")
            for label_key, value in labels_dict.items():
                lines.append(f"{name}{{{label_key}}} {value}")

        for name, labels_dict in self._counters.items():
            lines.append(f"# TYPE {name} counter")
            for label_key, value in labels_dict.items():
                lines.append(f"{name}{{{label_key}}} {value}")

        # Histograms (simplified - just count and sum)
        for name, labels_dict in self._histograms.items():
            lines.append(f"# TYPE {name} histogram")
            for label_key, values in labels_dict.items():
                lines.append(f"{name}_count{{{label_key}}} {len(values)}")
                lines.append(f"{name}_sum{{{label_key}}} {sum(values)}")

        return "\n".join(lines)

    def _make_label_key(self, labels: Dict[str, str]) -> str:
        """Convert label dict to string key."""
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


# Singleton instance
metrics = MetricsCollector()


def track_attempt(record: "AttemptRecord"):
    """Increment the attempt counter for a completed attempt."""
    metrics.increment_counter(
        "autofix_attempts_total",
        1,
        {"outcome": record.outcome.value, "category": record.category.value}
    )
    if record.requires_manual_remediation:
        metrics.increment_counter("autofix_manual_remediation_total", 1)


def track_attempt_duration(duration_seconds: float, outcome: str):
    """Track wall time of one attempt."""
    metrics.record_histogram(
        "autofix_attempt_duration_seconds",
        duration_seconds,
        {"outcome": outcome}
    )


def track_skip(reason: str):
    """Increment the skip counter for a resource not attempted."""
    metrics.increment_counter(
        "autofix_skipped_total",
        1,
        {"reason": reason}
    )


def track_cycle(summary: "RunSummary"):
    """Record the aggregate numbers of one finished cycle."""
    metrics.increment_counter("autofix_cycles_total", 1)
    metrics.set_gauge("autofix_resources_monitored", summary.monitored)
    metrics.set_gauge("autofix_resources_with_errors", summary.with_errors)
    if summary.completed_at is not None:
        metrics.record_histogram(
            "autofix_cycle_duration_seconds",
            (summary.completed_at - summary.started_at).total_seconds()
        )


def get_metrics_text() -> str:
    """
    Get all metrics in Prometheus text format.

    Returns:
        Prometheus-formatted metrics
    """
    return metrics.get_metrics()
