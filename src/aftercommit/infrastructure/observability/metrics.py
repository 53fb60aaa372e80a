"""
Metrics Collection
In-process counters and gauges for callback delivery
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any

from aftercommit.config import get_settings
from aftercommit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

DELIVERED = "aftercommit_callbacks_delivered_total"
FAILED = "aftercommit_callbacks_failed_total"
SKIPPED = "aftercommit_callbacks_skipped_total"
DISCARDED = "aftercommit_callbacks_discarded_total"
FRAME_DEPTH = "aftercommit_frame_depth"


class MetricsCollector:
    """
    Collects delivery metrics.

    Supports:
    - Counters (monotonically increasing values)
    - Gauges (values that can go up or down)

    Nothing is recorded unless the collector is enabled.
    """

    def __init__(self, enabled: bool = False) -> None:
        """
        Initialize metrics collector.

        Args:
            enabled: Whether to enable metrics collection
        """
        self.enabled = enabled
        self._counters: dict[str, float] = defaultdict(float)
        self._gauges: dict[str, float] = {}

        if enabled:
            logger.info("Metrics collector initialized")

    def increment_counter(self, name: str, value: float = 1.0, **labels: Any) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name (e.g., "aftercommit_callbacks_delivered_total")
            value: Amount to increment by
            **labels: Metric labels (e.g., trigger="on_commit")
        """
        if not self.enabled or not value:
            return

        key = self._make_key(name, labels)
        self._counters[key] += value

    def set_gauge(self, name: str, value: float, **labels: Any) -> None:
        if not self.enabled:
            return

        key = self._make_key(name, labels)
        self._gauges[key] = value

    def counter(self, name: str, **labels: Any) -> float:
        return self._counters.get(self._make_key(name, labels), 0.0)

    def gauge(self, name: str, **labels: Any) -> float | None:
        return self._gauges.get(self._make_key(name, labels))

    def get_metrics(self) -> dict[str, Any]:
        """
        Get all collected metrics (for debugging/export).

        Returns:
            Dictionary of all metrics
        """
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
        }

    def reset_metrics(self) -> None:
        """Reset all collected metrics (for testing)."""
        self._counters.clear()
        self._gauges.clear()

    @staticmethod
    def _make_key(name: str, labels: dict[str, Any]) -> str:
        """Create a unique key from metric name and labels."""
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}" if label_str else name


# Global metrics collector (configured at startup)
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector instance.

    Returns:
        MetricsCollector instance
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector(enabled=get_settings().metrics_enabled)
    return _metrics


def configure_metrics(enabled: bool = False) -> MetricsCollector:
    """
    Replace the global metrics collector.

    Args:
        enabled: Whether to enable metrics collection
    """
    global _metrics
    _metrics = MetricsCollector(enabled=enabled)
    return _metrics
