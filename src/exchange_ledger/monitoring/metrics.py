"""Thread-safe metrics for ledger operations, balances and token volumes.

Token amounts are integers that routinely exceed the 53-bit float mantissa, so
balance gauges and volume totals keep exact ``int`` values. Counters,
histograms and timings stay floats.
"""

from __future__ import annotations

import math
import re
import threading
from collections import defaultdict, deque
from statistics import mean
from typing import Deque, Dict, Iterable, List, MutableMapping, Union

_METRIC_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_:]")

OPERATION_OUTCOMES = ("committed", "rejected")

Number = Union[int, float]


def _sanitize_metric_name(name: str) -> str:
    """Return a Prometheus-safe metric name."""

    sanitized = _METRIC_SANITIZE_RE.sub("_", name)
    if not sanitized:
        return "_"
    if sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


class MetricsRegistry:
    """In-memory store behind the ``metrics`` CLI command and Prometheus export."""

    def __init__(self, *, max_hist_samples: int = 1024) -> None:
        self._lock = threading.RLock()
        self._counters: MutableMapping[str, float] = defaultdict(float)
        self._amounts: MutableMapping[str, int] = defaultdict(int)
        self._gauges: MutableMapping[str, Number] = {}
        self._histograms: MutableMapping[str, Deque[float]] = defaultdict(
            lambda: deque(maxlen=max_hist_samples)
        )

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def record_operation(self, operation: str, outcome: str) -> None:
        """Count one ``committed`` or ``rejected`` outcome of a ledger operation."""

        if outcome not in OPERATION_OUTCOMES:
            raise ValueError(f"Unknown operation outcome: {outcome}")
        with self._lock:
            self._counters[f"operations.{operation}.{outcome}"] += 1.0
            self._counters[f"operations.{outcome}_total"] += 1.0

    def operation_outcomes(self, operation: str) -> Dict[str, int]:
        with self._lock:
            return {
                outcome: int(self._counters.get(f"operations.{operation}.{outcome}", 0.0))
                for outcome in OPERATION_OUTCOMES
            }

    def add_amount(self, name: str, amount: int) -> None:
        """Accumulate an exact token volume such as fees collected."""

        with self._lock:
            self._amounts[name] += int(amount)

    def get_amount(self, name: str) -> int:
        with self._lock:
            return self._amounts.get(name, 0)

    def gauge(self, name: str, value: Number) -> None:
        # Token balances arrive as ints and are stored without rounding.
        with self._lock:
            self._gauges[name] = value if isinstance(value, int) else float(value)

    def get_gauge(self, name: str) -> Number:
        with self._lock:
            return self._gauges.get(name, 0)

    def balances(self, component: str) -> Dict[str, Number]:
        """Balance gauges published by one component kind, keyed by ``<address>.<name>``."""

        prefix = f"{component}."
        with self._lock:
            return {name[len(prefix):]: value for name, value in self._gauges.items() if name.startswith(prefix)}

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._histograms[name].append(float(value))

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "amounts": dict(self._amounts),
                "gauges": dict(self._gauges),
                "histograms": {key: self._histogram_stats(values) for key, values in self._histograms.items()},
            }

    def export_prometheus(self) -> str:
        snap = self.snapshot()
        lines: List[str] = []
        for kind, section in (("counter", "counters"), ("counter", "amounts"), ("gauge", "gauges")):
            for name, value in snap[section].items():
                sanitized = _sanitize_metric_name(name)
                lines.append(f"# TYPE {sanitized} {kind}")
                lines.append(f"{sanitized} {value}")
        for name, stats in snap["histograms"].items():
            if not stats:
                continue
            base = _sanitize_metric_name(name)
            lines.append(f"# TYPE {base} summary")
            for quantile in ("p50", "p90", "p99"):
                if quantile in stats:
                    lines.append(f"{base}{{quantile=\"{quantile}\"}} {stats[quantile]}")
            lines.append(f"{base}_count {stats.get('count', 0)}")
            if "avg" in stats:
                lines.append(f"{base}_avg {stats['avg']}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._amounts.clear()
            self._gauges.clear()
            self._histograms.clear()

    def _histogram_stats(self, values: Iterable[float]) -> Dict[str, float]:
        data = sorted(values)
        if not data:
            return {}
        return {
            "count": float(len(data)),
            "avg": mean(data),
            "p50": self._percentile(data, 0.5),
            "p90": self._percentile(data, 0.9),
            "p99": self._percentile(data, 0.99),
        }

    def _percentile(self, data: List[float], percentile: float) -> float:
        index = max(int(math.ceil(percentile * len(data))) - 1, 0)
        return float(data[min(index, len(data) - 1)])


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry", "OPERATION_OUTCOMES"]
