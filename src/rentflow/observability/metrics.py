"""In-process metrics for lease and obligation processing."""

from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Any, Iterator


@dataclass
class Histogram:
    """Running summary of observed values (latencies in milliseconds)."""

    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)

    def snapshot(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": self.total / self.count if self.count else 0.0,
        }


class MetricsRegistry:
    """
    Thread-safe registry of counters, gauges and latency histograms.

    Counter names are dotted by subject (`leases.activated`,
    `obligations.created`, `circuit.payment_rail.opened`). Gauges hold the
    last value set, e.g. lease counts per state refreshed on each snapshot
    request.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, Histogram] = {}

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0.0) + amount

    def get_counter(self, name: str) -> float:
        with self._lock:
            return self.counters.get(name, 0.0)

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = value

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.histograms.setdefault(name, Histogram()).observe(value)

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Observe the elapsed milliseconds of the block, also when it raises."""
        start = perf_counter()
        try:
            yield
        finally:
            self.observe(name, (perf_counter() - start) * 1000.0)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
                "histograms": {name: hist.snapshot() for name, hist in self.histograms.items()},
            }


metrics = MetricsRegistry()
