"""
Metric sink: labeled gauges and counters exposed to Prometheus.

The sink is a custom ``prometheus_client`` collector. Series are stored
as plain values keyed by metric name and label tuple, created lazily on
first use, and turned into ``GaugeMetricFamily`` / ``CounterMetricFamily``
objects at scrape time.

A counter reset retires the series and installs a fresh zero-valued one
with a new ``created`` timestamp, so Prometheus sees a proper counter
reset instead of a decreasing value.

All methods take the lock passed in at construction. The scheduler
holds the same (re-entrant) lock around a whole derivation step, which
makes one device's gauge, counter and snapshot updates atomic with
respect to scrapes.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from exporter.src.device import LABEL_NAMES
from exporter.src.derivation import CounterAdd, CounterReset, GaugeSet, SinkUpdate

logger = logging.getLogger(__name__)

LabelValues = tuple[str, ...]


@dataclass(slots=True)
class _CounterSeries:
    value: float
    created: float


class MetricSink:
    """Lazily created labeled gauges and counters.

    Args:
        lock: Re-entrant lock shared with the snapshot and scheduler.
        label_names: Label names of every series.
        clock: Wall clock used for counter ``created`` timestamps.
    """

    def __init__(
        self,
        lock: threading.RLock | None = None,
        label_names: Sequence[str] = LABEL_NAMES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self._label_names = list(label_names)
        self._clock = clock
        self._gauges: dict[str, dict[LabelValues, float]] = {}
        self._counters: dict[str, dict[LabelValues, _CounterSeries]] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_gauge(self, name: str, labels: Sequence[str], value: float) -> None:
        key = self._key(labels)
        with self._lock:
            self._gauges.setdefault(name, {})[key] = float(value)

    def add_to_counter(self, name: str, labels: Sequence[str], delta: float) -> None:
        """Add *delta* to a counter, creating it at zero if needed.

        Raises:
            ValueError: If *delta* is negative.
        """
        if delta < 0:
            raise ValueError(f"Counters can only increase (got delta {delta})")

        key = self._key(labels)
        with self._lock:
            series = self._counters.setdefault(name, {})
            if key not in series:
                series[key] = _CounterSeries(0.0, self._clock())
            series[key].value += delta

    def reset_counter(self, name: str, labels: Sequence[str]) -> None:
        """Retire a counter series and install a fresh zero-valued one."""
        key = self._key(labels)
        with self._lock:
            series = self._counters.setdefault(name, {})
            old = series.get(key)
            series[key] = _CounterSeries(0.0, self._clock())
        if old is not None:
            logger.info(
                "Counter %s%s reset (was %.3f)",
                name,
                list(key),
                old.value,
            )

    def apply(self, labels: Sequence[str], updates: Sequence[SinkUpdate]) -> None:
        """Apply derivation updates for one device atomically."""
        with self._lock:
            for update in updates:
                if isinstance(update, GaugeSet):
                    self.set_gauge(update.metric, labels, update.value)
                elif isinstance(update, CounterAdd):
                    self.add_to_counter(update.metric, labels, update.delta)
                elif isinstance(update, CounterReset):
                    self.reset_counter(update.metric, labels)
                else:
                    raise TypeError(f"Unknown sink update: {update!r}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def gauge_value(self, name: str, labels: Sequence[str]) -> float | None:
        with self._lock:
            return self._gauges.get(name, {}).get(tuple(labels))

    def counter_value(self, name: str, labels: Sequence[str]) -> float | None:
        with self._lock:
            series = self._counters.get(name, {}).get(tuple(labels))
            return None if series is None else series.value

    def collect(self) -> Iterator[Metric]:
        """Yield one metric family per gauge and counter name."""
        families: list[Metric] = []

        with self._lock:
            for name in sorted(self._gauges):
                gauge = GaugeMetricFamily(name, name, labels=self._label_names)
                for key, value in self._gauges[name].items():
                    gauge.add_metric(list(key), value)
                families.append(gauge)

            for name in sorted(self._counters):
                counter = CounterMetricFamily(name, name, labels=self._label_names)
                for key, series in self._counters[name].items():
                    counter.add_metric(list(key), series.value, created=series.created)
                families.append(counter)

        yield from families

    def register(self, registry: CollectorRegistry) -> None:
        registry.register(self)

    def _key(self, labels: Sequence[str]) -> LabelValues:
        if len(labels) != len(self._label_names):
            raise ValueError(
                f"Expected {len(self._label_names)} label values "
                f"({', '.join(self._label_names)}), got {len(labels)}"
            )
        return tuple(str(v) for v in labels)
