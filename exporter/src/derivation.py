"""
Metric derivation for freshly polled device readings.

Pure function that maps the previous per-device state and a new raw
reading onto a list of metric sink updates, the next state and the
presentation string. No side effects, no I/O, no internal clock -- the
timestamp is always injected via parameter for testability.

Energy readings are cumulative meter values. They feed a Prometheus
counter (``<name>_total``) that never decreases and a per-second rate
gauge (``<name>_rate``). Counter and rate keep separate baselines: the
counter must account for every positive delta, while the rate absorbs a
meter reset silently instead of reporting a huge negative derivative.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from exporter.src.device import Category

TOTAL_SUFFIX = "total"
RATE_SUFFIX = "rate"

_FORMATS: dict[Category, str] = {
    Category.TEMPERATURE: "{:.2f} °C",
    Category.ENERGY: "{:.2f} kW/h",
    Category.POWER: "{:.2f} kW/h",
    Category.LIGHT: "{:.0f} lx",
    Category.GENERIC: "{:.2f}",
}


# ---------------------------------------------------------------------------
# Sink updates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GaugeSet:
    """Set gauge ``metric`` to ``value``."""

    metric: str
    value: float


@dataclass(frozen=True, slots=True)
class CounterAdd:
    """Add a non-negative ``delta`` to counter ``metric``."""

    metric: str
    delta: float


@dataclass(frozen=True, slots=True)
class CounterReset:
    """Retire counter ``metric`` and recreate it at zero."""

    metric: str


SinkUpdate = GaugeSet | CounterAdd | CounterReset


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MeterState:
    """Baselines carried between two readings of one device.

    Attributes:
        last_cumulative: Last reading seen by the counter, ``None`` before
            the first successful poll.
        last_rate_sample: Reading the current rate is measured from.
        last_rate_time: Timestamp (seconds) of ``last_rate_sample``.
    """

    last_cumulative: float | None = None
    last_rate_sample: float | None = None
    last_rate_time: float | None = None


@dataclass(frozen=True, slots=True)
class Derivation:
    """Result of :func:`derive`."""

    state: MeterState
    formatted: str
    updates: tuple[SinkUpdate, ...] = field(default_factory=tuple)


def counter_name(metric: str) -> str:
    return f"{metric}_{TOTAL_SUFFIX}"


def rate_name(metric: str) -> str:
    return f"{metric}_{RATE_SUFFIX}"


def format_value(category: Category, value: float) -> str:
    """Render *value* with the unit suffix of *category*."""
    return _FORMATS.get(category, "{:.2f}").format(value)


def derive(
    state: MeterState,
    value: float,
    category: Category,
    metric: str,
    now: float,
) -> Derivation:
    """Derive metric updates from a new raw reading.

    Args:
        state: Baselines left by the previous successful reading.
        value: Raw reading returned by the device.
        category: Category of the device; only ``energy`` keeps
            counter and rate state.
        metric: Published series name. When empty no updates are
            produced, but state and formatting still advance.
        now: Timestamp of the reading in seconds.

    Returns:
        The sink updates to apply, the new state and the formatted value.

    Raises:
        ValueError: If *value* is NaN or infinite.
    """
    if not math.isfinite(value):
        raise ValueError(f"Reading is not a finite number: {value!r}")

    formatted = format_value(category, value)
    updates: list[SinkUpdate] = []

    if metric:
        updates.append(GaugeSet(metric, value))

    if category is not Category.ENERGY:
        return Derivation(state=state, formatted=formatted, updates=tuple(updates))

    counter_updates, last_cumulative = _derive_counter(state, value, metric)
    rate_updates, rate_sample, rate_time = _derive_rate(state, value, metric, now)
    updates.extend(counter_updates)
    updates.extend(rate_updates)

    return Derivation(
        state=MeterState(
            last_cumulative=last_cumulative,
            last_rate_sample=rate_sample,
            last_rate_time=rate_time,
        ),
        formatted=formatted,
        updates=tuple(updates),
    )


def _derive_counter(
    state: MeterState,
    value: float,
    metric: str,
) -> tuple[list[SinkUpdate], float]:
    """Counter step: add positive deltas, reset on a decreasing reading."""
    updates: list[SinkUpdate] = []
    last = state.last_cumulative

    if last is not None and metric:
        if value >= last:
            updates.append(CounterAdd(counter_name(metric), value - last))
        else:
            updates.append(CounterReset(counter_name(metric)))

    return updates, value


def _derive_rate(
    state: MeterState,
    value: float,
    metric: str,
    now: float,
) -> tuple[list[SinkUpdate], float, float]:
    """Rate step: emit only on a genuine increase over elapsed time."""
    sample = state.last_rate_sample
    sample_time = state.last_rate_time

    if sample is None or sample_time is None:
        return [], value, now

    if value > sample and now > sample_time:
        rate = (value - sample) / (now - sample_time)
        updates: list[SinkUpdate] = []
        if metric:
            updates.append(GaugeSet(rate_name(metric), rate))
        return updates, value, now

    if value < sample:
        # Meter reset: move the baseline, report nothing.
        return [], value, now

    return [], sample, sample_time
