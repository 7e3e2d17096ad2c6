"""
Adaptive polling scheduler.

Drives a strictly sequential poll loop over all devices: the device
with the earliest due time is popped from a min-heap, the loop waits
until it is due, fetches its value, runs the metric derivation and
reinserts it with a new due time.

- Initial due times are jittered to ``[0.5, 1.0] * interval`` so devices
  sharing an interval do not stay polled back-to-back forever.
- A successful poll reschedules at ``now + interval``.
- A failed poll is logged, leaves metrics and snapshot untouched and
  reschedules at ``now + backoff_factor * interval``. Devices are never
  dropped from the rotation.

Fetches run outside the shared lock; only the derivation step (sink
updates plus snapshot update) runs under it, so a slow device never
blocks a scrape.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import heapq
import itertools
import logging
import random
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from exporter.src.derivation import MeterState, derive
from exporter.src.device import Device
from exporter.src.exceptions import DeviceError
from exporter.src.sink import MetricSink
from exporter.src.snapshot import Snapshot

logger = logging.getLogger(__name__)

# Failing devices are retried this many intervals later.
BACKOFF_FACTOR: int = 5

# Initial due time is drawn from [low, high] * interval.
_JITTER_LOW: float = 0.5
_JITTER_HIGH: float = 1.0


@dataclass(eq=False)
class ScheduledItem:
    """Scheduling and derivation state of one device.

    Mutated only by the polling thread. ``formatted`` is the last
    presentation string and is mirrored into the shared snapshot.
    """

    device: Device
    next_due: float = 0.0
    state: MeterState = field(default_factory=MeterState)
    formatted: str = ""
    consecutive_failures: int = 0
    last_error: str | None = None
    last_success_at: float | None = None

    @property
    def last_cumulative(self) -> float | None:
        return self.state.last_cumulative

    @property
    def last_rate_sample(self) -> float | None:
        return self.state.last_rate_sample

    @property
    def last_rate_time(self) -> float | None:
        return self.state.last_rate_time


class DeviceHeap:
    """Min-heap of scheduled items ordered by ``next_due``.

    Ties are resolved by insertion order: of two items with the same
    due time, the one pushed first pops first.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, ScheduledItem]] = []
        self._sequence = itertools.count()

    def push(self, item: ScheduledItem) -> None:
        heapq.heappush(self._heap, (item.next_due, next(self._sequence), item))

    def pop(self) -> ScheduledItem:
        """Remove and return the item with the smallest ``next_due``.

        Raises:
            IndexError: If the heap is empty.
        """
        return heapq.heappop(self._heap)[2]

    def peek(self) -> ScheduledItem | None:
        return self._heap[0][2] if self._heap else None

    def items(self) -> list[ScheduledItem]:
        return [entry[2] for entry in self._heap]

    def __len__(self) -> int:
        return len(self._heap)


class Scheduler:
    """Polls devices one at a time in due-time order.

    Args:
        devices: Devices to poll; one :class:`ScheduledItem` is created
            per device.
        sink: Metric sink receiving derivation updates.
        snapshot: Shared snapshot receiving formatted values.
        stop_event: Event owned by the hosting process. ``run()`` returns
            once it is set; waits between polls are interrupted by it.
        backoff_factor: Interval multiplier applied after a failed poll.
        clock: Monotonic clock in seconds.
        sleep: Blocking wait in seconds. Defaults to waiting on
            *stop_event*.
        rng: Random source for the initial jitter.
    """

    def __init__(
        self,
        devices: Iterable[Device],
        sink: MetricSink,
        snapshot: Snapshot,
        *,
        stop_event: threading.Event | None = None,
        backoff_factor: int = BACKOFF_FACTOR,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._sink = sink
        self._snapshot = snapshot
        self._lock = snapshot.lock
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._backoff_factor = backoff_factor
        self._clock = clock
        self._sleep = sleep if sleep is not None else self._wait
        self._rng = rng if rng is not None else random.Random()
        self._heap = DeviceHeap()
        self._items: list[ScheduledItem] = []

        self.initialize(devices)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def items(self) -> list[ScheduledItem]:
        """All scheduled items in creation order."""
        return list(self._items)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def now(self) -> float:
        return self._clock()

    def initialize(self, devices: Iterable[Device]) -> None:
        """Create one item per device with a jittered first due time."""
        now = self._clock()
        devices = list(devices)
        self._snapshot.register(devices)

        for device in devices:
            jitter = self._rng.uniform(_JITTER_LOW, _JITTER_HIGH)
            item = ScheduledItem(
                device=device,
                next_due=now + jitter * device.interval_s,
            )
            self._items.append(item)
            self._heap.push(item)
            logger.info(
                "Scheduled %s, first poll in %.1fs",
                device.full_name,
                item.next_due - now,
                extra={"device": device.log_name, "provider": device.provider},
            )

    def run(self) -> None:
        """Poll until the stop event is set.

        Returns immediately when there is nothing to poll.
        """
        if not self._heap:
            logger.warning("No devices to poll, scheduler not started")
            return

        logger.info("Scheduler started with %d devices", len(self._heap))
        while not self._stop_event.is_set():
            self.step()
        logger.info("Scheduler stopped")

    def step(self) -> ScheduledItem | None:
        """Wait for the next due item, poll it and reinsert it.

        Returns:
            The polled item, or ``None`` if nothing was polled (empty heap
            or the stop event was set while waiting).
        """
        if not self._heap:
            return None

        item = self._heap.pop()
        delay = item.next_due - self._clock()
        if delay > 0:
            self._sleep(delay)
            if self._stop_event.is_set():
                self._heap.push(item)
                return None

        ok = self._poll(item)

        factor = 1 if ok else self._backoff_factor
        item.next_due = self._clock() + item.device.interval_s * factor
        self._heap.push(item)
        return item

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _poll(self, item: ScheduledItem) -> bool:
        """Fetch one value and apply its derivation.

        Returns:
            ``True`` on success, ``False`` on any failure.
        """
        device = item.device
        context = {
            "device": device.log_name,
            "provider": device.provider,
            "category": str(device.category),
        }

        try:
            value = device.fetch()
            now = self._clock()
            derivation = derive(
                item.state, value, device.category, device.metric, now
            )
        except (DeviceError, ValueError) as exc:
            self._record_failure(item, exc)
            logger.warning(
                "Cannot read %s from %s (failure %d): %s",
                device.category,
                device.log_name,
                item.consecutive_failures,
                exc,
                extra=context,
            )
            return False
        except Exception as exc:
            self._record_failure(item, exc)
            logger.exception(
                "Unexpected error polling %s", device.log_name, extra=context
            )
            return False

        with self._lock:
            self._sink.apply(device.labels, derivation.updates)
            item.state = derivation.state
            item.formatted = derivation.formatted
            self._snapshot.update(device, derivation.formatted)
            item.consecutive_failures = 0
            item.last_error = None
            item.last_success_at = now

        logger.info(
            "Read %s from %s: %f",
            device.category,
            device.log_name,
            value,
            extra=context,
        )
        return True

    def _record_failure(self, item: ScheduledItem, exc: BaseException) -> None:
        with self._lock:
            item.consecutive_failures += 1
            item.last_error = str(exc) or type(exc).__name__

    def _wait(self, seconds: float) -> None:
        self._stop_event.wait(timeout=seconds)
