"""
Shared test fixtures for exporter tests.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from exporter.src.device import Category, Device
from exporter.src.exceptions import DeviceError
from exporter.src.sink import MetricSink
from exporter.src.snapshot import Snapshot
from prometheus_client import CollectorRegistry

# All ExporterSettings environment variable names, used for cleanup.
_ALL_EXPORTER_ENV_VARS = (
    "SETUP_DIR",
    "BIND",
    "REQUEST_TIMEOUT_S",
    "BACKOFF_FACTOR",
    "DEFAULT_INTERVAL_S",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_exporter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all exporter env vars and isolate from .env files before each test."""
    for var in _ALL_EXPORTER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDevice(Device):
    """Device returning scripted readings.

    Each entry of *readings* is returned in turn; an exception instance
    is raised instead. Once exhausted the last entry repeats.
    """

    provider = "fake"

    def __init__(
        self,
        readings: Iterable[float | BaseException] = (1.0,),
        *,
        identity: str = "fake-1",
        metric: str = "fake_metric",
        category: Category = Category.GENERIC,
        name: str = "Fake",
        room: str = "Lab",
        interval_s: int = 10,
        on_fetch: Callable[[FakeDevice], Any] | None = None,
    ) -> None:
        super().__init__(
            client=MagicMock(spec=httpx.Client),
            metric=metric,
            category=category,
            name=name,
            room=room,
            interval_s=interval_s,
        )
        self._identity = identity
        self._readings = list(readings)
        self._on_fetch = on_fetch
        self.fetch_count = 0

    @property
    def identity(self) -> str:
        return self._identity

    def fetch(self) -> float:
        self.fetch_count += 1
        if self._on_fetch is not None:
            self._on_fetch(self)
        index = min(self.fetch_count - 1, len(self._readings) - 1)
        reading = self._readings[index]
        if isinstance(reading, BaseException):
            raise reading
        return reading


class BrokenDevice(FakeDevice):
    """Device whose fetch always fails."""

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("identity", "broken-1")
        kwargs.setdefault("name", "Broken")
        super().__init__([DeviceError("unreachable")], **kwargs)


# Sample line of the text exposition: name{labels} value
_SAMPLE_LINE = re.compile(r"^(?P<name>[a-zA-Z_:][\w:]*)(?:\{(?P<labels>.*)\})? (?P<value>\S+)$")
_LABEL_PAIR = re.compile(r'(\w+)="((?:[^"\\]|\\.)*)"')


def exposition_sample(text: str, name: str) -> tuple[dict[str, str], float] | None:
    """Return labels and value of the first *name* sample in *text*.

    Label order in the exposition differs between prometheus_client
    releases, so labels are returned as a dict.
    """
    for line in text.splitlines():
        match = _SAMPLE_LINE.match(line)
        if match is None or match.group("name") != name:
            continue
        labels = dict(_LABEL_PAIR.findall(match.group("labels") or ""))
        return labels, float(match.group("value"))
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def lock() -> threading.RLock:
    return threading.RLock()


@pytest.fixture()
def sink(lock: threading.RLock) -> MetricSink:
    return MetricSink(lock, clock=lambda: 1_700_000_000.0)


@pytest.fixture()
def snapshot(lock: threading.RLock) -> Snapshot:
    return Snapshot(lock)


@pytest.fixture()
def registry(sink: MetricSink) -> CollectorRegistry:
    reg = CollectorRegistry()
    sink.register(reg)
    return reg
