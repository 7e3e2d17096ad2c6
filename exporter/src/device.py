"""
Device capability shared by all providers.

A :class:`Device` is one pollable metric channel of a physical device:
a Tasmota plug publishing energy and power is two ``Device`` instances
that share the same ``identity``. Providers subclass :class:`Device` and
implement :meth:`Device.identity` and :meth:`Device.fetch`.

Devices carry no presentation state; the last formatted value lives on
the scheduler's ``ScheduledItem``.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Configurable fallback interval

TODO:
- None
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any, ClassVar

import httpx

from exporter.src.exceptions import DeviceError

logger = logging.getLogger(__name__)

# Fallback interval when none is configured and no setting is passed in.
DEFAULT_INTERVAL_S: int = 60

# Label names attached to every published series, in ``labels`` order.
LABEL_NAMES: tuple[str, ...] = ("provider", "name", "room")


class Category(StrEnum):
    """Kind of reading; drives the metric derivation policy."""

    ENERGY = "energy"
    POWER = "power"
    TEMPERATURE = "temperature"
    LIGHT = "light"
    GENERIC = "generic"


class Device(ABC):
    """Abstract pollable data source for one metric channel.

    Args:
        client: Shared HTTP client used by ``fetch()``.
        metric: Published series name. Empty means "do not publish".
        category: Reading category.
        name: Human readable device name.
        room: Room the device is located in.
        interval_s: Polling interval in seconds. Values below 1 fall
            back to *default_interval_s*.
        default_interval_s: Fallback interval, normally the
            ``DEFAULT_INTERVAL_S`` setting.
    """

    provider: ClassVar[str] = "generic"

    def __init__(
        self,
        *,
        client: httpx.Client,
        metric: str,
        category: Category,
        name: str,
        room: str,
        interval_s: int,
        default_interval_s: int = DEFAULT_INTERVAL_S,
    ) -> None:
        if interval_s < 1:
            logger.warning(
                "Invalid interval %r for %s/%s, using %ds",
                interval_s,
                self.provider,
                name,
                default_interval_s,
            )
            interval_s = default_interval_s

        self._client = client
        self.metric = metric
        self.category = Category(category)
        self.name = name
        self.room = room
        self.interval_s = int(interval_s)

    @property
    @abstractmethod
    def identity(self) -> str:
        """Stable key of the physical sensor this channel belongs to."""

    @abstractmethod
    def fetch(self) -> float:
        """Read the current value from the device.

        Raises:
            DeviceError: If the value cannot be read or parsed.
        """

    @property
    def labels(self) -> tuple[str, str, str]:
        return (self.provider, self.name, self.room)

    @property
    def log_name(self) -> str:
        return f"{self.provider.capitalize()}({self.name})"

    @property
    def full_name(self) -> str:
        return (
            f"{self.metric}[provider:{self.provider},name:{self.name},"
            f"room:{self.room},interval:{self.interval_s}]"
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_name}>"

    # ------------------------------------------------------------------
    # HTTP helpers for providers
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and map every httpx failure onto DeviceError."""
        return request(self._client, method, url, **kwargs)


def request(client: httpx.Client, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Send an HTTP request through *client*.

    Raises:
        DeviceError: On non-2xx status codes, timeouts and transport errors.
    """
    try:
        response = client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    except httpx.HTTPStatusError as exc:
        raise DeviceError(
            f"HTTP error {exc.response.status_code} for {url}"
        ) from exc

    except httpx.TimeoutException as exc:
        raise DeviceError(f"Timeout for {url}: {exc}") from exc

    except httpx.TransportError as exc:
        raise DeviceError(f"Connection error for {url}: {exc}") from exc


def parse_float(text: str, source: str) -> float:
    """Parse a numeric reading, tolerating whitespace and quotes.

    Raises:
        DeviceError: If *text* is not a number.
    """
    try:
        return float(text.strip().strip('"'))
    except ValueError:
        raise DeviceError(f"Non-numeric reading {text[:40]!r} from {source}") from None

