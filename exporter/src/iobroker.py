"""
ioBroker temperature provider.

Reads single states through the ioBroker simple-api adapter:
``GET http://{host}/getPlainValue/{state id}`` returns the plain value.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from exporter.src.device import Category, Device, parse_float

if TYPE_CHECKING:
    from exporter.src.loader import SourceConfig

logger = logging.getLogger(__name__)


class IoBrokerDevice(Device):
    """A temperature state exposed by ioBroker."""

    provider = "iobroker"

    def __init__(self, *, host: str, state_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("category", Category.TEMPERATURE)
        super().__init__(**kwargs)
        self.host = host
        self.state_id = state_id

    @property
    def identity(self) -> str:
        return f"{self.host}/{self.state_id}"

    @property
    def url(self) -> str:
        return f"http://{self.host}/getPlainValue/{self.state_id}"

    @property
    def full_name(self) -> str:
        return (
            f"{self.metric}[provider:iobroker,endpoint:{self.state_id},"
            f"name:{self.name},room:{self.room},interval:{self.interval_s}]"
        )

    def fetch(self) -> float:
        response = self._request("GET", self.url)
        return parse_float(response.text, self.url)


def load_iobroker_devices(
    client: httpx.Client,
    source: SourceConfig,
    interval_s: int,
) -> list[Device]:
    if not source.temperature_metric:
        return []

    devices: list[Device] = []
    for entry in source.devices:
        device = IoBrokerDevice(
            client=client,
            host=source.address,
            state_id=entry.address,
            metric=source.temperature_metric,
            name=entry.name,
            room=entry.room,
            interval_s=interval_s,
        )
        logger.info(
            "Found ioBroker state %s (%s) in %s",
            device.state_id,
            device.name,
            device.room or "-",
            extra={"provider": "iobroker"},
        )
        devices.append(device)
    return devices
