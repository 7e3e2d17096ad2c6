"""
Tasmota smart plug provider.

Reads the energy meter of a Tasmota plug via its HTTP command API:
``GET http://{address}/cm?cmnd=Status%2010`` returns the sensor status
with ``StatusSNS.ENERGY.Total`` (kWh) and ``StatusSNS.ENERGY.Power`` (W).
Energy is published in Wh.

One plug yields up to two devices (energy and power) sharing the plug
address as identity.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from exporter.src.device import Category, Device, request
from exporter.src.exceptions import DeviceError

if TYPE_CHECKING:
    from exporter.src.loader import SourceConfig

logger = logging.getLogger(__name__)

_ENERGY_CMND = "Status%2010"
_STATUS_CMND = "Status"


def energy_url(address: str) -> str:
    return f"http://{address}/cm?cmnd={_ENERGY_CMND}"


def status_url(address: str) -> str:
    return f"http://{address}/cm?cmnd={_STATUS_CMND}"


class TasmotaDevice(Device):
    """One energy or power channel of a Tasmota plug."""

    provider = "tasmota"

    def __init__(self, *, address: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if self.category not in (Category.ENERGY, Category.POWER):
            raise ValueError(f"Tasmota does not provide {self.category} readings")
        self.address = address

    @property
    def identity(self) -> str:
        return self.address

    def fetch(self) -> float:
        url = energy_url(self.address)
        response = self._request("GET", url)

        try:
            energy = response.json()["StatusSNS"]["ENERGY"]
            if self.category is Category.ENERGY:
                return float(energy["Total"]) * 1000
            return float(energy["Power"])
        except (ValueError, KeyError, TypeError) as exc:
            raise DeviceError(f"Malformed Tasmota status from {url}: {exc!r}") from exc


def read_tasmota_name(client: httpx.Client, address: str) -> str:
    """Look up the friendly name of an unnamed plug.

    Returns:
        The first ``FriendlyName``, else ``DeviceName``, else ``""``.

    Raises:
        DeviceError: If the status page cannot be read.
    """
    url = status_url(address)
    response = request(client, "GET", url)

    try:
        status = response.json()["Status"]
    except (ValueError, KeyError, TypeError) as exc:
        raise DeviceError(f"Malformed Tasmota status from {url}: {exc!r}") from exc

    friendly = status.get("FriendlyName") or []
    if friendly:
        return str(friendly[0])
    return str(status.get("DeviceName") or "")


def load_tasmota_devices(
    client: httpx.Client,
    source: SourceConfig,
    interval_s: int,
) -> list[Device]:
    """Create energy and power devices for every plug of *source*.

    Plugs without a configured name are named from their status page;
    plugs whose name cannot be read are skipped.
    """
    devices: list[Device] = []

    for entry in source.devices:
        name = entry.name
        if not name:
            try:
                name = read_tasmota_name(client, entry.address)
            except DeviceError as exc:
                logger.warning(
                    "Cannot read name of Tasmota plug %s: %s",
                    entry.address,
                    exc,
                    extra={"provider": "tasmota"},
                )
                continue
            logger.info(
                "Found Tasmota plug %s (%s) in %s",
                entry.address,
                name,
                entry.room or "-",
                extra={"provider": "tasmota"},
            )

        channels = (
            (source.energy_metric, Category.ENERGY),
            (source.power_metric, Category.POWER),
        )
        for metric, category in channels:
            if metric:
                devices.append(
                    TasmotaDevice(
                        client=client,
                        address=entry.address,
                        metric=metric,
                        category=category,
                        name=name,
                        room=entry.room,
                        interval_s=interval_s,
                    )
                )

    return devices
