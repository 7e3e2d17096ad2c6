"""
Device definitions loaded from the setup directory.

Every ``*.yaml`` file below the setup directory (except ``overview.yaml``)
describes one source::

    source:
      provider: tasmota            # tasmota | homematic | iobroker
      energy_metric: home_energy
      power_metric: home_power
      address: 192.168.1.10        # CCU / ioBroker host
      interval: 30s                # Go-style duration
      devices:
        - name: Washer
          room: Cellar
          address: 192.168.1.20

Files are processed in sorted path order. Unreadable files, invalid
YAML, unparsable intervals and unknown providers are logged and skipped
so one broken file never hides the others.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from exporter.src.device import DEFAULT_INTERVAL_S, Device
from exporter.src.exceptions import SetupError
from exporter.src.homematic import load_homematic_devices
from exporter.src.iobroker import load_iobroker_devices
from exporter.src.tasmota import load_tasmota_devices

logger = logging.getLogger(__name__)

OVERVIEW_FILE = "overview.yaml"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class DeviceEntry(BaseModel):
    """One physical device inside a source file."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    room: str = ""
    address: str = ""
    hm_name: str = ""


class SourceConfig(BaseModel):
    """The ``source`` block of a device file."""

    model_config = ConfigDict(extra="ignore")

    provider: str
    energy_metric: str = ""
    power_metric: str = ""
    temperature_metric: str = ""
    light_metric: str = ""
    address: str = ""
    user_name: str = ""
    password: str = ""
    interval: str = ""
    devices: list[DeviceEntry] = []

    @property
    def auth(self) -> tuple[str, str] | None:
        if not self.user_name:
            return None
        return (self.user_name, self.password)


class DeviceFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: SourceConfig


ProviderLoader = Callable[[httpx.Client, SourceConfig, int], list[Device]]

PROVIDERS: dict[str, ProviderLoader] = {
    "tasmota": load_tasmota_devices,
    "homematic": load_homematic_devices,
    "iobroker": load_iobroker_devices,
}


def parse_duration(text: str) -> float:
    """Parse a Go-style duration such as ``30s``, ``1m30s`` or ``-5m``.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If *text* is not a valid duration.
    """
    value = text.strip()
    sign = 1.0
    if value[:1] in ("-", "+"):
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]

    if value == "0":
        return 0.0
    if not value:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return sign * total


def resolve_interval(text: str, default_s: int = DEFAULT_INTERVAL_S) -> int:
    """Turn a configured interval into whole positive seconds.

    Missing, zero and negative intervals fall back to *default_s*.

    Raises:
        ValueError: If *text* is set but not a valid duration.
    """
    if not text.strip():
        return default_s
    seconds = int(parse_duration(text))
    if seconds < 1:
        logger.warning("Interval %r is not positive, using %ds", text, default_s)
        return default_s
    return seconds


def load_device_file(
    path: Path,
    client: httpx.Client,
    default_interval_s: int = DEFAULT_INTERVAL_S,
) -> list[Device]:
    """Load all devices defined in one YAML file.

    Returns an empty list (after logging why) for files that cannot be
    used.
    """
    context = {"file": str(path)}
    logger.info("Loading device file", extra=context)

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        device_file = DeviceFile.model_validate(data)
    except OSError as exc:
        logger.warning("Cannot read file: %s", exc, extra=context)
        return []
    except (yaml.YAMLError, ValidationError) as exc:
        logger.warning("Cannot parse file: %s", exc, extra=context)
        return []

    source = device_file.source
    context["provider"] = source.provider

    try:
        interval_s = resolve_interval(source.interval, default_interval_s)
    except ValueError as exc:
        logger.warning("Cannot parse interval: %s", exc, extra=context)
        return []

    loader = PROVIDERS.get(source.provider)
    if loader is None:
        logger.warning("Unknown provider %r", source.provider, extra=context)
        return []

    return loader(client, source, interval_s)


def load_devices(
    setup_dir: str | Path,
    client: httpx.Client,
    default_interval_s: int = DEFAULT_INTERVAL_S,
) -> list[Device]:
    """Load every device file below *setup_dir*.

    Raises:
        SetupError: If *setup_dir* is not a directory.
    """
    root = Path(setup_dir)
    if not root.is_dir():
        raise SetupError(f"Setup directory not found: {root}")

    devices: list[Device] = []
    for path in sorted(root.rglob("*.yaml")):
        if path.name == OVERVIEW_FILE or not path.is_file():
            continue
        devices.extend(load_device_file(path, client, default_interval_s))

    logger.info("Loaded %d devices from %s", len(devices), root)
    return devices
