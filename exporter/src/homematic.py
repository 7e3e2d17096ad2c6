"""
Homematic CCU provider.

Values are read by posting HomeMatic scripts to the CCU script runner on
port 8181. The CCU answers with an ISO-8859-1 encoded XML document that
holds one element per script variable::

    <xml><exec>/Test.exe</exec><sessionId></sessionId>...<value>21.5</value></xml>

At load time each configured device is identified by its ``HssType``
and mapped onto the channels and datapoints that carry energy, power,
temperature and light readings. Missing names and rooms are filled in
from the CCU.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from exporter.src.device import Category, Device, parse_float, request
from exporter.src.exceptions import DeviceError

if TYPE_CHECKING:
    from exporter.src.loader import DeviceEntry, SourceConfig

logger = logging.getLogger(__name__)

SCRIPT_PORT = 8181
_ENCODING = "iso-8859-1"

_TYPE_SCRIPT = """\
var channel = dom.GetObject('{hm}:0.UNREACH').Channel();
var device = dom.GetObject(dom.GetObject(channel).Device());
var hssType = device.HssType();
var interface = dom.GetObject(device.Interface());
"""

_NAME_SCRIPT = """\
var channel = dom.GetObject(dom.GetObject('{hm}:{channel}.{datapoint}').Channel());
var name = channel.Name();
var room = "";
var roomId = channel.ChnRoom();
if (roomId) {{ room = dom.GetObject(roomId).Name(); }}
"""

_VALUE_SCRIPT = "var value = dom.GetObject('{hm}:{channel}.{datapoint}').State();"


@dataclass(frozen=True, slots=True)
class Datapoint:
    channel: int
    name: str


@dataclass(frozen=True, slots=True)
class Layout:
    """Datapoints of one Homematic device type, ``None`` if unsupported."""

    energy: Datapoint | None = None
    power: Datapoint | None = None
    temperature: Datapoint | None = None
    light: Datapoint | None = None


_ACTUAL_TEMPERATURE = "ACTUAL_TEMPERATURE"

LAYOUTS: dict[str, Layout] = {
    "HMIP-PSM": Layout(
        energy=Datapoint(6, "ENERGY_COUNTER"),
        power=Datapoint(6, "POWER"),
        temperature=Datapoint(0, _ACTUAL_TEMPERATURE),
    ),
    "HM-ES-PMSw1-Pl": Layout(
        energy=Datapoint(2, "ENERGY_COUNTER"),
        power=Datapoint(2, "POWER"),
    ),
    "HM-ES-TX-WM": Layout(
        energy=Datapoint(1, "ENERGY_COUNTER"),
        power=Datapoint(1, "POWER"),
    ),
    "HmIP-WTH-2": Layout(temperature=Datapoint(1, _ACTUAL_TEMPERATURE)),
    "HmIP-eTRV-B": Layout(temperature=Datapoint(1, _ACTUAL_TEMPERATURE)),
    "HM-CC-RT-DN": Layout(temperature=Datapoint(4, _ACTUAL_TEMPERATURE)),
    "HM-WDS10-TH-O": Layout(temperature=Datapoint(1, "TEMPERATURE")),
    "HM-WDS40-TH-I": Layout(temperature=Datapoint(1, "TEMPERATURE")),
    "HmIP-SMI55": Layout(light=Datapoint(3, "CURRENT_ILLUMINATION")),
    "HmIP-SMI": Layout(light=Datapoint(1, "CURRENT_ILLUMINATION")),
    "HM-Sec-MDIR-2": Layout(light=Datapoint(1, "BRIGHTNESS")),
    "HM-WDS100-C6-O": Layout(
        light=Datapoint(1, "BRIGHTNESS"),
        temperature=Datapoint(1, "TEMPERATURE"),
    ),
}


def script_url(address: str) -> str:
    return f"http://{address}:{SCRIPT_PORT}/Test.exe"


def parse_script_reply(body: bytes) -> dict[str, str]:
    """Turn a script runner reply into a ``{variable: value}`` dict.

    Raises:
        DeviceError: If the reply is not well-formed XML.
    """
    text = body.decode(_ENCODING)
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise DeviceError(f"Malformed script reply: {exc}") from exc
    return {child.tag: (child.text or "").strip() for child in root}


def run_script(
    client: httpx.Client,
    url: str,
    script: str,
    auth: tuple[str, str] | None = None,
) -> dict[str, str]:
    """Post *script* to the CCU and return its variables."""
    response = request(
        client,
        "POST",
        url,
        content=script.encode(_ENCODING),
        headers={"Content-Type": "text/plain"},
        auth=auth,
    )
    return parse_script_reply(response.content)


class HomematicDevice(Device):
    """One datapoint of a Homematic device."""

    provider = "homematic"

    def __init__(
        self,
        *,
        hm_name: str,
        datapoint: Datapoint,
        url: str,
        auth: tuple[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.hm_name = hm_name
        self.datapoint = datapoint
        self.url = url
        self._auth = auth

    @property
    def identity(self) -> str:
        return self.hm_name

    @property
    def log_name(self) -> str:
        return f"Homematic({self.hm_name}/{self.name})"

    @property
    def full_name(self) -> str:
        return (
            f"{self.metric}[provider:homematic,hm:{self.hm_name},name:{self.name},"
            f"room:{self.room},interval:{self.interval_s}]"
        )

    def fetch(self) -> float:
        script = _VALUE_SCRIPT.format(
            hm=self.hm_name,
            channel=self.datapoint.channel,
            datapoint=self.datapoint.name,
        )
        reply = run_script(self._client, self.url, script, self._auth)
        if "value" not in reply:
            raise DeviceError(f"No value in script reply for {self.hm_name}")
        return parse_float(reply["value"], self.hm_name)


def read_device_type(
    client: httpx.Client,
    url: str,
    hm_name: str,
    auth: tuple[str, str] | None = None,
) -> str:
    """Return the ``HssType`` of *hm_name*.

    Raises:
        DeviceError: If the CCU does not know the device.
    """
    reply = run_script(client, url, _TYPE_SCRIPT.format(hm=hm_name), auth)
    if reply.get("channel", "null") == "null":
        raise DeviceError(f"Unknown Homematic device: {hm_name}")
    return reply.get("hssType", "")


def read_name_and_room(
    client: httpx.Client,
    url: str,
    hm_name: str,
    datapoint: Datapoint,
    auth: tuple[str, str] | None = None,
) -> tuple[str, str]:
    script = _NAME_SCRIPT.format(
        hm=hm_name, channel=datapoint.channel, datapoint=datapoint.name
    )
    reply = run_script(client, url, script, auth)
    return reply.get("name", ""), reply.get("room", "")


def _channels(source: SourceConfig, layout: Layout) -> list[tuple[str, Category, Datapoint]]:
    wanted = (
        (source.energy_metric, Category.ENERGY, layout.energy),
        (source.power_metric, Category.POWER, layout.power),
        (source.temperature_metric, Category.TEMPERATURE, layout.temperature),
        (source.light_metric, Category.LIGHT, layout.light),
    )
    return [(metric, cat, dp) for metric, cat, dp in wanted if metric and dp is not None]


def _load_one(
    client: httpx.Client,
    source: SourceConfig,
    entry: DeviceEntry,
    interval_s: int,
) -> list[Device]:
    url = script_url(source.address)
    auth = source.auth
    context = {"provider": "homematic", "device": entry.hm_name}

    hss_type = read_device_type(client, url, entry.hm_name, auth)
    layout = LAYOUTS.get(hss_type)
    if layout is None:
        logger.warning("Unknown HssType %r", hss_type, extra=context)
        return []

    channels = _channels(source, layout)
    if not channels:
        return []

    name, room = entry.name, entry.room
    if not name or not room:
        found_name, found_room = read_name_and_room(
            client, url, entry.hm_name, channels[0][2], auth
        )
        name = name or found_name
        room = room or found_room

    logger.info(
        "Found %s %s (%s) in %s", hss_type, entry.hm_name, name, room or "-", extra=context
    )

    return [
        HomematicDevice(
            client=client,
            hm_name=entry.hm_name,
            datapoint=datapoint,
            url=url,
            auth=auth,
            metric=metric,
            category=category,
            name=name,
            room=room,
            interval_s=interval_s,
        )
        for metric, category, datapoint in channels
    ]


def load_homematic_devices(
    client: httpx.Client,
    source: SourceConfig,
    interval_s: int,
) -> list[Device]:
    """Identify every configured device on the CCU and create its channels.

    Devices that cannot be identified are logged and skipped.
    """
    devices: list[Device] = []
    for entry in source.devices:
        try:
            devices.extend(_load_one(client, source, entry, interval_s))
        except DeviceError as exc:
            logger.warning(
                "Cannot load Homematic device data: %s",
                exc,
                extra={"provider": "homematic", "device": entry.hm_name},
            )
    return devices
