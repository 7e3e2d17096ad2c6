"""
Unit tests for the Tasmota provider.

Tests verify:
- Energy is read from StatusSNS.ENERGY.Total and converted to Wh.
- Power is read from StatusSNS.ENERGY.Power.
- HTTP, timeout and connection errors become DeviceError.
- Malformed replies become DeviceError.
- Unnamed plugs are named from FriendlyName or DeviceName.
- A plug whose name cannot be read is skipped at load time.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from unittest.mock import MagicMock

import httpx
import pytest
from exporter.src.device import Category
from exporter.src.exceptions import DeviceError
from exporter.src.loader import SourceConfig
from exporter.src.tasmota import (
    TasmotaDevice,
    energy_url,
    load_tasmota_devices,
    read_tasmota_name,
)

_ADDRESS = "192.168.1.20"

_STATUS_10 = {
    "StatusSNS": {
        "Time": "2026-10-19T10:00:00",
        "ENERGY": {"Total": 5.2, "Yesterday": 0.4, "Today": 0.1, "Power": 230},
    }
}


def _mock_response(
    *, status_code: int = 200, json_data: dict | None = None
) -> MagicMock:
    """Build a mock httpx.Response with the given status and optional JSON."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            message=f"HTTP {status_code}",
            request=MagicMock(),
            response=resp,
        )
    else:
        resp.raise_for_status.return_value = None
    return resp


def _client(*responses: MagicMock) -> MagicMock:
    client = MagicMock(spec=httpx.Client)
    client.request.side_effect = list(responses)
    return client


def _device(client: MagicMock, category: Category = Category.ENERGY) -> TasmotaDevice:
    return TasmotaDevice(
        client=client,
        address=_ADDRESS,
        metric="home_energy",
        category=category,
        name="Washer",
        room="Cellar",
        interval_s=30,
    )


class TestFetch:
    def test_energy_in_wh(self) -> None:
        client = _client(_mock_response(json_data=_STATUS_10))

        assert _device(client).fetch() == pytest.approx(5200.0)
        client.request.assert_called_once_with("GET", energy_url(_ADDRESS))

    def test_power(self) -> None:
        client = _client(_mock_response(json_data=_STATUS_10))

        assert _device(client, Category.POWER).fetch() == 230.0

    def test_http_error(self) -> None:
        client = _client(_mock_response(status_code=500))

        with pytest.raises(DeviceError, match="HTTP error 500"):
            _device(client).fetch()

    def test_timeout(self) -> None:
        client = MagicMock(spec=httpx.Client)
        client.request.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(DeviceError, match="Timeout"):
            _device(client).fetch()

    def test_connection_error(self) -> None:
        client = MagicMock(spec=httpx.Client)
        client.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(DeviceError, match="Connection error"):
            _device(client).fetch()

    @pytest.mark.parametrize(
        "body",
        [{}, {"StatusSNS": {}}, {"StatusSNS": {"ENERGY": {"Total": "n/a"}}}],
    )
    def test_malformed_reply(self, body: dict) -> None:
        client = _client(_mock_response(json_data=body))

        with pytest.raises(DeviceError, match="Malformed"):
            _device(client).fetch()

    def test_invalid_json(self) -> None:
        resp = _mock_response()
        resp.json.side_effect = ValueError("Expecting value")

        with pytest.raises(DeviceError):
            _device(_client(resp)).fetch()


class TestDevice:
    def test_identity_is_address(self) -> None:
        device = _device(MagicMock())

        assert device.identity == _ADDRESS
        assert device.labels == ("tasmota", "Washer", "Cellar")
        assert device.log_name == "Tasmota(Washer)"

    def test_unsupported_category(self) -> None:
        with pytest.raises(ValueError):
            _device(MagicMock(), Category.TEMPERATURE)


class TestReadName:
    def test_friendly_name(self) -> None:
        client = _client(
            _mock_response(json_data={"Status": {"FriendlyName": ["Dryer"], "DeviceName": "x"}})
        )

        assert read_tasmota_name(client, _ADDRESS) == "Dryer"

    def test_device_name_fallback(self) -> None:
        client = _client(
            _mock_response(json_data={"Status": {"FriendlyName": [], "DeviceName": "Tasmota"}})
        )

        assert read_tasmota_name(client, _ADDRESS) == "Tasmota"


class TestLoad:
    def _source(self, **kwargs) -> SourceConfig:
        data = {
            "provider": "tasmota",
            "energy_metric": "home_energy",
            "power_metric": "home_power",
        }
        data.update(kwargs)
        return SourceConfig.model_validate(data)

    def test_named_plug_yields_energy_and_power(self) -> None:
        client = MagicMock(spec=httpx.Client)
        source = self._source(
            devices=[{"name": "Washer", "room": "Cellar", "address": _ADDRESS}]
        )

        devices = load_tasmota_devices(client, source, 30)

        assert [(d.metric, d.category) for d in devices] == [
            ("home_energy", Category.ENERGY),
            ("home_power", Category.POWER),
        ]
        assert all(d.identity == _ADDRESS and d.interval_s == 30 for d in devices)
        client.request.assert_not_called()

    def test_only_configured_metrics(self) -> None:
        source = self._source(power_metric="", devices=[{"name": "A", "address": _ADDRESS}])

        devices = load_tasmota_devices(MagicMock(spec=httpx.Client), source, 30)

        assert [d.category for d in devices] == [Category.ENERGY]

    def test_unnamed_plug_is_looked_up(self) -> None:
        client = _client(_mock_response(json_data={"Status": {"FriendlyName": ["Dryer"]}}))
        source = self._source(devices=[{"address": _ADDRESS}])

        devices = load_tasmota_devices(client, source, 30)

        assert {d.name for d in devices} == {"Dryer"}

    def test_unreachable_unnamed_plug_is_skipped(self) -> None:
        client = MagicMock(spec=httpx.Client)
        client.request.side_effect = [
            httpx.ConnectError("refused"),
            _mock_response(json_data={"Status": {"FriendlyName": ["Dryer"]}}),
        ]
        source = self._source(
            devices=[{"address": "192.168.1.99"}, {"address": _ADDRESS}]
        )

        devices = load_tasmota_devices(client, source, 30)

        assert {d.identity for d in devices} == {_ADDRESS}
