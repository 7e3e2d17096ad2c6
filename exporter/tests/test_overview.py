"""
Unit tests for the HTML overview.

Tests verify:
- One row per device identity, group columns from the first matching channel.
- Missing metrics render as ``-``; devices without any table metric are left out.
- Rows are sorted by the group columns.
- The details flag prepends the device identity.
- Cells are padded to the column width.
- Templates are loaded from the setup directory or the packaged default.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from pathlib import Path

import pytest
from conftest import FakeDevice
from exporter.src.exceptions import SetupError
from exporter.src.overview import Overview, Table, TableDesc, build_table, pad_table
from exporter.src.snapshot import Snapshot

_TABLE = TableDesc.model_validate(
    {
        "title": "Energy",
        "group": [{"name": "room", "header": "Room"}, {"name": "name", "header": "Device"}],
        "metrics": [
            {"name": "home_energy", "header": "Energy"},
            {"name": "home_power", "header": "Power"},
        ],
    }
)

_OVERVIEW_YAML = """\
tables:
  - title: Energy
    group:
      - name: room
        header: Room
    metrics:
      - name: home_energy
        header: Energy
"""


@pytest.fixture()
def filled(snapshot: Snapshot) -> Snapshot:
    washer_energy = FakeDevice(identity="plug-w", metric="home_energy", name="Washer", room="Cellar")
    washer_power = FakeDevice(identity="plug-w", metric="home_power", name="Washer", room="Cellar")
    fridge_power = FakeDevice(identity="plug-f", metric="home_power", name="Fridge", room="Kitchen")
    thermo = FakeDevice(identity="th-1", metric="room_temp", name="Thermo", room="Attic")
    snapshot.register([washer_energy, washer_power, fridge_power, thermo])
    snapshot.update(washer_energy, "5200.00 kW/h")
    snapshot.update(washer_power, "230.00 kW/h")
    snapshot.update(fridge_power, "80.00 kW/h")
    return snapshot


class TestBuildTable:
    def test_rows_per_identity(self, filled: Snapshot) -> None:
        table = build_table(_TABLE, filled.by_identity())

        assert table.title == "Energy"
        assert table.headers == ["Room", "Device", "Energy", "Power"]
        assert table.rows == [
            ["Cellar", "Washer", "5200.00 kW/h", "230.00 kW/h"],
            ["Kitchen", "Fridge", "-", "80.00 kW/h"],
        ]

    def test_details_adds_identity(self, filled: Snapshot) -> None:
        table = build_table(_TABLE, filled.by_identity(), details=True)

        assert table.headers[0] == "Device"
        assert [row[0] for row in table.rows] == ["plug-w", "plug-f"]

    def test_sorted_by_group_columns(self, snapshot: Snapshot) -> None:
        snapshot.register(
            [
                FakeDevice(identity="3", metric="home_power", name="B", room="Kitchen"),
                FakeDevice(identity="1", metric="home_power", name="Z", room="Attic"),
                FakeDevice(identity="2", metric="home_power", name="A", room="Kitchen"),
            ]
        )

        table = build_table(_TABLE, snapshot.by_identity())

        assert [row[:2] for row in table.rows] == [
            ["Attic", "Z"],
            ["Kitchen", "A"],
            ["Kitchen", "B"],
        ]

    def test_unpolled_device_is_blank(self, snapshot: Snapshot) -> None:
        snapshot.register([FakeDevice(identity="1", metric="home_energy", name="A", room="R")])

        table = build_table(_TABLE, snapshot.by_identity())

        assert table.rows == [["R", "A", "", "-"]]


class TestPadTable:
    def test_pads_to_widest_cell(self) -> None:
        table = Table(title="T", headers=["Room", "Energy"], rows=[["Cellar", "1"], ["Hall", "200.00"]])

        padded = pad_table(table)

        assert padded.headers == ["Room  ", "Energy"]
        assert padded.rows == [["Cellar", "1     "], ["Hall  ", "200.00"]]


class TestOverview:
    def test_load_and_render_default_template(self, tmp_path: Path, filled: Snapshot) -> None:
        (tmp_path / "overview.yaml").write_text(_OVERVIEW_YAML, encoding="utf-8")

        html = Overview.load(tmp_path).render(filled)

        assert "<h2>Energy</h2>" in html
        assert "Cellar" in html
        assert "5200.00 kW/h" in html
        assert "plug-w" not in html

    def test_render_details(self, tmp_path: Path, filled: Snapshot) -> None:
        (tmp_path / "overview.yaml").write_text(_OVERVIEW_YAML, encoding="utf-8")

        html = Overview.load(tmp_path).render(filled, details=True)

        assert "plug-w" in html

    def test_custom_template(self, tmp_path: Path, filled: Snapshot) -> None:
        (tmp_path / "overview.yaml").write_text(_OVERVIEW_YAML, encoding="utf-8")
        (tmp_path / "overview.html").write_text(
            "{% for t in tables %}{{ t.title }}:{{ t.rows | length }};{% endfor %}",
            encoding="utf-8",
        )

        assert Overview.load(tmp_path).render(filled) == "Energy:1;"

    def test_values_are_escaped(self, tmp_path: Path, snapshot: Snapshot) -> None:
        (tmp_path / "overview.yaml").write_text(_OVERVIEW_YAML, encoding="utf-8")
        snapshot.register([FakeDevice(metric="home_energy", room="<b>Hall</b>")])

        html = Overview.load(tmp_path).render(snapshot)

        assert "&lt;b&gt;Hall&lt;/b&gt;" in html

    def test_missing_overview(self, tmp_path: Path) -> None:
        with pytest.raises(SetupError):
            Overview.load(tmp_path)

    def test_invalid_overview(self, tmp_path: Path) -> None:
        (tmp_path / "overview.yaml").write_text("tables: [unclosed", encoding="utf-8")

        with pytest.raises(SetupError):
            Overview.load(tmp_path)
