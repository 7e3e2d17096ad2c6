"""
HTML overview of the latest device readings.

``overview.yaml`` in the setup directory describes one or more tables::

    tables:
      - title: Energy
        group:
          - name: room
            header: Room
          - name: name
            header: Device
        metrics:
          - name: home_energy
            header: Energy
          - name: home_power
            header: Power

Every device identity becomes one row: the group columns come from the
first matching channel, each metric column holds that channel's latest
formatted value or ``-``. Rows are sorted by the group columns and all
cells are padded to the column width for monospace rendering.

The page is rendered with Jinja2 from ``overview.html`` in the setup
directory, or from the packaged default template.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from jinja2 import Environment, FileSystemLoader, Template, select_autoescape
from pydantic import BaseModel, ConfigDict, ValidationError

from exporter.src.exceptions import SetupError
from exporter.src.snapshot import Snapshot, SnapshotRow

logger = logging.getLogger(__name__)

OVERVIEW_YAML = "overview.yaml"
OVERVIEW_HTML = "overview.html"
_TEMPLATES_DIR = Path(__file__).parent / "templates"

MISSING = "-"


class MetricColumn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    header: str = ""


class GroupColumn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    header: str = ""


class TableDesc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    metrics: list[MetricColumn] = []
    group: list[GroupColumn] = []


class OverviewDesc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tables: list[TableDesc] = []


@dataclass
class Table:
    """A rendered table: padded headers and rows."""

    title: str
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


def _group_value(row: SnapshotRow, column: str) -> str:
    if column == "room":
        return row.room
    if column == "name":
        return row.name
    return ""


def build_table(
    desc: TableDesc,
    groups: dict[str, list[SnapshotRow]],
    details: bool = False,
) -> Table:
    """Build one unpadded table from snapshot rows grouped by identity."""
    headers = ["Device"] if details else []
    headers += [g.header for g in desc.group]
    headers += [m.header for m in desc.metrics]

    rows: list[list[str]] = []
    for identity, channels in groups.items():
        by_metric: dict[str, SnapshotRow] = {}
        for channel in channels:
            by_metric.setdefault(channel.metric, channel)

        matching = [by_metric[m.name] for m in desc.metrics if m.name in by_metric]
        if not matching:
            continue

        first = matching[0]
        row = [identity] if details else []
        row += [_group_value(first, g.name) for g in desc.group]
        for metric in desc.metrics:
            channel = by_metric.get(metric.name)
            row.append(channel.formatted if channel is not None else MISSING)
        rows.append(row)

    start = 1 if details else 0
    stop = start + len(desc.group)
    rows.sort(key=lambda r: r[start:stop])

    return Table(title=desc.title, headers=headers, rows=rows)


def pad_table(table: Table) -> Table:
    """Left-align every cell to the widest entry of its column."""
    widths = [len(h) for h in table.headers]
    for row in table.rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    return Table(
        title=table.title,
        headers=[h.ljust(widths[i]) for i, h in enumerate(table.headers)],
        rows=[[c.ljust(widths[i]) for i, c in enumerate(row)] for row in table.rows],
    )


class Overview:
    """Overview description plus the template that renders it."""

    def __init__(self, desc: OverviewDesc, template: Template) -> None:
        self.desc = desc
        self._template = template

    @classmethod
    def load(cls, setup_dir: str | Path) -> Overview:
        """Load ``overview.yaml`` and the HTML template from *setup_dir*.

        Raises:
            SetupError: If ``overview.yaml`` is missing or invalid.
        """
        root = Path(setup_dir)
        path = root / OVERVIEW_YAML
        logger.info("Loading overview file", extra={"file": str(path)})

        try:
            with open(path, encoding="utf-8") as f:
                desc = OverviewDesc.model_validate(yaml.safe_load(f) or {})
        except OSError as exc:
            raise SetupError(f"Cannot read {path}: {exc}") from exc
        except (yaml.YAMLError, ValidationError) as exc:
            raise SetupError(f"Cannot parse {path}: {exc}") from exc

        search_path = [str(root), str(_TEMPLATES_DIR)]
        env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(["html"]),
        )
        return cls(desc, env.get_template(OVERVIEW_HTML))

    def tables(self, snapshot: Snapshot, details: bool = False) -> list[Table]:
        groups = snapshot.by_identity()
        return [pad_table(build_table(t, groups, details)) for t in self.desc.tables]

    def render(self, snapshot: Snapshot, details: bool = False) -> str:
        return self._template.render(tables=self.tables(snapshot, details))
