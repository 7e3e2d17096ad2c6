"""
Shared snapshot of the latest formatted value per device channel.

Written by the polling thread after each successful derivation and read
by the overview renderer and the health endpoint. Writers and readers
share one re-entrant lock with the metric sink so a reader never sees a
formatted value from one poll cycle next to metrics from another.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace

from exporter.src.device import Device


@dataclass(frozen=True, slots=True)
class SnapshotRow:
    """Latest presentation data of one device channel."""

    identity: str
    metric: str
    provider: str
    name: str
    room: str
    formatted: str = ""


class Snapshot:
    """Latest formatted value per device channel, grouped by identity.

    Rows are registered for every device up front (with an empty value)
    so the overview lists devices that have not answered yet.

    Args:
        lock: Re-entrant lock shared with the metric sink.
    """

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self.lock = lock if lock is not None else threading.RLock()
        self._rows: dict[tuple[str, str], SnapshotRow] = {}

    def register(self, devices: Iterable[Device]) -> None:
        with self.lock:
            for device in devices:
                key = (device.identity, device.metric)
                if key not in self._rows:
                    self._rows[key] = SnapshotRow(
                        identity=device.identity,
                        metric=device.metric,
                        provider=device.provider,
                        name=device.name,
                        room=device.room,
                    )

    def update(self, device: Device, formatted: str) -> None:
        key = (device.identity, device.metric)
        with self.lock:
            row = self._rows.get(key)
            if row is None:
                self.register([device])
                row = self._rows[key]
            self._rows[key] = replace(row, formatted=formatted)

    def rows(self) -> list[SnapshotRow]:
        with self.lock:
            return list(self._rows.values())

    def by_identity(self) -> dict[str, list[SnapshotRow]]:
        """Return a consistent copy of all rows grouped by identity."""
        groups: dict[str, list[SnapshotRow]] = {}
        for row in self.rows():
            groups.setdefault(row.identity, []).append(row)
        return groups
