"""
Health status of the polling loop.

Exposes ``get_health_status()`` which summarizes the scheduler state:
how many devices are polled, which ones are currently failing (and
why), and how long ago the last successful poll happened.

- ``ok``: no device is failing.
- ``degraded``: some devices are failing.
- ``down``: every device is failing.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from exporter.src.scheduler import Scheduler


def get_health_status(scheduler: Scheduler) -> dict[str, Any]:
    """Build a health status dict for the exporter.

    Reads all items under the scheduler lock so the report never mixes
    two poll cycles of the same device.

    Args:
        scheduler: The running scheduler.

    Returns:
        Dict with ``status``, ``devices``, ``failing``,
        ``last_success_elapsed_s`` and ``checked_at``.
    """
    with scheduler.lock:
        now = scheduler.now()
        items = scheduler.items
        failing = [
            {
                "device": item.device.log_name,
                "metric": item.device.metric,
                "failures": item.consecutive_failures,
                "error": item.last_error,
            }
            for item in items
            if item.consecutive_failures > 0
        ]
        successes = [i.last_success_at for i in items if i.last_success_at is not None]

    elapsed: float | None = None
    if successes:
        elapsed = round(now - max(successes), 1)

    if not failing:
        status = "ok"
    elif len(failing) == len(items):
        status = "down"
    else:
        status = "degraded"

    return {
        "status": status,
        "devices": len(items),
        "failing": failing,
        "last_success_elapsed_s": elapsed,
        "checked_at": datetime.now(tz=UTC).isoformat(),
    }
