"""
FastAPI application serving metrics, the overview page and health.

Routes:
- ``GET /metrics``: Prometheus text exposition of the metric sink.
- ``GET /`` and ``GET /index.html``: HTML overview; ``?details=true``
  adds a column with the device identity.
- ``GET /health``: JSON health report, HTTP 503 when every device is
  failing.

Handlers are plain ``def`` functions so FastAPI runs them in its thread
pool; they take the shared lock while reading and must not block the
event loop.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from exporter.src.health import get_health_status
from exporter.src.overview import Overview
from exporter.src.scheduler import Scheduler
from exporter.src.snapshot import Snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class AppContext:
    """Runtime objects shared between the poll thread and the handlers."""

    registry: CollectorRegistry
    snapshot: Snapshot
    scheduler: Scheduler
    overview: Overview


def _context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("/metrics", tags=["metrics"])
def metrics(request: Request) -> Response:
    """Prometheus scrape endpoint."""
    output = generate_latest(_context(request).registry)
    return Response(content=output, media_type=CONTENT_TYPE_LATEST)


@router.get("/", response_class=HTMLResponse, tags=["overview"])
@router.get("/index.html", response_class=HTMLResponse, tags=["overview"])
def overview(request: Request, details: bool = False) -> HTMLResponse:
    """Render the overview tables from the latest snapshot."""
    ctx = _context(request)
    return HTMLResponse(ctx.overview.render(ctx.snapshot, details=details))


@router.get("/health", tags=["health"])
def health(request: Request) -> JSONResponse:
    """Health report of the polling loop.

    Returns:
        JSONResponse: HTTP 200 unless every device is failing, then 503.
    """
    status = get_health_status(_context(request).scheduler)
    status_code = 503 if status["status"] == "down" else 200
    return JSONResponse(status_code=status_code, content=status)


def create_app(context: AppContext) -> FastAPI:
    """Build the FastAPI application around *context*."""
    app = FastAPI(
        title="home2grafana",
        description="Smart-home readings as Prometheus metrics.",
        version="0.1.0",
    )
    app.state.context = context
    app.include_router(router)
    return app
