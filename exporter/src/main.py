"""
Exporter entry point -- poll loop + HTTP server using threading.

Runs two threads:
1. **Poll thread**: drives the scheduler, polling one device at a time
   and updating the metric sink and the overview snapshot.
2. **Server thread**: uvicorn serving ``/metrics``, the overview page
   and ``/health``.

Handles SIGTERM and SIGINT for graceful shutdown inside Docker:
- Sets a ``shutdown_event`` that stops the poll loop between polls.
- Asks uvicorn to exit.
- Closes the shared HTTP client.

If either thread stops on its own (poll loop crash, port already in use)
the process shuts down and exits with status 1.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Exit non-zero when the HTTP server or poll loop stops unexpectedly

TODO:
- None
"""

import logging
import signal
import sys
import threading
from types import FrameType

import httpx
import uvicorn
from prometheus_client import CollectorRegistry

from exporter.src.api import AppContext, create_app
from exporter.src.config import ExporterSettings
from exporter.src.exceptions import SetupError
from exporter.src.loader import load_devices
from exporter.src.logging_config import setup_logging
from exporter.src.overview import Overview
from exporter.src.scheduler import Scheduler
from exporter.src.sink import MetricSink
from exporter.src.snapshot import Snapshot

logger = logging.getLogger(__name__)

# Module-level shutdown event shared between signal handlers and loops.
shutdown_event = threading.Event()

# Set when a loop stopped on its own; main() then exits non-zero.
failure_event = threading.Event()


def build_context(settings: ExporterSettings, client: httpx.Client) -> AppContext:
    """Load devices and overview, and wire sink, snapshot and scheduler.

    Raises:
        SetupError: If no devices are defined or the overview is invalid.
    """
    devices = load_devices(
        settings.setup_dir, client, default_interval_s=settings.default_interval_s
    )
    if not devices:
        raise SetupError("No devices have been defined")

    overview = Overview.load(settings.setup_dir)

    # One lock for sink, snapshot and derivation step.
    lock = threading.RLock()
    sink = MetricSink(lock)
    registry = CollectorRegistry()
    sink.register(registry)

    snapshot = Snapshot(lock)
    scheduler = Scheduler(
        devices,
        sink,
        snapshot,
        stop_event=shutdown_event,
        backoff_factor=settings.backoff_factor,
    )
    return AppContext(
        registry=registry,
        snapshot=snapshot,
        scheduler=scheduler,
        overview=overview,
    )


def _poll_loop(scheduler: Scheduler) -> None:
    """Run the scheduler until ``shutdown_event`` is set."""
    try:
        scheduler.run()
    except Exception:
        logger.exception("Poll loop crashed")
        failure_event.set()
        shutdown_event.set()


def _serve(server: uvicorn.Server) -> None:
    """Run the HTTP server; stopping before shutdown is a failure.

    uvicorn calls ``sys.exit(1)`` when it cannot bind, which inside a
    thread only ends that thread.
    """
    try:
        server.run()
    except (Exception, SystemExit):
        logger.exception("HTTP server crashed")

    if not shutdown_event.is_set():
        logger.critical("HTTP server stopped unexpectedly, shutting down")
        failure_event.set()
        shutdown_event.set()


def _signal_handler(
    signum: int,
    _frame: FrameType | None,
) -> None:
    """Handle SIGTERM/SIGINT by signalling shutdown.

    Sets ``shutdown_event`` so all loops exit cleanly.
    """
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating graceful shutdown", sig_name)
    shutdown_event.set()


def main() -> None:
    """Exporter entry point.

    Loads configuration from environment variables and device
    definitions from the setup directory, registers signal handlers,
    then starts the poll and server threads. The main thread blocks on
    ``shutdown_event`` until a signal is received.
    """
    setup_logging()

    settings = ExporterSettings()
    logging.getLogger().setLevel(settings.log_level)

    client = httpx.Client(timeout=settings.request_timeout_s)
    try:
        context = build_context(settings, client)
    except SetupError as exc:
        logger.critical("%s, exiting", exc)
        client.close()
        sys.exit(1)

    host, port = settings.listen_address
    server = uvicorn.Server(
        uvicorn.Config(create_app(context), host=host, port=port, log_config=None)
    )

    # Register signal handlers for graceful shutdown.
    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    poll_thread = threading.Thread(
        target=_poll_loop,
        args=(context.scheduler,),
        daemon=True,
        name="poll-thread",
    )
    server_thread = threading.Thread(
        target=_serve,
        args=(server,),
        daemon=True,
        name="server-thread",
    )

    logger.info("Start listening on %s:%d", host, port)
    poll_thread.start()
    server_thread.start()

    # Block until a signal or a failed loop sets the shutdown event.
    shutdown_event.wait()

    logger.info("Shutdown event received, stopping loops")
    server.should_exit = True

    # A poll in progress finishes first; fetches are bounded by the client timeout.
    poll_thread.join(timeout=settings.request_timeout_s + 5)
    server_thread.join(timeout=5)

    client.close()

    if failure_event.is_set():
        logger.critical("Exporter stopped after a failure")
        sys.exit(1)
    logger.info("Exporter shut down cleanly")


if __name__ == "__main__":
    main()
