"""
Edge collector entrypoint for the PVS-to-InfluxDB telemetry pipeline.

Runs the poll loop: every ``poll_interval_s`` seconds the PollOrchestrator
authenticates to the gateway, fetches system and device payloads, normalizes
them into points, and writes one batch per device to InfluxDB.  A cycle
always completes (or fails) before the next one starts.

The loop is resilient: a failed cycle is logged and the next cycle runs on
schedule.  Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event;
the loop finishes its current cycle and exits.

Commands:
    pvs-edge [--dry-run] [--verbose] [--once]   poll loop (or a single cycle)
    pvs-edge show-measures                      print the field catalogue

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import ValidationError

from pvs_edge.src.errors import PvsError

if TYPE_CHECKING:
    from pvs_edge.src.config import EdgeSettings
    from pvs_edge.src.orchestrator import CycleResult, PollOrchestrator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the edge collector.

    Sets up the root logger with a JSON-formatted handler writing to stderr.

    Args:
        level: Root log level; ``logging.DEBUG`` with ``--verbose``.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO; keep that for --verbose only.
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    )


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: EdgeSettings) -> None:
    """Log a config summary at startup, masking secrets.

    The gateway serial (the login password) and the InfluxDB token are only
    logged as fingerprints.
    """
    logger.info(
        "Edge collector starting with config: "
        "pvs_host=%s, api_generation=%s, device_categories=%s, "
        "poll_interval_s=%s, request_timeout_s=%s, fetch_attempts=%s, "
        "retry_backoff_s=%s, influx_url=%s, influx_database=%s, "
        "dry_run=%s, verbose=%s, pvs_serial_masked=%s, influx_token_masked=%s",
        settings.pvs_host,
        settings.api_generation,
        settings.device_categories,
        settings.poll_interval_s,
        settings.request_timeout_s,
        settings.fetch_attempts,
        settings.retry_backoff_s,
        settings.influx_url,
        settings.influx_database,
        settings.dry_run,
        settings.verbose,
        _masked_token(settings.pvs_serial),
        _masked_token(settings.influx_token),
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(orchestrator: PollOrchestrator) -> CycleResult | None:
    """Execute a single poll cycle.

    Catches all exceptions so that the caller's loop is never broken.

    Returns:
        The cycle result, or None if the cycle raised unexpectedly.
    """
    try:
        return await orchestrator.run_cycle()
    except Exception:
        logger.error("Poll cycle error", exc_info=True)
        return None


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def run_loop(
    *,
    orchestrator: PollOrchestrator,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Run poll cycles until shutdown_event is set.

    Executes _poll_once, then sleeps for poll_interval_s, checking the
    shutdown event between iterations.

    Args:
        orchestrator: The poll orchestrator.
        poll_interval_s: Seconds between the end of one cycle and the start
            of the next.
        shutdown_event: Event to signal graceful shutdown.
    """
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        await _poll_once(orchestrator)
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
    logger.info("Poll loop stopped")


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="pvs-edge",
        description="Poll a PVS gateway and write its telemetry to InfluxDB.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("run", "show-measures"),
        default="run",
        help="run the poll loop (default) or print the field catalogue",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="fetch and normalize but do not write to InfluxDB",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="debug logging, including every point built",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single poll cycle and exit (non-zero exit on failure)",
    )
    return parser.parse_args(argv)


def apply_overrides(settings: EdgeSettings, args: argparse.Namespace) -> EdgeSettings:
    """Return *settings* with the CLI toggles applied on top."""
    updates: dict[str, bool] = {}
    if args.dry_run:
        updates["dry_run"] = True
    if args.verbose:
        updates["verbose"] = True
    return settings.model_copy(update=updates) if updates else settings


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main(argv: Sequence[str] | None = None) -> int:
    """Async entrypoint: parse args, load config, build components, run.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.

    Returns:
        Process exit code.
    """
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    from pvs_edge.src.config import EdgeSettings
    from pvs_edge.src.measures import show_measures
    from pvs_edge.src.orchestrator import PollOrchestrator
    from pvs_edge.src.sink import InfluxSink

    try:
        settings = apply_overrides(EdgeSettings(), args)
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    if settings.verbose:
        configure_logging(logging.DEBUG)
    log_config_summary(settings)

    if args.command == "show-measures":
        try:
            await show_measures(settings)
        except PvsError as exc:
            logger.error("show-measures failed: %s: %s", type(exc).__name__, exc)
            return 1
        return 0

    sink = None
    if not settings.dry_run:
        sink = InfluxSink(
            url=settings.influx_url,
            token=settings.influx_token,
            database=settings.influx_database,
        )

    orchestrator = PollOrchestrator(
        host=settings.pvs_host,
        credential=settings.credential(),
        sink=sink,
        options=settings.poll_options(),
        timeout_s=settings.request_timeout_s,
    )

    try:
        if args.once:
            result = await _poll_once(orchestrator)
            return 0 if result is not None and result.ok else 1

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: _handle_signal(shutdown_event),
            )

        await run_loop(
            orchestrator=orchestrator,
            poll_interval_s=settings.poll_interval_s,
            shutdown_event=shutdown_event,
        )
        logger.info("Shutdown complete")
        return 0
    finally:
        if sink is not None:
            sink.close()


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the edge collector."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
