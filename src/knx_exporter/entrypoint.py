"""
CLI entrypoint that runs the exporter until interrupted.

It loads the YAML configuration, registers the KNX collectors, starts the HTTP
status server and hands control to the supervisor. SIGINT/SIGTERM close the bus
connection, which ends the ingestion loop and lets the writer drain.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from collections.abc import Sequence
from pathlib import Path

from prometheus_client import CollectorRegistry

from .core.config import ConfigError, ConfigService
from .core.datapoints import XknxDatapointRegistry
from .core.supervisor import Supervisor
from .logs import configure_logging
from .status import StatusServer
from .transport import create_bus_client

LOGGER = logging.getLogger(__name__)


async def run_exporter(*, config_file: Path) -> None:
    """Wire the exporter together and run until the bus stream ends or a signal arrives."""

    settings = ConfigService(config_file=config_file).settings
    registry = CollectorRegistry()
    supervisor = Supervisor(
        settings,
        client_factory=create_bus_client,
        datapoints=XknxDatapointRegistry(),
    )
    supervisor.register_metrics(registry)
    status_server = StatusServer(supervisor, registry, settings.http)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    await status_server.start()
    run_task = asyncio.create_task(supervisor.run(), name="knx-exporter-ingest")
    stop_task = asyncio.create_task(stop_event.wait(), name="knx-exporter-stop")
    try:
        await asyncio.wait({run_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if not run_task.done():
            LOGGER.info("Closing KNX connection.")
            await supervisor.close()
        await run_task
    finally:
        stop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_task
        await status_server.stop()


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig_name: str) -> None:
        if not stop_event.is_set():
            LOGGER.info("Received %s - beginning graceful shutdown.", sig_name)
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
        except NotImplementedError:  # Windows Proactor loop
            signal.signal(  # type: ignore[arg-type]
                sig,
                lambda signum, _frame, sig_name=sig.name: loop.call_soon_threadsafe(
                    _request_shutdown, sig_name or str(signum)
                ),
            )


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export KNX group telegrams as Prometheus metrics."
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to the exporter configuration (default: ./config.yaml).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level, TRACE included (default: INFO).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional rotating log file.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    try:
        asyncio.run(run_exporter(config_file=args.config))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user.")
        return 0
    except ConfigError as exc:
        LOGGER.error("Configuration failed: %s", exc)
        return 2
    except ConnectionError as exc:
        LOGGER.error("KNX connection failed: %s", exc)
        return 1
    except Exception:  # pragma: no cover - surfaced to operator
        LOGGER.exception("KNX exporter crashed.")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())


__all__ = ["main", "parse_args", "run_exporter"]
