"""Command-line entry point.

Exit codes: 0 when the run ends (including a requested shutdown), 1 on a
fatal error or an error while shutting down.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from pydantic import ValidationError

from restock_monitor.app import Monitor
from restock_monitor.config.settings import MonitorSettings
from restock_monitor.errors import MonitorError
from restock_monitor.logging_config import configure_logging

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(monitor: Monitor) -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, monitor.trigger_shutdown)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / loop
            logger.debug("Signal handler for %s not installed", sig)


async def run_monitor(monitor: Monitor) -> int:
    """Run *monitor* to completion and map the outcome to an exit code."""
    install_signal_handlers(monitor)

    try:
        await monitor.run()
    except MonitorError as exc:
        if monitor.shutdown_requested:
            logger.error("Error during shutdown: %s", exc)
        else:
            logger.critical("Fatal error: %s", exc)
        return 1
    except Exception:
        if monitor.shutdown_requested:
            logger.exception("Error during shutdown")
        else:
            logger.exception("Fatal error")
        return 1

    return 0


def main() -> int:
    try:
        settings = MonitorSettings()
    except ValidationError as exc:
        configure_logging()
        logger.critical("Invalid configuration:\n%s", exc)
        return 1

    configure_logging(settings.log_level, json_format=settings.log_format == "json")
    return asyncio.run(run_monitor(Monitor(settings)))
