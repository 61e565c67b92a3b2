# src/progress_overlay/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- event tailer + staleness sweeper in a background thread,
- console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..ingest.runner import start_ingest_in_background
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_main: threading.Event) -> None:
    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks SIGTERM.
        logger.debug("Signal handlers not installed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.log_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    runner = start_ingest_in_background(state)
    if runner is None:
        logger.error("Ingest failed to start; exiting.")
        return

    try:
        if settings.console_enabled:
            # Default SIGINT: Ctrl+C raises KeyboardInterrupt inside input().
            run_console_loop(state)
        else:
            # Use an Event so main can wait without a busy while-loop.
            stop_main = threading.Event()
            _install_signal_handlers(stop_main)
            logger.info("Console disabled. Watching %s. Press Ctrl+C to stop.", settings.events_path)
            stop_main.wait()
    except KeyboardInterrupt:
        # Ctrl+C while a command (e.g. /watch) was running.
        logger.info("Interrupted, shutting down...")
    finally:
        runner.stop()
        runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
