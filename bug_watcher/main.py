#!/usr/bin/env python3
"""
Main entry point for the Bug Watcher monitor.

Runs either a single scrape (RUN_ONCE=true) or the periodic monitor until
interrupted. Behaviour is driven by environment variables:

- LOG_LEVEL: logging level (default INFO)
- RUN_ONCE: scrape once and exit
- BUG_WATCHER_DATA_DIR: directory of the persistence files
- BUG_WATCHER_URL / BUG_WATCHER_COOKIE / BUG_WATCHER_INTERVAL: config overrides
"""

import os
import sys
import time

from bug_watcher.errors import BugWatcherError
from bug_watcher.monitor import Monitor
from bug_watcher.utils import get_logger, setup_logging


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def run_once(monitor: Monitor) -> int:
    """
    Load persisted state, scrape once and report the result.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger = get_logger("main")

    monitor.startup(fetch=False)
    monitor.stop_polling()

    try:
        stats = monitor.fetch_now()
    except BugWatcherError as e:
        logger.error(f"Scrape failed: {e}")
        return EXIT_FAILURE
    finally:
        monitor.shutdown()

    if stats is not None:
        logger.info(
            f"Summary: {stats.total} total "
            f"(critical={stats.severity.critical}, severe={stats.severity.severe}, "
            f"major={stats.severity.major}, minor={stats.severity.minor})"
        )
    return EXIT_SUCCESS


def run_forever(monitor: Monitor, poll_seconds: float = 1.0) -> int:
    """Start the monitor and keep the process alive until interrupted."""
    logger = get_logger("main")

    monitor.startup()
    logger.info("Bug Watcher running, press Ctrl+C to stop")

    try:
        while True:
            time.sleep(poll_seconds)
    except KeyboardInterrupt:
        logger.info("Interrupted by user, shutting down")
    finally:
        monitor.shutdown()

    return EXIT_SUCCESS


def main() -> int:
    """
    Main entry point for the Bug Watcher monitor.

    Returns:
        Exit code for the process.
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    setup_logging(log_level)

    once = os.environ.get("RUN_ONCE", "").lower() in ("true", "1", "yes")
    monitor = Monitor()

    if once:
        return run_once(monitor)
    return run_forever(monitor)


if __name__ == "__main__":
    sys.exit(main())
