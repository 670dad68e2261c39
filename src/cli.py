#!/usr/bin/env python3
"""
CLI for the file watchdog.

Usage:
    python -m src.cli watch README.md config/settings.yaml
    python -m src.cli watch notes.txt --debounce 300 -v
"""

import argparse
import logging
import signal
import sys
import time
from dataclasses import replace
from typing import List, Optional

from src.filewatch import FileWatchdog, WatchdogConfig, WatcherError


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self, install: bool = True):
        self.should_exit = False
        if install:
            signal.signal(signal.SIGINT, self._handler)
            signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Stopping...")
        self.should_exit = True


def cmd_watch(args, shutdown: Optional[GracefulShutdown] = None) -> int:
    """Watch files and log every change until interrupted."""
    try:
        config = WatchdogConfig.from_env()
        if args.debounce is not None:
            config = replace(config, debounce_ms=args.debounce)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    shutdown = shutdown or GracefulShutdown()

    with FileWatchdog(config=config) as watchdog:
        try:
            watchdog.add_files(args.files)
        except WatcherError as e:
            logger.error(f"Cannot watch file: {e}")
            return 1

        watchdog.subscribe(
            lambda change: logger.info(f"File changed: {change.path} ({change.change_kind.value})")
        )
        watchdog.start()

        logger.info(f"Watching {len(args.files)} file(s). Press Ctrl+C to exit.")
        while not shutdown.should_exit:
            time.sleep(0.5)

        stats = watchdog.stats()
        logger.info(
            f"Delivered {stats['notifications_sent']} notification(s), "
            f"suppressed {stats['events_suppressed']}, "
            f"recoveries {stats['recoveries']}"
        )

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Per-file change notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Watch files and log their changes")
    watch_parser.add_argument("files", nargs="+", help="Files to watch")
    watch_parser.add_argument(
        "--debounce",
        type=int,
        default=None,
        help="Debounce time in ms (default: 150, or FILEWATCH_DEBOUNCE_MS)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
