#!/usr/bin/env python3
"""
Command-line front end: watch directories and log every debounced change.

Usage:
    python -m file_update_monitor ./src ./docs --debounce-ms 500
    file-update-monitor ./src --kinds modified --rename-mode distinct -v
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config import MonitorConfig, parse_kinds
from .exceptions import SetupError, SourceFailure
from .models import EventKind, RenameMode
from .monitor import Monitor

logger = logging.getLogger("file_update_monitor.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="file-update-monitor",
        description="Watch directories and report each file change once per quiet period",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment defaults (also read from .env):
  FILE_MONITOR_DEBOUNCE_MS, FILE_MONITOR_RECURSIVE, FILE_MONITOR_RENAME_MODE,
  FILE_MONITOR_KINDS, FILE_MONITOR_INCLUDE_DIRECTORIES, FILE_MONITOR_MAX_WORKERS

Examples:
  # Report content changes only, like a hot-reload trigger
  file-update-monitor ./src --kinds modified --debounce-ms 300

  # Watch two trees and keep rename events distinct
  file-update-monitor ./a ./b --rename-mode distinct
        """,
    )
    parser.add_argument("roots", nargs="+", help="Root directories to watch")
    parser.add_argument("--debounce-ms", type=int, default=None, help="Quiet period in ms (default: 1000)")
    parser.add_argument(
        "--rename-mode",
        choices=[m.value for m in RenameMode],
        default=None,
        help="merge: renames become removed/created; distinct: keep renamed_from/renamed_to",
    )
    parser.add_argument(
        "--kinds",
        default=None,
        help="Comma-separated kinds to report (%s) or 'all'" % ", ".join(k.value for k in EventKind),
    )
    parser.add_argument("--include-directories", action="store_true", help="Also report directory events")
    parser.add_argument("--no-recursive", action="store_true", help="Do not watch subdirectories")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> MonitorConfig:
    """Combine environment defaults with command-line overrides."""
    return MonitorConfig.from_env(
        debounce_ms=args.debounce_ms,
        rename_mode=args.rename_mode,
        kinds=parse_kinds(args.kinds) if args.kinds is not None else None,
        recursive=False if args.no_recursive else None,
        include_directories=True if args.include_directories else None,
        pass_kind=True,
    )


async def run(roots: List[str], config: MonitorConfig) -> int:
    """Run a monitor until a signal arrives or the source fails."""

    async def report(path: str, kind: EventKind) -> None:
        logger.info("%s: %s", kind.value, path)

    monitor = Monitor.from_config(roots, report, config)
    loop = asyncio.get_running_loop()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            pass

    logger.info("Watching %d root(s), debounce %d ms", len(monitor.roots), config.debounce_ms)
    for root in sorted(monitor.roots):
        logger.info("  - %s", root)
    logger.info("Press Ctrl+C to stop")

    try:
        await monitor.start()
    except SourceFailure as e:
        logger.error("Watching failed: %s", e)
        return 1
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await monitor.wait_idle()
        logger.info("Monitor stopped: %s", monitor.stats.to_dict())

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    try:
        config = config_from_args(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    try:
        return asyncio.run(run(args.roots, config))
    except SetupError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
