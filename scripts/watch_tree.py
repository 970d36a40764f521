#!/usr/bin/env python3
"""
PollWatch Tree Watch Script.

Watches one or more directories by polling and prints every change.
Requires Python 3.11+.

Usage:
    python scripts/watch_tree.py /path/to/dir [/another/dir ...] --interval-ms 500
"""

import argparse
import sys
import threading
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from changes.events import ChangeEvent
from utils.config import get_settings
from utils.logger import configure_logging, get_logger
from watcher import PollWatchError, create_watcher


configure_logging()
logger = get_logger("watch_tree")


def print_events(root: Path):
    """Build an observer printing the events seen under ``root``."""

    def observer(events: list[ChangeEvent]) -> None:
        for event in events:
            print(f"[{root.name}] {event.type.value:<8} {event.path}", flush=True)

    return observer


def main() -> None:
    """Main entry point."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Poll directories for changes and print them",
    )
    parser.add_argument(
        "paths",
        type=Path,
        nargs="+",
        help="Directories to watch",
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=settings.watcher.poll_interval_ms,
        help="Milliseconds between polls",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=None,
        help="Glob pattern to exclude (repeatable)",
    )

    args = parser.parse_args()

    try:
        watcher = create_watcher(args.interval_ms, ignore_patterns=args.ignore)
    except PollWatchError as e:
        print(f"Error: {e}")
        sys.exit(1)

    try:
        for path in args.paths:
            watcher.watch_path(path, print_events(path.resolve()))
        logger.info("watching", paths=[str(p) for p in watcher.watched_paths])
        print("Watching for changes, press Ctrl+C to stop")
        threading.Event().wait()
    except PollWatchError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopped by user")
    finally:
        watcher.close()


if __name__ == "__main__":
    main()
