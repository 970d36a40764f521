"""
PollWatch File System Watcher.

Poll-based recursive directory watching with fan-out to observers.
Requires Python 3.11+.
"""

import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from changes.events import ChangeEvent
from snapshot.capture import TreeScanner
from utils.config import get_settings
from utils.logger import LoggerMixin
from watcher.errors import ConfigurationError, InvalidRootError, WatcherStateError
from watcher.registration import Observer, RegistrationHandle, RegistrationTable
from watcher.scheduler import PollScheduler


class WatcherState(str, Enum):
    """Lifecycle states of a watcher."""

    CREATED = "created"
    RUNNING = "running"
    CLOSED = "closed"


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return value


class FileSystemWatcher(LoggerMixin):
    """
    Watches directory trees by polling.

    Every registered root is re-scanned at a fixed interval and compared
    against its previous scan. Non-empty change sets are delivered to all
    observers of that root. Several observers on one root share a single
    baseline, so they always see the same events.

    Example:
        with create_watcher(250) as watcher:
            handle = watcher.watch_path(Path("/srv/data"), print)
            ...
            handle.cancel()
    """

    def __init__(
        self,
        poll_interval_ms: int | None = None,
        *,
        name: str | None = None,
        ignore_patterns: list[str] | None = None,
        dispatch_workers: int | None = None,
    ) -> None:
        """
        Initialize the watcher in the CREATED state.

        Args:
            poll_interval_ms: Milliseconds between polls (settings default if None)
            name: Name for the scheduler thread (settings default if None)
            ignore_patterns: Glob patterns excluded from scans (settings default if None)
            dispatch_workers: Roots polled in parallel (settings default if None)

        Raises:
            ConfigurationError: If the interval or worker count is not positive
        """
        settings = get_settings()

        self._poll_interval_ms = _positive_int(
            settings.watcher.poll_interval_ms if poll_interval_ms is None else poll_interval_ms,
            "poll_interval_ms",
        )
        workers = _positive_int(
            settings.watcher.dispatch_workers if dispatch_workers is None else dispatch_workers,
            "dispatch_workers",
        )
        self._name = name or settings.watcher.thread_name

        if ignore_patterns is None:
            ignore_patterns = settings.watcher.ignore_patterns
        self._scanner = TreeScanner(ignore_patterns)
        self._table = RegistrationTable(self._scanner)
        self._scheduler = PollScheduler(
            self._table,
            interval_ms=self._poll_interval_ms,
            workers=workers,
            name=self._name,
        )

        self._state = WatcherState.CREATED
        self._state_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._state is WatcherState.RUNNING

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_interval_ms

    @property
    def watched_paths(self) -> list[Path]:
        """Roots that currently have at least one observer."""
        return self._table.roots()

    def observer_count(self, root: str | os.PathLike[str]) -> int:
        """Get number of observers attached to a root."""
        return self._table.observer_count(self._canonical(root))

    def start(self) -> None:
        """
        Start the background poll loop.

        Raises:
            WatcherStateError: If the watcher has been closed
        """
        with self._state_lock:
            if self._state is WatcherState.CLOSED:
                raise WatcherStateError(f"watcher {self._name!r} is closed")
            if self._state is WatcherState.RUNNING:
                return
            self._scheduler.start()
            self._state = WatcherState.RUNNING

        self.log.info(
            "file_watcher_started",
            name=self._name,
            poll_interval_ms=self._poll_interval_ms,
            ignore_patterns=self._scanner.ignore_patterns,
        )

    def watch_path(self, root: str | os.PathLike[str], observer: Observer) -> RegistrationHandle:
        """
        Start delivering changes under ``root`` to ``observer``.

        The first observer for a root triggers a synchronous scan that
        becomes the baseline; nothing already present is reported. Further
        observers join the existing baseline.

        Args:
            root: Directory to watch
            observer: Callable receiving a list of ChangeEvent per changed tick

        Returns:
            Handle whose ``cancel()`` removes this observer

        Raises:
            ConfigurationError: If the observer is not callable
            InvalidRootError: If the root is missing or not a directory
            WatcherStateError: If the watcher is not running
        """
        self._require_running("watch_path")
        if not callable(observer):
            raise ConfigurationError(f"observer must be callable, got {observer!r}")
        root_path = self._validate_root(root)

        handle = self._table.attach(root_path, observer)

        # close() may have cleared the table while the baseline was captured
        if self._state is not WatcherState.RUNNING:
            handle.cancel()
            raise WatcherStateError(f"watcher {self._name!r} closed during watch_path")

        self.log.info("watch_registered", name=self._name, root=str(root_path))
        return handle

    def unwatch_path(self, root: str | os.PathLike[str], observer: Observer) -> None:
        """
        Stop delivering changes under ``root`` to ``observer``.

        Raises:
            WatcherStateError: If the watcher is not running
        """
        self._require_running("unwatch_path")
        root_path = self._canonical(root)
        removed = self._table.detach(root_path, observer)
        self.log.info("watch_unregistered", name=self._name, root=str(root_path), handles=removed)

    def poll_now(self) -> dict[Path, list[ChangeEvent]]:
        """
        Run one tick on the calling thread.

        Never overlaps a scheduled tick. Must not be called from an observer.

        Returns:
            Events per root, for the roots that changed
        """
        self._require_running("poll_now")
        return self._scheduler.tick()

    def close(self) -> None:
        """
        Stop polling and drop every registration.

        Waits for an in-progress tick, after which no observer is invoked
        again. Idempotent; shutdown failures are logged, never raised. A
        repeated call from outside an observer still waits, since the first
        call may have come from an observer that could not.
        """
        with self._state_lock:
            already_closed = self._state is WatcherState.CLOSED
            self._state = WatcherState.CLOSED

        if already_closed:
            if not self._scheduler.in_dispatch_thread():
                try:
                    self._scheduler.stop()
                except Exception:
                    self.log.warning("scheduler_stop_failed", name=self._name, exc_info=True)
            return

        try:
            self._scheduler.stop()
        except Exception:
            self.log.warning("scheduler_stop_failed", name=self._name, exc_info=True)

        try:
            self._table.clear()
        except Exception:
            self.log.warning("registration_clear_failed", name=self._name, exc_info=True)

        self.log.info("file_watcher_closed", name=self._name)

    def _require_running(self, operation: str) -> None:
        if self._state is not WatcherState.RUNNING:
            raise WatcherStateError(
                f"{operation} requires a running watcher, {self._name!r} is {self._state.value}"
            )

    @staticmethod
    def _canonical(root: str | os.PathLike[str]) -> Path:
        return Path(os.fspath(root)).expanduser().resolve()

    def _validate_root(self, root: Any) -> Path:
        """Canonicalize a root, rejecting anything that is not an existing directory."""
        if root is None or root == "":
            raise InvalidRootError("root path must not be empty")
        try:
            root_path = self._canonical(root)
        except (TypeError, OSError) as e:
            raise InvalidRootError(f"invalid root path {root!r}: {e}") from e

        if not root_path.is_dir():
            raise InvalidRootError(f"root path is not an existing directory: {root_path}")
        return root_path

    def __enter__(self) -> "FileSystemWatcher":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()


def create_watcher(
    poll_interval_ms: int | None = None,
    *,
    name: str | None = None,
    ignore_patterns: list[str] | None = None,
    dispatch_workers: int | None = None,
) -> FileSystemWatcher:
    """
    Create and start a watcher.

    Args:
        poll_interval_ms: Milliseconds between polls, must be positive
        name: Name for the scheduler thread
        ignore_patterns: Glob patterns excluded from scans
        dispatch_workers: Roots polled in parallel

    Returns:
        Running FileSystemWatcher instance
    """
    watcher = FileSystemWatcher(
        poll_interval_ms,
        name=name,
        ignore_patterns=ignore_patterns,
        dispatch_workers=dispatch_workers,
    )
    watcher.start()
    return watcher
