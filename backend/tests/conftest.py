"""
PollWatch Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import os
import queue
import threading
from pathlib import Path
from typing import Generator

import pytest

from changes.events import ChangeEvent
from watcher.file_watcher import FileSystemWatcher, create_watcher

EXISTING_FILE_NAME = "a.txt"
EXISTING_DIR = "existingDir"


class EventCollector:
    """Observer that records each delivered batch in a blocking queue."""

    def __init__(self) -> None:
        self.batches: queue.Queue[list[ChangeEvent]] = queue.Queue()
        self.calls = 0
        self.threads: set[str] = set()
        self._lock = threading.Lock()

    def __call__(self, events: list[ChangeEvent]) -> None:
        with self._lock:
            self.calls += 1
            self.threads.add(threading.current_thread().name)
        self.batches.put(events)

    def next_batch(self, timeout: float = 10.0) -> list[ChangeEvent]:
        """Wait for the next delivered batch."""
        return self.batches.get(timeout=timeout)

    def assert_silent(self, wait: float = 0.2) -> None:
        """Assert that nothing is delivered within ``wait`` seconds."""
        with pytest.raises(queue.Empty):
            self.batches.get(timeout=wait)


def touch_file(path: Path, content: str = "data") -> Path:
    """Create or overwrite a file."""
    path.write_text(content)
    return path


def set_mtime(path: Path, seconds: float) -> None:
    """Force a file's modification time."""
    os.utime(path, (seconds, seconds))


@pytest.fixture
def collector() -> EventCollector:
    """Create an event collector."""
    return EventCollector()


@pytest.fixture
def second_collector() -> EventCollector:
    """Create a second, independent event collector."""
    return EventCollector()


@pytest.fixture
def watched_tree(tmp_path: Path) -> Path:
    """Create a directory tree with one top-level file and one populated subdirectory."""
    root = tmp_path / "fileSystemWatcherTest"
    root.mkdir()
    touch_file(root / EXISTING_FILE_NAME)

    sub = root / EXISTING_DIR
    sub.mkdir()
    touch_file(sub / EXISTING_FILE_NAME)
    return root.resolve()


@pytest.fixture
def empty_dir(tmp_path: Path) -> Path:
    """Create an empty directory."""
    root = tmp_path / "empty"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def manual_watcher() -> Generator[FileSystemWatcher, None, None]:
    """
    Running watcher whose background interval is too long to fire during a test.

    Drive it with ``poll_now()`` for deterministic ticks.
    """
    watcher = create_watcher(600_000, name="manual-watcher")
    yield watcher
    watcher.close()


@pytest.fixture
def fast_watcher() -> Generator[FileSystemWatcher, None, None]:
    """Running watcher polling every 10 milliseconds."""
    watcher = create_watcher(10, name="fast-watcher")
    yield watcher
    watcher.close()
