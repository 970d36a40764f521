"""
PollWatch Watcher Package.

Poll-based file system monitoring with per-root observer fan-out.
Requires Python 3.11+.
"""

from watcher.errors import (
    ConfigurationError,
    InvalidRootError,
    PollWatchError,
    WatcherStateError,
)
from watcher.file_watcher import FileSystemWatcher, WatcherState, create_watcher
from watcher.registration import Registration, RegistrationHandle, RegistrationTable
from watcher.scheduler import PollScheduler

__all__ = [
    "ConfigurationError",
    "FileSystemWatcher",
    "InvalidRootError",
    "PollScheduler",
    "PollWatchError",
    "Registration",
    "RegistrationHandle",
    "RegistrationTable",
    "WatcherState",
    "WatcherStateError",
    "create_watcher",
]
