"""
PollWatch Watcher Errors.

Requires Python 3.11+.
"""


class PollWatchError(Exception):
    """Base class for errors raised by the watcher."""


class ConfigurationError(PollWatchError, ValueError):
    """A watcher or registration was configured with an invalid value.

    Raised when:
    - The poll interval is zero or negative
    - The dispatch worker count is zero or negative
    - An observer is not callable
    """


class InvalidRootError(ConfigurationError):
    """The root passed to ``watch_path`` is missing or not a directory."""


class WatcherStateError(PollWatchError, RuntimeError):
    """An operation was attempted in a lifecycle state that does not allow it."""
