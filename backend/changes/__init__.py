"""
PollWatch Changes Package.

Snapshot comparison and change event types.
Requires Python 3.11+.
"""

from changes.events import ChangeEvent, ChangeType, DiffResult
from changes.differencer import diff, diff_snapshots

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "DiffResult",
    "diff",
    "diff_snapshots",
]
