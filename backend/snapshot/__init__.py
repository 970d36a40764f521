"""
PollWatch Snapshot Package.

Immutable recursive captures of watched directory trees.
Requires Python 3.11+.
"""

from snapshot.models import Entry, EntryKind, Snapshot
from snapshot.capture import TreeScanner, capture_snapshot

__all__ = [
    "Entry",
    "EntryKind",
    "Snapshot",
    "TreeScanner",
    "capture_snapshot",
]
