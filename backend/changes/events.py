"""
PollWatch Change Events.

Value types describing what changed between two snapshots.
Requires Python 3.11+.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from snapshot.models import Snapshot


class ChangeType(str, Enum):
    """Kinds of change reported to observers."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True, order=True)
class ChangeEvent:
    """A single change to one path."""

    path: Path
    type: ChangeType

    def __str__(self) -> str:
        return f"{self.type.value} {self.path}"


@dataclass
class DiffResult:
    """Events computed for one comparison plus the baseline to keep."""

    events: list[ChangeEvent] = field(default_factory=list)
    baseline: Snapshot | None = None

    @property
    def has_changes(self) -> bool:
        """Check if there are any changes."""
        return bool(self.events)

    @property
    def added(self) -> set[Path]:
        return {e.path for e in self.events if e.type is ChangeType.ADDED}

    @property
    def modified(self) -> set[Path]:
        return {e.path for e in self.events if e.type is ChangeType.MODIFIED}

    @property
    def removed(self) -> set[Path]:
        return {e.path for e in self.events if e.type is ChangeType.REMOVED}
