"""
PollWatch Snapshot Data Models.

Immutable captures of a directory tree at one instant.
Requires Python 3.11+.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType


class EntryKind(str, Enum):
    """Kinds of file-system objects recorded in a snapshot."""

    FILE = "file"
    DIRECTORY = "directory"


_NO_CHILDREN: Mapping[str, "Entry"] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Entry:
    """
    One file-system object.

    Directories own a read-only mapping from child name to child entry.
    Files always have an empty mapping.
    """

    path: Path
    kind: EntryKind
    mtime_ns: int
    children: Mapping[str, "Entry"] = field(default_factory=lambda: _NO_CHILDREN)

    @classmethod
    def directory(
        cls, path: Path, mtime_ns: int, children: dict[str, "Entry"] | None = None
    ) -> "Entry":
        """Build a directory entry, freezing its children mapping."""
        frozen = MappingProxyType(dict(children)) if children else _NO_CHILDREN
        return cls(path=path, kind=EntryKind.DIRECTORY, mtime_ns=mtime_ns, children=frozen)

    @classmethod
    def file(cls, path: Path, mtime_ns: int) -> "Entry":
        """Build a file entry."""
        return cls(path=path, kind=EntryKind.FILE, mtime_ns=mtime_ns)

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def with_children(self, children: dict[str, "Entry"]) -> "Entry":
        """Return a copy of this entry holding ``children`` instead of its own."""
        frozen = MappingProxyType(dict(children)) if children else _NO_CHILDREN
        return Entry(path=self.path, kind=self.kind, mtime_ns=self.mtime_ns, children=frozen)

    def without_children(self) -> "Entry":
        """Return this entry with its children dropped."""
        if not self.children:
            return self
        return Entry(path=self.path, kind=self.kind, mtime_ns=self.mtime_ns)

    def walk(self) -> Iterator["Entry"]:
        """Yield every descendant depth first, children in name order."""
        pending = [self.children[name] for name in sorted(self.children, reverse=True)]
        while pending:
            entry = pending.pop()
            yield entry
            pending.extend(entry.children[name] for name in sorted(entry.children, reverse=True))


@dataclass(frozen=True, slots=True)
class Snapshot:
    """
    Capture of one watched root and all of its descendants.

    ``root_entry`` is None when the root did not exist at capture time.
    The root itself is never reported as a change, only its descendants.
    """

    root: Path
    root_entry: Entry | None
    captured_at: float = 0.0

    @classmethod
    def empty(cls, root: Path) -> "Snapshot":
        """Snapshot of a tree with nothing in it."""
        return cls(root=root, root_entry=None)

    @property
    def exists(self) -> bool:
        return self.root_entry is not None

    def entries(self) -> Iterator[Entry]:
        """Iterate over every descendant of the root."""
        if self.root_entry is None:
            return iter(())
        return self.root_entry.walk()

    def get(self, path: Path) -> Entry | None:
        """Look up the entry recorded for an absolute path."""
        if self.root_entry is None:
            return None
        if path == self.root:
            return self.root_entry
        try:
            parts = path.relative_to(self.root).parts
        except ValueError:
            return None

        entry = self.root_entry
        for part in parts:
            child = entry.children.get(part)
            if child is None:
                return None
            entry = child
        return entry

    def __contains__(self, path: object) -> bool:
        return isinstance(path, Path) and self.get(path) is not None

    def __len__(self) -> int:
        return sum(1 for _ in self.entries())
