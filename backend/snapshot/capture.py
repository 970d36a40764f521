"""
PollWatch Snapshot Capture.

Recursive directory walk producing immutable snapshots.
Requires Python 3.11+.
"""

import fnmatch
import os
import stat
import time
from pathlib import Path

from snapshot.models import Entry, Snapshot
from utils.logger import LoggerMixin


class TreeScanner(LoggerMixin):
    """
    Captures snapshots of directory trees.

    Transient read failures never abort a capture: a directory that cannot
    be listed is recorded with no children, and an entry that disappears
    between listing and stat is left out. Both are retried on the next
    capture simply by walking again.
    """

    def __init__(self, ignore_patterns: list[str] | None = None) -> None:
        """
        Initialize the scanner.

        Args:
            ignore_patterns: Glob patterns for entries to leave out
        """
        self._ignore_patterns = list(ignore_patterns or [])

    @property
    def ignore_patterns(self) -> list[str]:
        return list(self._ignore_patterns)

    def _should_ignore(self, name: str, path: str) -> bool:
        """Check if an entry should be left out of the snapshot."""
        for pattern in self._ignore_patterns:
            if pattern == name or fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(path, pattern):
                return True
        return False

    def capture(self, root: Path) -> Snapshot:
        """
        Capture the tree under ``root``.

        Args:
            root: Absolute, canonical path of the watched root

        Returns:
            Snapshot of the root and everything reachable below it
        """
        captured_at = time.time()
        try:
            st = os.stat(root)
        except OSError as e:
            self.log.debug("root_unavailable", root=str(root), error=str(e))
            return Snapshot(root=root, root_entry=None, captured_at=captured_at)

        if not stat.S_ISDIR(st.st_mode):
            return Snapshot(
                root=root,
                root_entry=Entry.file(root, st.st_mtime_ns),
                captured_at=captured_at,
            )

        root_entry = Entry.directory(root, st.st_mtime_ns, self._scan_children(root))
        return Snapshot(root=root, root_entry=root_entry, captured_at=captured_at)

    def _scan_children(self, root: Path) -> dict[str, Entry]:
        """
        Build the children of ``root`` and everything below it.

        Directories are listed with an explicit stack, then entries are
        assembled deepest first, so tree depth is not bounded by the
        interpreter's recursion limit.
        """
        listings: dict[Path, dict[str, tuple[bool, int]]] = {}
        order: list[Path] = []
        pending = [root]
        while pending:
            directory = pending.pop()
            listing = self._list_directory(directory)
            listings[directory] = listing
            order.append(directory)
            pending.extend(directory / name for name, (is_dir, _) in listing.items() if is_dir)

        built: dict[Path, dict[str, Entry]] = {}
        # Every directory comes after its parent in ``order``
        for directory in reversed(order):
            children: dict[str, Entry] = {}
            for name, (is_dir, mtime_ns) in listings.pop(directory).items():
                child_path = directory / name
                if is_dir:
                    children[name] = Entry.directory(child_path, mtime_ns, built.pop(child_path))
                else:
                    children[name] = Entry.file(child_path, mtime_ns)
            built[directory] = children

        return built[root]

    def _list_directory(self, directory: Path) -> dict[str, tuple[bool, int]]:
        """Map each child name to whether it is a directory and its mtime."""
        listing: dict[str, tuple[bool, int]] = {}
        try:
            with os.scandir(directory) as entries:
                listed = list(entries)
        except OSError as e:
            # Unreadable or deleted mid-walk: present, but empty for this tick
            self.log.debug("directory_unreadable", path=str(directory), error=str(e))
            return listing

        for child in listed:
            if self._ignore_patterns and self._should_ignore(child.name, child.path):
                continue

            try:
                child_stat = child.stat(follow_symlinks=False)
            except OSError:
                # Vanished between listing and stat
                continue

            listing[child.name] = (stat.S_ISDIR(child_stat.st_mode), child_stat.st_mtime_ns)

        return listing


def capture_snapshot(root: Path, ignore_patterns: list[str] | None = None) -> Snapshot:
    """
    Capture a snapshot of ``root`` with a one-off scanner.

    Args:
        root: Absolute path of the directory to capture
        ignore_patterns: Glob patterns for entries to leave out

    Returns:
        Snapshot of the tree
    """
    return TreeScanner(ignore_patterns).capture(root)
