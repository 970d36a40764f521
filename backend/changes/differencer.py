"""
PollWatch Differencer.

Compares two snapshots of the same root and classifies every path that
differs as added, modified or removed.
Requires Python 3.11+.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from changes.events import ChangeEvent, ChangeType, DiffResult
from snapshot.models import Entry, Snapshot


def diff_snapshots(old: Snapshot | None, new: Snapshot) -> DiffResult:
    """
    Compare ``old`` against ``new``.

    Rules, keyed by path below the root:
    - Only in ``new``: ADDED. A new directory gets one event for itself;
      its contents are left out of the returned baseline so that they are
      reported as ADDED by the next comparison.
    - Only in ``old``: REMOVED, along with every descendant.
    - Kind changed (file <-> directory): MODIFIED, whatever the timestamps.
    - File timestamp changed: MODIFIED.
    - A directory whose own timestamp changed produces no event; its
      children are compared instead.

    Children are visited in name order, so identical inputs always give
    the same event sequence, with at most one event per path.

    Args:
        old: Previous baseline, or None for an empty tree
        new: Freshly captured snapshot

    Returns:
        DiffResult with the events and the snapshot to keep as baseline
    """
    events: list[ChangeEvent] = []
    old_root = old.root_entry if old is not None else None

    if new.root_entry is None:
        if old_root is not None:
            for descendant in old_root.walk():
                events.append(ChangeEvent(descendant.path, ChangeType.REMOVED))
        return DiffResult(events=events, baseline=new)

    baseline_root = _compare_children(old_root, new.root_entry, events)
    baseline = Snapshot(root=new.root, root_entry=baseline_root, captured_at=new.captured_at)
    return DiffResult(events=events, baseline=baseline)


def diff(old: Snapshot | None, new: Snapshot) -> list[ChangeEvent]:
    """Return only the events from :func:`diff_snapshots`."""
    return diff_snapshots(old, new).events


def _compare_children(old: Entry | None, new: Entry, events: list[ChangeEvent]) -> Entry:
    """
    Diff the children of two entries for the same path and return ``new`` as it should be kept.

    Directories present on both sides are descended with an explicit stack
    of frames, each holding the remaining names and the children kept so
    far, so events come out in the same order a recursive walk would give.
    """
    stack = [_Frame.open(None, old, new)]

    while True:
        frame = stack[-1]
        name = next(frame.names, None)

        if name is None:
            stack.pop()
            kept_entry = frame.new.with_children(frame.kept)
            if not stack:
                return kept_entry
            stack[-1].kept[frame.name] = kept_entry
            continue

        before = frame.old_children.get(name)
        after = frame.new.children.get(name)

        if after is None:
            _report_subtree_removed(before, events)
            continue

        if before is None:
            events.append(ChangeEvent(after.path, ChangeType.ADDED))
            frame.kept[name] = after.without_children()
            continue

        if before.kind is not after.kind:
            events.append(ChangeEvent(after.path, ChangeType.MODIFIED))
            for descendant in before.walk():
                events.append(ChangeEvent(descendant.path, ChangeType.REMOVED))
            frame.kept[name] = after.without_children()
            continue

        if after.is_directory:
            stack.append(_Frame.open(name, before, after))
            continue

        if before.mtime_ns != after.mtime_ns:
            events.append(ChangeEvent(after.path, ChangeType.MODIFIED))
        frame.kept[name] = after


@dataclass(slots=True)
class _Frame:
    """One directory pair being compared."""

    name: str | None
    old_children: Mapping[str, Entry]
    new: Entry
    names: Iterator[str]
    kept: dict[str, Entry] = field(default_factory=dict)

    @classmethod
    def open(cls, name: str | None, old: Entry | None, new: Entry) -> "_Frame":
        old_children = old.children if old is not None else {}
        return cls(
            name=name,
            old_children=old_children,
            new=new,
            names=iter(sorted(old_children.keys() | new.children.keys())),
        )


def _report_subtree_removed(entry: Entry, events: list[ChangeEvent]) -> None:
    """Report ``entry`` and everything below it as removed."""
    events.append(ChangeEvent(entry.path, ChangeType.REMOVED))
    for descendant in entry.walk():
        events.append(ChangeEvent(descendant.path, ChangeType.REMOVED))
