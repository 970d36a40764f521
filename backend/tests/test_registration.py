"""
Tests for Registrations and the RegistrationTable.

Requires Python 3.11+.
"""

from pathlib import Path

import pytest

from changes.events import ChangeEvent, ChangeType
from snapshot.capture import TreeScanner
from snapshot.models import Snapshot
from tests.conftest import EXISTING_FILE_NAME, EventCollector, touch_file
from watcher.registration import RegistrationTable


class CountingScanner(TreeScanner):
    """Scanner that counts captures per root."""

    def __init__(self) -> None:
        super().__init__()
        self.captures: dict[Path, int] = {}

    def capture(self, root: Path) -> Snapshot:
        self.captures[root] = self.captures.get(root, 0) + 1
        return super().capture(root)


@pytest.fixture
def scanner() -> CountingScanner:
    """Create a counting scanner."""
    return CountingScanner()


@pytest.fixture
def table(scanner: CountingScanner) -> RegistrationTable:
    """Create a registration table."""
    return RegistrationTable(scanner)


class TestRegistrationTable:
    """Test cases for attaching and removing observers."""

    def test_first_attach_captures_baseline(self, table: RegistrationTable, scanner: CountingScanner, watched_tree: Path):
        """Test that a new root is scanned once, before attach returns."""
        handle = table.attach(watched_tree, EventCollector())

        assert scanner.captures[watched_tree] == 1
        assert handle.active
        assert handle.root == watched_tree
        assert handle.registration.baseline.get(watched_tree / EXISTING_FILE_NAME) is not None
        assert table.roots() == [watched_tree]

    def test_second_attach_reuses_baseline(self, table: RegistrationTable, scanner: CountingScanner, watched_tree: Path):
        """Test that another observer on the same root shares the registration."""
        first = table.attach(watched_tree, EventCollector())
        second = table.attach(watched_tree, EventCollector())

        assert scanner.captures[watched_tree] == 1
        assert first.registration is second.registration
        assert table.observer_count(watched_tree) == 2
        assert len(table) == 1

    def test_cancel_last_observer_removes_registration(self, table: RegistrationTable, watched_tree: Path):
        """Test registration lifetime follows its observers."""
        first = table.attach(watched_tree, EventCollector())
        second = table.attach(watched_tree, EventCollector())

        first.cancel()
        assert not first.active
        assert table.observer_count(watched_tree) == 1

        second.cancel()
        assert table.roots() == []
        assert len(table) == 0

    def test_cancel_is_idempotent(self, table: RegistrationTable, watched_tree: Path):
        """Test that cancelling twice is harmless."""
        handle = table.attach(watched_tree, EventCollector())
        other = table.attach(watched_tree, EventCollector())

        handle.cancel()
        handle.cancel()

        assert table.observer_count(watched_tree) == 1
        assert other.active

    def test_detach_by_observer(self, table: RegistrationTable, watched_tree: Path):
        """Test removing every handle for one observer."""
        observer = EventCollector()
        table.attach(watched_tree, observer)
        table.attach(watched_tree, observer)
        keeper = table.attach(watched_tree, EventCollector())

        assert table.detach(watched_tree, observer) == 2
        assert table.observer_count(watched_tree) == 1
        assert keeper.active
        assert table.detach(watched_tree / "unknown", observer) == 0

    def test_reattach_after_removal_takes_new_baseline(self, table: RegistrationTable, scanner: CountingScanner, watched_tree: Path):
        """Test that a root watched again after removal is scanned afresh."""
        table.attach(watched_tree, EventCollector()).cancel()
        table.attach(watched_tree, EventCollector())

        assert scanner.captures[watched_tree] == 2

    def test_clear(self, table: RegistrationTable, watched_tree: Path, empty_dir: Path):
        """Test dropping all registrations."""
        first = table.attach(watched_tree, EventCollector())
        second = table.attach(empty_dir, EventCollector())

        table.clear()

        assert len(table) == 0
        assert not first.active
        assert not second.active


class TestRegistrationPoll:
    """Test cases for polling and fan-out."""

    def test_poll_without_changes_delivers_nothing(self, table: RegistrationTable, watched_tree: Path):
        """Test that an unchanged tree invokes no observer."""
        observer = EventCollector()
        handle = table.attach(watched_tree, observer)

        assert handle.registration.poll() == []
        assert observer.calls == 0

    def test_poll_fans_out_identical_events(self, table: RegistrationTable, empty_dir: Path):
        """Test that every observer receives the same events."""
        first, second = EventCollector(), EventCollector()
        handle = table.attach(empty_dir, first)
        table.attach(empty_dir, second)

        path = touch_file(empty_dir / "f")
        events = handle.registration.poll()

        expected = [ChangeEvent(path, ChangeType.ADDED)]
        assert events == expected
        assert first.next_batch() == expected
        assert second.next_batch() == expected

    def test_poll_replaces_baseline(self, table: RegistrationTable, empty_dir: Path):
        """Test that a change is reported once, then the baseline holds it."""
        observer = EventCollector()
        handle = table.attach(empty_dir, observer)
        registration = handle.registration
        before = registration.baseline

        touch_file(empty_dir / "f")
        registration.poll()

        assert registration.baseline is not before
        assert empty_dir / "f" in registration.baseline
        assert registration.poll() == []
        assert observer.calls == 1

    def test_failing_observer_is_isolated(self, table: RegistrationTable, empty_dir: Path):
        """Test that one observer raising does not stop delivery to the next."""

        def broken(events: list[ChangeEvent]) -> None:
            raise RuntimeError("observer bug")

        healthy = EventCollector()
        handle = table.attach(empty_dir, broken)
        table.attach(empty_dir, healthy)

        touch_file(empty_dir / "f")
        handle.registration.poll()

        assert healthy.calls == 1

        # Not retried: the next poll has nothing new
        handle.registration.poll()
        assert healthy.calls == 1

    def test_cancel_during_dispatch_skips_observer(self, table: RegistrationTable, empty_dir: Path):
        """Test that an observer cancelled mid-dispatch is skipped, others still run."""
        later = EventCollector()
        tail = EventCollector()
        handles = {}

        def canceller(events: list[ChangeEvent]) -> None:
            handles["later"].cancel()

        first = table.attach(empty_dir, canceller)
        handles["later"] = table.attach(empty_dir, later)
        table.attach(empty_dir, tail)

        touch_file(empty_dir / "f")
        first.registration.poll()

        assert later.calls == 0
        assert tail.calls == 1
        assert table.observer_count(empty_dir) == 2

    def test_observers_get_independent_lists(self, table: RegistrationTable, empty_dir: Path):
        """Test that an observer mutating its list does not affect the next one."""

        def clearing(events: list[ChangeEvent]) -> None:
            events.clear()

        observer = EventCollector()
        handle = table.attach(empty_dir, clearing)
        table.attach(empty_dir, observer)

        touch_file(empty_dir / "f")
        handle.registration.poll()

        assert len(observer.next_batch()) == 1

    def test_should_deliver_stops_dispatch(self, table: RegistrationTable, empty_dir: Path):
        """Test that delivery halts once the gate closes, but the baseline still advances."""
        observer = EventCollector()
        handle = table.attach(empty_dir, observer)

        touch_file(empty_dir / "f")
        events = handle.registration.poll(should_deliver=lambda: False)

        assert len(events) == 1
        assert observer.calls == 0
        assert empty_dir / "f" in handle.registration.baseline
