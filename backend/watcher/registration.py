"""
PollWatch Registrations.

Binds each watched root to its baseline snapshot and to the observers
subscribed to it.
Requires Python 3.11+.
"""

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from changes.differencer import diff_snapshots
from changes.events import ChangeEvent
from snapshot.capture import TreeScanner
from snapshot.models import Snapshot
from utils.logger import LoggerMixin

Observer = Callable[[list[ChangeEvent]], Any]


class RegistrationHandle:
    """
    Ticket for one observer attached to one root.

    Cancelling removes exactly this observer. A cancelled handle is marked
    inactive first, so a dispatch already iterating the observer list skips
    it instead of the list being compacted underneath it.
    """

    def __init__(
        self,
        registration: "Registration",
        observer: Observer,
        table: "RegistrationTable",
    ) -> None:
        self._registration = registration
        self._observer = observer
        self._table = table
        self._active = True

    @property
    def root(self) -> Path:
        return self._registration.root

    @property
    def observer(self) -> Observer:
        return self._observer

    @property
    def registration(self) -> "Registration":
        return self._registration

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Remove this observer. Safe to call more than once."""
        self._table.cancel(self)

    def _deactivate(self) -> None:
        self._active = False

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"RegistrationHandle(root={str(self.root)!r}, observer={self._observer!r}, {state})"


class Registration(LoggerMixin):
    """
    One watched root, its baseline snapshot and its observers.

    The baseline is only ever replaced by ``poll``, as a single reference
    swap, and polls of the same registration never run concurrently.
    """

    def __init__(self, root: Path, scanner: TreeScanner, baseline: Snapshot) -> None:
        """
        Initialize the registration.

        Args:
            root: Canonical path of the watched root
            scanner: Scanner used to capture new snapshots
            baseline: Snapshot the first poll is compared against
        """
        self._root = root
        self._scanner = scanner
        self._baseline = baseline
        # Replaced wholesale on every change, never mutated in place
        self._handles: list[RegistrationHandle] = []
        self._lock = threading.Lock()
        self._poll_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def baseline(self) -> Snapshot:
        return self._baseline

    @property
    def handles(self) -> list[RegistrationHandle]:
        return list(self._handles)

    @property
    def is_empty(self) -> bool:
        return not self._handles

    def add(self, handle: RegistrationHandle) -> None:
        with self._lock:
            self._handles = [*self._handles, handle]

    def remove(self, handle: RegistrationHandle) -> None:
        with self._lock:
            self._handles = [h for h in self._handles if h is not handle]

    def poll(self, should_deliver: Callable[[], bool] | None = None) -> list[ChangeEvent]:
        """
        Capture, compare against the baseline, deliver, then swap the baseline.

        Args:
            should_deliver: Checked before each observer call; delivery to the
                remaining observers stops once it returns False

        Returns:
            Events computed for this poll (empty when nothing changed)
        """
        with self._poll_lock:
            current = self._scanner.capture(self._root)
            result = diff_snapshots(self._baseline, current)

            if result.has_changes:
                self.log.debug(
                    "changes_detected",
                    root=str(self._root),
                    added=len(result.added),
                    modified=len(result.modified),
                    removed=len(result.removed),
                )
                self._dispatch(result.events, should_deliver)

            self._baseline = result.baseline
            return result.events

    def _dispatch(
        self,
        events: list[ChangeEvent],
        should_deliver: Callable[[], bool] | None,
    ) -> None:
        """Deliver events to each active observer, isolating their failures."""
        for handle in self._handles:
            if should_deliver is not None and not should_deliver():
                return
            if not handle.active:
                continue
            try:
                handle.observer(list(events))
            except Exception:
                self.log.error(
                    "observer_failed",
                    root=str(self._root),
                    observer=repr(handle.observer),
                    event_count=len(events),
                    exc_info=True,
                )


class RegistrationTable(LoggerMixin):
    """
    Thread-safe map of watched roots to registrations.

    ``attach`` and ``cancel`` may be called from any thread, concurrently
    with polls.
    """

    def __init__(self, scanner: TreeScanner) -> None:
        """
        Initialize the table.

        Args:
            scanner: Scanner shared by every registration
        """
        self._scanner = scanner
        self._registrations: dict[Path, Registration] = {}
        self._lock = threading.Lock()

    def attach(self, root: Path, observer: Observer) -> RegistrationHandle:
        """
        Attach an observer to ``root``.

        A new root has its baseline captured before this returns, so the
        observer never sees pre-existing content as added. An existing
        root is joined as is, sharing its current baseline.

        Args:
            root: Canonical path of the root
            observer: Callable receiving each non-empty list of events

        Returns:
            Handle that removes this observer when cancelled
        """
        with self._lock:
            registration = self._registrations.get(root)
            if registration is not None:
                return self._attach_locked(registration, observer)

        # Capture outside the lock so slow walks do not block other roots
        baseline = self._scanner.capture(root)

        with self._lock:
            registration = self._registrations.get(root)
            if registration is None:
                registration = Registration(root, self._scanner, baseline)
                self._registrations[root] = registration
                self.log.info(
                    "registration_created",
                    root=str(root),
                    entries=len(baseline),
                )
            return self._attach_locked(registration, observer)

    def _attach_locked(self, registration: Registration, observer: Observer) -> RegistrationHandle:
        handle = RegistrationHandle(registration, observer, self)
        registration.add(handle)
        self.log.debug("observer_attached", root=str(registration.root), observer=repr(observer))
        return handle

    def cancel(self, handle: RegistrationHandle) -> None:
        """Remove one observer, and its registration when it was the last."""
        with self._lock:
            self._cancel_locked(handle)

    def _cancel_locked(self, handle: RegistrationHandle) -> None:
        if not handle.active:
            return
        handle._deactivate()
        registration = handle.registration
        registration.remove(handle)
        self.log.debug("observer_detached", root=str(registration.root))

        if registration.is_empty and self._registrations.get(registration.root) is registration:
            del self._registrations[registration.root]
            self.log.info("registration_removed", root=str(registration.root))

    def detach(self, root: Path, observer: Observer) -> int:
        """
        Remove every handle attaching ``observer`` to ``root``.

        Returns:
            Number of handles removed
        """
        with self._lock:
            registration = self._registrations.get(root)
            if registration is None:
                return 0
            matching = [h for h in registration.handles if h.observer == observer]
            for handle in matching:
                self._cancel_locked(handle)
            return len(matching)

    def registrations(self) -> list[Registration]:
        """Copy of the current registrations."""
        with self._lock:
            return list(self._registrations.values())

    def roots(self) -> list[Path]:
        with self._lock:
            return list(self._registrations.keys())

    def observer_count(self, root: Path) -> int:
        with self._lock:
            registration = self._registrations.get(root)
            return 0 if registration is None else len(registration.handles)

    def clear(self) -> None:
        """Deactivate every handle and forget all registrations."""
        with self._lock:
            for registration in self._registrations.values():
                for handle in registration.handles:
                    handle._deactivate()
                    registration.remove(handle)
            self._registrations.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)
