"""
PollWatch Poll Scheduler.

Single background loop that re-scans every registered root at a fixed
interval and dispatches the resulting changes.
Requires Python 3.11+.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from changes.events import ChangeEvent
from utils.logger import LoggerMixin
from watcher.registration import Registration, RegistrationTable

# Lower bound on how long a tick waits for its polls
_MIN_TICK_WAIT = 1.0


class PollScheduler(LoggerMixin):
    """
    Drives polling for every registration in a table.

    One daemon thread waits the interval, then runs a tick. Within a tick
    each registration is polled on a shared executor. A root whose
    observer is still busy from an earlier tick is skipped until that
    poll finishes, so one slow observer never holds up the other roots
    and a root is never polled twice at once.
    """

    def __init__(
        self,
        table: RegistrationTable,
        interval_ms: int,
        workers: int = 4,
        name: str = "pollwatch",
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            table: Registrations to poll
            interval_ms: Delay between the end of one tick and the next
            workers: Maximum registrations polled in parallel
            name: Thread name, also used as executor thread prefix
        """
        self._table = table
        self._interval = interval_ms / 1000.0
        self._name = name
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"{name}-poll",
        )
        self._dispatch_threads: set[int] = set()
        self._dispatch_lock = threading.Lock()
        self._in_flight: dict[Registration, Future[list[ChangeEvent]]] = {}
        self._tick_count = 0

    @property
    def interval(self) -> float:
        """Interval in seconds."""
        return self._interval

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        """Start the background loop. No-op when already started."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self.log.debug("scheduler_started", name=self._name, interval_s=self._interval)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.tick()
            except Exception:
                # The loop only ends through stop()
                self.log.error("tick_failed", name=self._name, exc_info=True)
        self.log.debug("scheduler_stopped", name=self._name, ticks=self._tick_count)

    def tick(self) -> dict[Path, list[ChangeEvent]]:
        """
        Poll every registration once.

        The registration list is copied at the start, so roots added while
        the tick runs are first polled by the next tick. A registration
        whose previous poll is still running is skipped. The tick waits at
        most one interval, and at least one second, for its polls. A poll
        still running after that keeps delivering on its own and is left
        out of the result.

        Returns:
            Events per root, for the roots whose poll finished and changed
        """
        with self._tick_lock:
            if self._stop.is_set():
                return {}

            registrations = self._table.registrations()
            self._in_flight = {
                registration: future
                for registration, future in self._in_flight.items()
                if not future.done()
            }
            if not registrations:
                self._tick_count += 1
                return {}

            submitted: dict[Future[list[ChangeEvent]], Registration] = {}
            try:
                for registration in registrations:
                    if registration in self._in_flight:
                        self.log.debug("poll_still_running", root=str(registration.root))
                        continue
                    future = self._executor.submit(self._poll, registration)
                    self._in_flight[registration] = future
                    submitted[future] = registration
            except RuntimeError:
                # Executor shut down by a concurrent stop()
                if self._stop.is_set():
                    return {}
                raise

            done, pending = wait(submitted, timeout=max(self._interval, _MIN_TICK_WAIT))

            changes: dict[Path, list[ChangeEvent]] = {}
            for future, registration in submitted.items():
                if future in done:
                    events = future.result()
                    if events:
                        changes[registration.root] = events

            self._tick_count += 1
            if changes or pending:
                self.log.debug(
                    "tick_completed",
                    tick=self._tick_count,
                    roots=len(registrations),
                    changed_roots=len(changes),
                    still_running=len(pending),
                )
            return changes

    def _poll(self, registration: Registration) -> list[ChangeEvent]:
        ident = threading.get_ident()
        with self._dispatch_lock:
            self._dispatch_threads.add(ident)
        try:
            return registration.poll(should_deliver=self._should_deliver)
        except Exception:
            self.log.error("poll_failed", root=str(registration.root), exc_info=True)
            return []
        finally:
            with self._dispatch_lock:
                self._dispatch_threads.discard(ident)

    def _should_deliver(self) -> bool:
        return not self._stop.is_set()

    def in_dispatch_thread(self) -> bool:
        """Check if the caller is the loop thread or is running a poll."""
        ident = threading.get_ident()
        if self._thread is not None and self._thread.ident == ident:
            return True
        with self._dispatch_lock:
            return ident in self._dispatch_threads

    def stop(self, timeout: float | None = None) -> None:
        """
        Stop the loop and wait for in-progress polls to finish.

        Once this returns no observer is invoked again. This includes polls
        that outlived the tick which started them. When called from
        an observer the wait is skipped, since the tick cannot finish until
        that observer returns.

        Args:
            timeout: Seconds to wait for the loop thread, None to wait forever
        """
        self._stop.set()

        if self.in_dispatch_thread():
            self._executor.shutdown(wait=False)
            self.log.debug("scheduler_stop_requested_from_dispatch", name=self._name)
            return

        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)

        # Wait out a tick driven from a caller thread
        with self._tick_lock:
            pass

        self._executor.shutdown(wait=True)
