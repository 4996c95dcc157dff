"""Timer-driven triggers.

``PeriodicTask`` runs a callable on a daemon thread: once after an initial
delay, then every ``interval`` seconds until stopped. ``SyncScheduler``
drives ``SyncSession.sync()`` with it; its ``tick()`` runs one cycle
synchronously so tests need no threads.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .models import SyncOutcome, SyncStatus
from .session import SyncSession

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Call *fn* after *initial_delay* seconds, then every *interval* seconds.

    Exceptions from *fn* are logged and do not stop the timer.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[], object],
        interval: float,
        initial_delay: float | None = None,
    ) -> None:
        self.name = name
        self.fn = fn
        self.interval = interval
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"notesync-{self.name}", daemon=True
        )
        self._thread.start()
        logger.debug(
            "Started %s timer (first run in %ss, then every %ss)",
            self.name,
            self.initial_delay,
            self.interval,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> None:
        try:
            self.fn()
        except Exception:
            logger.exception("%s task failed", self.name)

    def _loop(self) -> None:
        delay = self.initial_delay
        while not self._stop.wait(delay):
            self.run_once()
            delay = self.interval


class SyncScheduler:
    """Periodic trigger for one ``SyncSession``.

    Args:
        session: The session to drive.
        interval: Seconds between cycles.
        initial_delay: Seconds before the first cycle after ``start()``.
    """

    def __init__(
        self, session: SyncSession, interval: float = 60, initial_delay: float = 1
    ) -> None:
        self.session = session
        self._task = PeriodicTask(
            "sync", self.tick, interval=interval, initial_delay=initial_delay
        )

    @property
    def running(self) -> bool:
        return self._task.running

    def tick(self) -> SyncOutcome:
        """Run one cycle now; a tick that finds a cycle running is dropped."""
        outcome = self.session.sync()
        if outcome.status == SyncStatus.IN_PROGRESS:
            logger.info("Sync tick skipped: previous cycle still running")
        elif outcome.status == SyncStatus.FAILED:
            logger.warning("Sync tick failed: %s", outcome.error)
        return outcome

    def start(self) -> bool:
        """Start the timer. Returns ``False`` when no sync host is configured."""
        if not self.session.config.is_sync_setup:
            logger.info("Sync server not configured, sync timer not running")
            return False
        self._task.start()
        return True

    def stop(self) -> None:
        self._task.stop()
