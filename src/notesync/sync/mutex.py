"""Process-wide lock shared by sync cycles and backups.

Whoever asks first runs; the other caller blocks until release.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncMutex:
    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextlib.contextmanager
    def hold(self, owner: str = "") -> Iterator[None]:
        if self._lock.locked():
            logger.debug("Waiting for sync mutex (%s)", owner or "anonymous")
        with self._lock:
            yield

    def do_exclusively(self, fn: Callable[[], T], owner: str = "") -> T:
        """Call *fn* while holding the mutex and return its result."""
        with self.hold(owner):
            return fn()
