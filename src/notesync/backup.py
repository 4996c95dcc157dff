"""Database backups.

``backup_now()`` snapshots the document database into the backup
directory while holding the ``SyncMutex``, so a snapshot never contains a
half-applied sync cycle. ``regular_backup()`` is run by a ``PeriodicTask``
and refreshes the daily, weekly and monthly snapshots when they are due.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .db.store import NoteStore
from .sync.mutex import SyncMutex
from .utils import format_datetime, parse_datetime

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

BACKUP_PERIODS: dict[str, timedelta] = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


class BackupService:
    """Take snapshots of one store.

    Args:
        store: The document store.
        backup_dir: Directory receiving ``backup-<name>.db`` files.
        mutex: Lock shared with the sync session.
    """

    def __init__(self, store: NoteStore, backup_dir: Path, mutex: SyncMutex) -> None:
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.mutex = mutex

    def backup_now(self, name: str = "now") -> Path:
        """Write ``backup-<name>.db`` and return its path.

        Raises:
            ValueError: If *name* contains anything but letters, digits,
                ``-`` and ``_``.
        """
        if not _NAME_PATTERN.match(name):
            raise ValueError(f"Invalid backup name '{name}'")

        target = self.backup_dir / f"backup-{name}.db"
        with self.mutex.hold("backup"):
            self.store.backup_to(target)

        logger.info("Created backup at %s", target)
        return target

    def regular_backup(self, now: datetime | None = None) -> list[Path]:
        """Refresh every periodic snapshot that is due.

        Returns:
            Paths of the backups written by this call.
        """
        now = now or datetime.now(timezone.utc)
        written = []
        for name, period in BACKUP_PERIODS.items():
            option = f"last_{name}_backup_date"
            last = self.store.get_option(option)
            if last is not None and now - parse_datetime(last) <= period:
                continue
            written.append(self.backup_now(name))
            self.store.set_option(option, format_datetime(now))
        return written

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob("backup-*.db"))
