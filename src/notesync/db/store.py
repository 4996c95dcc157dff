"""SQLite persistence for one notesync document.

``NoteStore`` owns a single connection shared by the HTTP worker threads,
the scheduler threads and the CLI. Every statement runs under one
re-entrant lock; ``transaction()`` nests, and only the outermost level
issues ``BEGIN`` / ``COMMIT`` / ``ROLLBACK``.

Options (cursors, the shared secret, the source id, backup dates) live in
the ``options`` table and are read and written as strings.
"""

from __future__ import annotations

import contextlib
import logging
import re
import sqlite3
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from ..utils import random_string, utc_now_datetime
from .schema import APP_DB_VERSION, SCHEMA

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_EPOCH = "1970-01-01T00:00:00.000Z"


class AuditCategory(str, Enum):
    """Categories of entries written to ``audit_log``."""

    UPDATE_CONTENT = "UPDATE_CONTENT"
    UPDATE_TITLE = "UPDATE_TITLE"
    CREATE_NOTE = "CREATE_NOTE"
    CHANGE_POSITION = "CHANGE_POSITION"


class NoteStore:
    """Thread-safe wrapper around the document database.

    Args:
        db_path: Database file, or ``":memory:"`` for a throwaway store.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._lock = threading.RLock()
        self._depth = 0
        self._columns: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, document_secret: str | None = None) -> None:
        """Create the schema and seed missing options.

        Existing options are never overwritten, except the document secret
        when one is passed explicitly (both peers must share it).
        """
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._columns.clear()

        with self.transaction():
            defaults = {
                "schema_version": str(APP_DB_VERSION),
                "document_id": random_string(16),
                "document_secret": random_string(32),
                "source_id": random_string(12),
                "last_synced_pull": "0",
                "last_synced_push": "0",
                "initialized": "false",
                "last_daily_backup_date": _EPOCH,
                "last_weekly_backup_date": _EPOCH,
                "last_monthly_backup_date": _EPOCH,
            }
            for name, value in defaults.items():
                if self.get_option(name) is None:
                    self.set_option(name, value)

            if document_secret:
                self.set_option("document_secret", document_secret)

        logger.debug("Initialized document database at %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def schema_exists(self) -> bool:
        row = self.get_row(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'options'"
        )
        return row is not None

    def is_db_up_to_date(self) -> bool:
        """True when the stored schema version matches this build."""
        if not self.schema_exists():
            return False
        version = self.get_option("schema_version")
        return version is not None and int(version) == APP_DB_VERSION

    @property
    def source_id(self) -> str:
        value = self.get_option("source_id")
        if value is None:
            raise RuntimeError("Store not initialized: no source_id option")
        return value

    # ------------------------------------------------------------------
    # Transactions and queries
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def transaction(self) -> Iterator[NoteStore]:
        """Run the block atomically. Nested blocks join the outer one."""
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                self._conn.execute("COMMIT")

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._conn.execute(sql, params)

    def get_row(self, sql: str, params: tuple | list = ()) -> dict | None:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def get_rows(self, sql: str, params: tuple | list = ()) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    def get_value(self, sql: str, params: tuple | list = ()) -> Any:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return row[0] if row is not None else None

    def get_column(self, sql: str, params: tuple | list = ()) -> list[Any]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [r[0] for r in rows]

    def table_columns(self, table: str) -> list[str]:
        self._check_identifier(table)
        if table not in self._columns:
            with self._lock:
                info = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
            self._columns[table] = [r["name"] for r in info]
        return self._columns[table]

    def replace(self, table: str, row: dict) -> None:
        """``INSERT OR REPLACE`` *row*; keys that are not columns are dropped."""
        cols, values = self._split_row(table, row)
        placeholders = ", ".join("?" for _ in cols)
        self.execute(
            f"INSERT OR REPLACE INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
            values,
        )

    def insert(self, table: str, row: dict) -> int:
        cols, values = self._split_row(table, row)
        placeholders = ", ".join("?" for _ in cols)
        cursor = self.execute(
            f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
            values,
        )
        return cursor.lastrowid

    def _split_row(self, table: str, row: dict) -> tuple[list[str], list[Any]]:
        known = set(self.table_columns(table))
        unknown = [k for k in row if k not in known]
        if unknown:
            logger.debug("Dropping unknown columns for %s: %s", table, unknown)
        cols = [k for k in row if k in known]
        if not cols:
            raise ValueError(f"No known columns in row for table '{table}'")
        return cols, [row[k] for k in cols]

    @staticmethod
    def _check_identifier(name: str) -> None:
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid SQL identifier: {name!r}")

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def get_option(self, name: str) -> str | None:
        return self.get_value("SELECT value FROM options WHERE name = ?", (name,))

    def get_int_option(self, name: str) -> int:
        value = self.get_option(name)
        if value is None:
            raise KeyError(f"Option '{name}' is not set")
        return int(value)

    def set_option(self, name: str, value: Any) -> None:
        self.execute(
            "INSERT OR REPLACE INTO options (name, value, date_modified) VALUES (?, ?, ?)",
            (name, str(value), utc_now_datetime()),
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def add_audit(
        self, category: AuditCategory, source_id: str | None, note_id: str
    ) -> None:
        self.execute(
            "INSERT INTO audit_log (category, source_id, note_id, date_added) VALUES (?, ?, ?, ?)",
            (category.value, source_id, note_id, utc_now_datetime()),
        )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def backup_to(self, target: Path) -> None:
        """Write a consistent copy of the database to *target*."""
        target.parent.mkdir(parents=True, exist_ok=True)
        target.unlink(missing_ok=True)
        dest = sqlite3.connect(str(target))
        try:
            with self._lock:
                self._conn.backup(dest)
        finally:
            dest.close()

    def vacuum(self) -> None:
        """Rebuild the database file to reclaim free pages."""
        with self._lock:
            if self._depth:
                raise RuntimeError("Cannot vacuum inside a transaction")
            self._conn.execute("VACUUM")
        logger.info("Database has been vacuumed")
