"""Tests for the SQLite document store.

Covers:
- initialize() seeds options once and honours an explicit secret
- schema version check
- nested transactions commit or roll back as one unit
- replace() drops unknown columns
- backup_to() writes a readable copy
"""

from __future__ import annotations

import sqlite3

import pytest

from notesync.db.schema import APP_DB_VERSION
from notesync.db.store import AuditCategory, NoteStore


class TestInitialize:
    def test_seeds_default_options(self, store):
        assert store.get_option("schema_version") == str(APP_DB_VERSION)
        assert store.get_int_option("last_synced_pull") == 0
        assert store.get_int_option("last_synced_push") == 0
        assert store.get_option("initialized") == "false"
        assert len(store.source_id) == 12

    def test_second_initialize_keeps_existing_values(self, store):
        source_id = store.source_id
        store.set_option("last_synced_pull", 42)

        store.initialize()

        assert store.source_id == source_id
        assert store.get_int_option("last_synced_pull") == 42

    def test_explicit_secret_overrides_stored_one(self, store):
        store.initialize(document_secret="rotated")
        assert store.get_option("document_secret") == "rotated"

    def test_file_store_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "document.db"
        s = NoteStore(path)
        s.initialize()
        try:
            assert path.exists()
        finally:
            s.close()


class TestSchemaVersion:
    def test_fresh_store_is_up_to_date(self, store):
        assert store.is_db_up_to_date() is True

    def test_older_version_is_not_up_to_date(self, store):
        store.set_option("schema_version", APP_DB_VERSION - 1)
        assert store.is_db_up_to_date() is False

    def test_uninitialized_store_is_not_up_to_date(self):
        s = NoteStore()
        try:
            assert s.schema_exists() is False
            assert s.is_db_up_to_date() is False
        finally:
            s.close()

    def test_source_id_requires_initialize(self):
        s = NoteStore()
        try:
            s.execute("CREATE TABLE options (name TEXT PRIMARY KEY, value TEXT, date_modified TEXT)")
            with pytest.raises(RuntimeError):
                _ = s.source_id
        finally:
            s.close()


class TestTransactions:
    def test_commit(self, store):
        with store.transaction():
            store.set_option("a", "1")
        assert store.get_option("a") == "1"

    def test_rollback_on_error(self, store):
        with pytest.raises(ValueError):
            with store.transaction():
                store.set_option("a", "1")
                raise ValueError("boom")
        assert store.get_option("a") is None

    def test_nested_rollback_undoes_outer_writes(self, store):
        with pytest.raises(ValueError):
            with store.transaction():
                store.set_option("outer", "1")
                with store.transaction():
                    store.set_option("inner", "1")
                raise ValueError("boom")
        assert store.get_option("outer") is None
        assert store.get_option("inner") is None


class TestRows:
    def test_replace_drops_unknown_columns(self, store):
        store.replace(
            "notes_tree",
            {
                "note_id": "n1",
                "parent_note_id": "root",
                "date_modified": "2026-01-01T00:00:00.000Z",
                "not_a_column": "x",
            },
        )
        row = store.get_row("SELECT * FROM notes_tree WHERE note_id = 'n1'")
        assert row["parent_note_id"] == "root"
        assert "not_a_column" not in row

    def test_replace_rejects_rows_without_known_columns(self, store):
        with pytest.raises(ValueError):
            store.replace("notes", {"bogus": 1})

    def test_invalid_table_name_rejected(self, store):
        with pytest.raises(ValueError):
            store.table_columns("notes; DROP TABLE notes")

    def test_get_int_option_missing_raises(self, store):
        with pytest.raises(KeyError):
            store.get_int_option("missing")

    def test_add_audit(self, store):
        store.add_audit(AuditCategory.UPDATE_TITLE, "src", "n1")
        row = store.get_row("SELECT * FROM audit_log")
        assert row["category"] == "UPDATE_TITLE"
        assert row["note_id"] == "n1"


class TestBackup:
    def test_backup_to_writes_copy(self, store, tmp_path):
        store.set_option("marker", "yes")
        target = tmp_path / "backup" / "copy.db"

        store.backup_to(target)

        conn = sqlite3.connect(target)
        try:
            value = conn.execute(
                "SELECT value FROM options WHERE name = 'marker'"
            ).fetchone()[0]
        finally:
            conn.close()
        assert value == "yes"

    def test_vacuum_keeps_data(self, tmp_path):
        store = NoteStore(tmp_path / "doc.db")
        store.initialize()
        try:
            store.set_option("marker", "yes")
            store.vacuum()
            assert store.get_option("marker") == "yes"
        finally:
            store.close()

    def test_vacuum_inside_transaction_rejected(self, store):
        with store.transaction():
            with pytest.raises(RuntimeError):
                store.vacuum()
