"""Database schema for a notesync document.

``APP_DB_VERSION`` is the schema version this build expects. Replication
refuses to run while the stored ``schema_version`` option differs, and the
login handshake rejects peers that report another version.
"""

APP_DB_VERSION = 3

SCHEMA = """
CREATE TABLE IF NOT EXISTS options (
    name        TEXT PRIMARY KEY,
    value       TEXT,
    date_modified TEXT
);

CREATE TABLE IF NOT EXISTS notes (
    note_id       TEXT PRIMARY KEY,
    title         TEXT NOT NULL DEFAULT '',
    content       TEXT,
    is_protected  INTEGER NOT NULL DEFAULT 0,
    is_deleted    INTEGER NOT NULL DEFAULT 0,
    date_created  TEXT NOT NULL,
    date_modified TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS links (
    link_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    note_id        TEXT NOT NULL,
    target_url     TEXT NOT NULL,
    date_created   TEXT
);
CREATE INDEX IF NOT EXISTS idx_links_note_id ON links(note_id);

CREATE TABLE IF NOT EXISTS notes_tree (
    note_id        TEXT PRIMARY KEY,
    parent_note_id TEXT NOT NULL,
    note_position  INTEGER NOT NULL DEFAULT 0,
    prefix         TEXT,
    is_expanded    INTEGER NOT NULL DEFAULT 0,
    is_deleted     INTEGER NOT NULL DEFAULT 0,
    date_modified  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notes_history (
    note_history_id    TEXT PRIMARY KEY,
    note_id            TEXT NOT NULL,
    title              TEXT,
    content            TEXT,
    is_protected       INTEGER NOT NULL DEFAULT 0,
    date_modified_from TEXT NOT NULL,
    date_modified_to   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entity_changes (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_name      TEXT NOT NULL,
    entity_id        TEXT NOT NULL,
    source_id        TEXT NOT NULL,
    hash             TEXT NOT NULL DEFAULT '',
    is_synced        INTEGER NOT NULL DEFAULT 0,
    utc_date_changed TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entity_changes_entity
    ON entity_changes(entity_name, entity_id);

CREATE TABLE IF NOT EXISTS audit_log (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    category   TEXT NOT NULL,
    source_id  TEXT,
    note_id    TEXT,
    date_added TEXT NOT NULL
);
"""
