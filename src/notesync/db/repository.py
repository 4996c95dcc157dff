"""Local writes to the replicated tables.

Every write here happens in one transaction with the entity change that
announces it, stamped with this instance's source id, so the next push
picks it up.
"""

from __future__ import annotations

import logging
from typing import Any

from ..sync.entities import ENTITIES, EntityKind
from ..sync.entity_changes import EntityChangeLog
from ..utils import random_string, utc_now_datetime
from .store import AuditCategory, NoteStore

logger = logging.getLogger(__name__)


class NoteRepository:
    def __init__(self, store: NoteStore) -> None:
        self.store = store
        self.changes = EntityChangeLog(store)

    def get_note(self, note_id: str) -> dict | None:
        return ENTITIES[EntityKind.NOTES].load(self.store, note_id)

    def get_links(self, note_id: str) -> list[dict]:
        return ENTITIES[EntityKind.NOTES].load_links(self.store, note_id)

    def save_note(
        self,
        title: str,
        content: str = "",
        note_id: str | None = None,
        links: list[str] | None = None,
        is_protected: bool = False,
        modified: str | None = None,
    ) -> dict:
        """Create or update a note and, if given, replace its links.

        Args:
            title: Note title.
            content: Note body.
            note_id: Existing note to update; a new id is generated if omitted.
            links: Target URLs; ``None`` leaves existing links untouched.
            is_protected: Protected flag.
            modified: Modification timestamp; defaults to now.

        Returns:
            The stored note row.
        """
        now = modified or utc_now_datetime()
        note_id = note_id or random_string(12)

        with self.store.transaction():
            existing = self.get_note(note_id)
            row: dict[str, Any] = {
                "note_id": note_id,
                "title": title,
                "content": content,
                "is_protected": int(is_protected),
                "is_deleted": 0,
                "date_created": existing["date_created"] if existing else now,
                "date_modified": now,
            }
            self.store.replace("notes", row)

            if links is not None:
                self.store.execute("DELETE FROM links WHERE note_id = ?", (note_id,))
                for target in links:
                    self.store.insert(
                        "links",
                        {"note_id": note_id, "target_url": target, "date_created": now},
                    )

            self.changes.record(EntityKind.NOTES, row)
            category = AuditCategory.UPDATE_CONTENT if existing else AuditCategory.CREATE_NOTE
            self.store.add_audit(category, self.store.source_id, note_id)

        logger.debug("Saved note %s", note_id)
        return row

    def delete_note(self, note_id: str, modified: str | None = None) -> None:
        """Soft-delete a note; the flag replicates like any other change."""
        with self.store.transaction():
            note = self.get_note(note_id)
            if note is None:
                raise KeyError(note_id)
            note = {**note, "is_deleted": 1, "date_modified": modified or utc_now_datetime()}
            self.store.replace("notes", note)
            self.changes.record(EntityKind.NOTES, note)

    def place_in_tree(
        self,
        note_id: str,
        parent_note_id: str,
        position: int = 0,
        prefix: str | None = None,
        modified: str | None = None,
    ) -> dict:
        row = {
            "note_id": note_id,
            "parent_note_id": parent_note_id,
            "note_position": position,
            "prefix": prefix,
            "is_expanded": 0,
            "is_deleted": 0,
            "date_modified": modified or utc_now_datetime(),
        }
        with self.store.transaction():
            self.store.replace("notes_tree", row)
            self.changes.record(EntityKind.NOTES_TREE, row)
            self.store.add_audit(
                AuditCategory.CHANGE_POSITION, self.store.source_id, note_id
            )
        return row

    def add_revision(
        self,
        note_id: str,
        date_from: str,
        date_to: str,
        revision_id: str | None = None,
    ) -> dict:
        """Snapshot the current title and content of a note as a revision."""
        with self.store.transaction():
            note = self.get_note(note_id)
            if note is None:
                raise KeyError(note_id)
            row = {
                "note_history_id": revision_id or random_string(12),
                "note_id": note_id,
                "title": note["title"],
                "content": note["content"],
                "is_protected": note["is_protected"],
                "date_modified_from": date_from,
                "date_modified_to": date_to,
            }
            self.store.replace("notes_history", row)
            self.changes.record(EntityKind.NOTES_HISTORY, row)
        return row
