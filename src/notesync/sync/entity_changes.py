"""Append-only log of mutations to replicated rows.

Every local write and every applied incoming row appends one
``entity_changes`` row. Ids come from SQLite ``AUTOINCREMENT`` inside the
writing transaction, so they are strictly increasing and a rolled-back
write leaves no id behind. Rows are never deleted or rewritten, apart
from the ``is_synced`` flag set after a successful push.
"""

from __future__ import annotations

import logging

from ..db.store import NoteStore
from ..utils import hash_row, utc_now_datetime
from .entities import ENTITIES, EntityKind
from .models import EntityChange

logger = logging.getLogger(__name__)


class EntityChangeLog:
    """Read and append entity changes of one store.

    Args:
        store: The document store.
    """

    def __init__(self, store: NoteStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def add(
        self,
        kind: EntityKind,
        entity_id: str,
        source_id: str,
        row_hash: str = "",
    ) -> int:
        """Append one change and return its id."""
        return self.store.insert(
            "entity_changes",
            {
                "entity_name": kind.value,
                "entity_id": entity_id,
                "source_id": source_id,
                "hash": row_hash,
                "is_synced": 0,
                "utc_date_changed": utc_now_datetime(),
            },
        )

    def record(
        self, kind: EntityKind, row: dict, source_id: str | None = None
    ) -> int:
        """Append a change for *row*, hashing its current content.

        ``source_id`` defaults to this instance.
        """
        definition = ENTITIES[kind]
        return self.add(
            kind,
            definition.entity_id_of(row),
            source_id or self.store.source_id,
            hash_row(row),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, change_id: int) -> EntityChange | None:
        row = self.store.get_row(
            "SELECT * FROM entity_changes WHERE id = ?", (change_id,)
        )
        return EntityChange(**row) if row else None

    def first_after(self, last_id: int) -> EntityChange | None:
        """Oldest change with ``id > last_id``."""
        row = self.store.get_row(
            "SELECT * FROM entity_changes WHERE id > ? ORDER BY id LIMIT 1",
            (last_id,),
        )
        return EntityChange(**row) if row else None

    def changes_since(
        self,
        last_id: int,
        exclude_source_id: str | None = None,
        limit: int = 1000,
    ) -> list[EntityChange]:
        """Changes after *last_id* in id order.

        Changes originated by *exclude_source_id* are left out so a peer
        never pulls back what it pushed.
        """
        if exclude_source_id:
            rows = self.store.get_rows(
                "SELECT * FROM entity_changes WHERE id > ? AND source_id != ? "
                "ORDER BY id LIMIT ?",
                (last_id, exclude_source_id, limit),
            )
        else:
            rows = self.store.get_rows(
                "SELECT * FROM entity_changes WHERE id > ? ORDER BY id LIMIT ?",
                (last_id, limit),
            )
        return [EntityChange(**r) for r in rows]

    def max_id(self, exclude_source_id: str | None = None) -> int:
        """Highest change id, ignoring changes from *exclude_source_id*."""
        if exclude_source_id:
            return int(
                self.store.get_value(
                    "SELECT COALESCE(MAX(id), 0) FROM entity_changes "
                    "WHERE source_id != ?",
                    (exclude_source_id,),
                )
            )
        return int(
            self.store.get_value("SELECT COALESCE(MAX(id), 0) FROM entity_changes")
        )

    def count_after(self, last_id: int) -> int:
        return int(
            self.store.get_value(
                "SELECT COUNT(*) FROM entity_changes WHERE id > ?", (last_id,)
            )
        )

    def mark_synced(self, change_id: int) -> None:
        self.store.execute(
            "UPDATE entity_changes SET is_synced = 1 WHERE id = ?", (change_id,)
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def move_to_top(self, kind: EntityKind, entity_id: str) -> int | None:
        """Append a fresh change for an existing row so it is pushed again.

        Returns the new change id, or ``None`` if the row does not exist.
        """
        row = ENTITIES[kind].load(self.store, entity_id)
        if row is None:
            return None
        return self.record(kind, row)

    def fill_all(self) -> int:
        """Record a change for every replicated row that has none.

        Returns the number of changes appended.
        """
        added = 0
        with self.store.transaction():
            for kind, definition in ENTITIES.items():
                rows = self.store.get_rows(
                    f"SELECT * FROM {definition.table} WHERE {definition.primary_key} "
                    "NOT IN (SELECT entity_id FROM entity_changes WHERE entity_name = ?)",
                    (kind.value,),
                )
                for row in rows:
                    self.record(kind, row)
                    added += 1
        if added:
            logger.info("Filled %d missing entity changes", added)
        return added

    def add_for_sector(self, kind: EntityKind, sector: str) -> int:
        """Record a fresh change for every row of *kind* in *sector*.

        A sector is the first character of the entity id, as reported by
        the content hashes; queueing it resends the whole sector on the
        next push. Returns the number of changes appended.

        Raises:
            ValueError: If *sector* is not a single character.
        """
        if len(sector) != 1:
            raise ValueError(f"Invalid sector '{sector}'")
        definition = ENTITIES[kind]
        with self.store.transaction():
            rows = self.store.get_rows(
                f"SELECT * FROM {definition.table} "
                f"WHERE SUBSTR({definition.primary_key}, 1, 1) = ?",
                (sector,),
            )
            for row in rows:
                self.record(kind, row)
        logger.info(
            "Queued %d %s changes for sector %s", len(rows), kind.value, sector
        )
        return len(rows)
