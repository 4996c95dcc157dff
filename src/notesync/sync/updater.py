"""Apply an incoming row to the local store.

The pull path and the receiving push endpoints both end here, so the two
directions share identical update semantics. One call is one transaction:
the row is replaced wholesale, a note's links are deleted and re-inserted
from the incoming set, a change carrying the *remote* source id is
appended and the audit entries of the kind are written. When the local
row wins nothing is written.
"""

from __future__ import annotations

import logging

from ..db.store import NoteStore
from .entities import ENTITIES, EntityKind
from .entity_changes import EntityChangeLog
from .resolver import ConflictResolver, Resolution

logger = logging.getLogger(__name__)


class EntityUpdater:
    """Apply incoming rows of any replicated kind.

    Args:
        store: The local document store.
        resolver: Conflict resolver; a default one is created if omitted.
    """

    def __init__(
        self, store: NoteStore, resolver: ConflictResolver | None = None
    ) -> None:
        self.store = store
        self.resolver = resolver or ConflictResolver()
        self.changes = EntityChangeLog(store)

    def update_entity(
        self,
        kind: EntityKind,
        entity: dict,
        source_id: str,
        links: list[dict] | None = None,
    ) -> Resolution:
        """Apply *entity* received from *source_id*.

        Returns:
            ``APPLY_INCOMING`` if the row was written, ``KEEP_LOCAL`` if the
            local row was newer and nothing changed.

        Raises:
            ProtocolError: If the row lacks its primary key or timestamp.
        """
        definition = ENTITIES[kind]
        entity_id = definition.entity_id_of(entity)

        with self.store.transaction():
            local = definition.load(self.store, entity_id)
            resolution = self.resolver.resolve(kind, local, entity)

            if resolution == Resolution.KEEP_LOCAL:
                logger.info(
                    "Update of %s %s from %s lost to local row (local %s, incoming %s)",
                    kind.value,
                    entity_id,
                    source_id,
                    _timestamp(kind, local),
                    _timestamp(kind, entity),
                )
                return resolution

            self.store.replace(definition.table, entity)

            if definition.has_links:
                self._replace_links(entity_id, links or [])

            self.changes.record(kind, entity, source_id=source_id)

            for category in definition.audit_categories:
                self.store.add_audit(category, source_id, entity_id)

        logger.debug("Applied %s %s from %s", kind.value, entity_id, source_id)
        return resolution

    def _replace_links(self, note_id: str, links: list[dict]) -> None:
        self.store.execute("DELETE FROM links WHERE note_id = ?", (note_id,))
        for link in links:
            row = {k: v for k, v in link.items() if k != "link_id"}
            row["note_id"] = note_id
            self.store.insert("links", row)


def _timestamp(kind: EntityKind, row: dict | None) -> str | None:
    if row is None:
        return None
    field = "date_modified_to" if kind == EntityKind.NOTES_HISTORY else "date_modified"
    return row.get(field)
