"""The closed set of replicated entity kinds.

Each ``EntityKind`` has exactly one ``EntityDefinition`` describing its
table, primary key, dependent rows and audit categories. Entity names that
arrive over the wire are turned into an ``EntityKind`` once, by
``EntityKind.parse()``; everything past that boundary works with the enum
and looks definitions up in ``ENTITIES``, which covers every member.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..db.store import AuditCategory, NoteStore
from .errors import EntityNotFoundError, ProtocolError, UnknownEntityError
from .models import EntityPayload


class EntityKind(str, Enum):
    NOTES = "notes"
    NOTES_TREE = "notes_tree"
    NOTES_HISTORY = "notes_history"

    @classmethod
    def parse(cls, name: str) -> EntityKind:
        """Map a wire entity name to a kind.

        Raises:
            UnknownEntityError: If *name* is not a replicated kind.
        """
        try:
            return cls(name)
        except ValueError:
            raise UnknownEntityError(name) from None


@dataclass(frozen=True)
class EntityDefinition:
    """Storage layout of one entity kind."""

    kind: EntityKind
    table: str
    primary_key: str
    has_links: bool = False
    audit_categories: tuple[AuditCategory, ...] = ()

    def entity_id_of(self, row: dict) -> str:
        value = row.get(self.primary_key)
        if value in (None, ""):
            raise ProtocolError(
                f"{self.kind.value} row is missing its primary key '{self.primary_key}'"
            )
        return str(value)

    def load(self, store: NoteStore, entity_id: str) -> dict | None:
        return store.get_row(
            f"SELECT * FROM {self.table} WHERE {self.primary_key} = ?",
            (entity_id,),
        )

    def load_links(self, store: NoteStore, entity_id: str) -> list[dict]:
        return store.get_rows(
            "SELECT * FROM links WHERE note_id = ? ORDER BY link_id",
            (entity_id,),
        )

    def load_payload(self, store: NoteStore, entity_id: str) -> EntityPayload:
        """Current row and its links, as served to a pulling peer.

        Raises:
            EntityNotFoundError: If the row does not exist.
        """
        row = self.load(store, entity_id)
        if row is None:
            raise EntityNotFoundError(self.kind.value, entity_id)
        links = self.load_links(store, entity_id) if self.has_links else None
        return EntityPayload(entity=row, links=links)


ENTITIES: dict[EntityKind, EntityDefinition] = {
    EntityKind.NOTES: EntityDefinition(
        kind=EntityKind.NOTES,
        table="notes",
        primary_key="note_id",
        has_links=True,
        # content and title changes are not told apart
        audit_categories=(
            AuditCategory.UPDATE_CONTENT,
            AuditCategory.UPDATE_TITLE,
        ),
    ),
    EntityKind.NOTES_TREE: EntityDefinition(
        kind=EntityKind.NOTES_TREE,
        table="notes_tree",
        primary_key="note_id",
        audit_categories=(AuditCategory.UPDATE_TITLE,),
    ),
    EntityKind.NOTES_HISTORY: EntityDefinition(
        kind=EntityKind.NOTES_HISTORY,
        table="notes_history",
        primary_key="note_history_id",
    ),
}


def get_definition(kind: EntityKind) -> EntityDefinition:
    return ENTITIES[kind]
