"""Aggregate content hashes for out-of-band divergence checks.

For each entity kind the latest change of every entity is taken, entities
are grouped into sectors by the first character of their id and each
sector is hashed over ``entity_id + row_hash`` in entity-id order. Two
instances that hold the same rows report the same hashes whatever order
the changes arrived in. Nothing here repairs a divergence.
"""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict

from ..db.store import NoteStore
from .entities import EntityKind

logger = logging.getLogger(__name__)


class ContentHasher:
    def __init__(self, store: NoteStore) -> None:
        self.store = store

    def get_entity_hashes(self) -> dict[str, dict[str, str]]:
        """Return ``{entity_name: {sector: sha1_hex}}``."""
        rows = self.store.get_rows(
            "SELECT ec.entity_name, ec.entity_id, ec.hash "
            "FROM entity_changes ec "
            "JOIN (SELECT MAX(id) AS id FROM entity_changes "
            "      GROUP BY entity_name, entity_id) latest ON latest.id = ec.id "
            "ORDER BY ec.entity_name, ec.entity_id"
        )

        digests: dict[str, dict[str, "hashlib._Hash"]] = {
            kind.value: {} for kind in EntityKind
        }
        for row in rows:
            sectors = digests.setdefault(row["entity_name"], {})
            sector = row["entity_id"][:1]
            if sector not in sectors:
                sectors[sector] = hashlib.sha1()
            sectors[sector].update(f"{row['entity_id']}{row['hash']}".encode("utf-8"))

        result: dict[str, dict[str, str]] = defaultdict(dict)
        for entity_name, sectors in digests.items():
            result[entity_name] = {s: d.hexdigest() for s, d in sorted(sectors.items())}
        return dict(result)
