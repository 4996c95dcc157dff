"""Conflict resolution for incoming rows.

Every kind resolves by last writer wins on its own modification timestamp;
the comparison differs per kind:

- ``NotePolicy``: incoming wins when ``local <= incoming``
  (``date_modified``), so a tie goes to the peer.
- ``TreePolicy``: incoming wins when ``local < incoming``
  (``date_modified``), so a tie keeps the local placement.
- ``RevisionPolicy``: incoming wins when ``local < incoming``
  (``date_modified_to``).

A missing local row always lets the incoming row win. Timestamps are
fixed-width ISO-8601 UTC strings and are compared as strings.

The ``create_policy()`` factory maps entity kinds to policy instances.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from .entities import EntityKind
from .errors import ProtocolError

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    APPLY_INCOMING = "apply_incoming"
    KEEP_LOCAL = "keep_local"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictPolicy(Protocol):
    """Protocol that all per-kind policies must satisfy."""

    timestamp_field: str

    def incoming_wins(self, local_modified: str, incoming_modified: str) -> bool:
        """Decide between two existing rows from their timestamps."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class NotePolicy:
    timestamp_field = "date_modified"

    def incoming_wins(self, local_modified: str, incoming_modified: str) -> bool:
        return local_modified <= incoming_modified


class TreePolicy:
    timestamp_field = "date_modified"

    def incoming_wins(self, local_modified: str, incoming_modified: str) -> bool:
        # strict: on a tie the local placement stays (notes use <=)
        return local_modified < incoming_modified


class RevisionPolicy:
    timestamp_field = "date_modified_to"

    def incoming_wins(self, local_modified: str, incoming_modified: str) -> bool:
        return local_modified < incoming_modified


_POLICY_MAP: dict[EntityKind, type] = {
    EntityKind.NOTES: NotePolicy,
    EntityKind.NOTES_TREE: TreePolicy,
    EntityKind.NOTES_HISTORY: RevisionPolicy,
}


def create_policy(kind: EntityKind) -> ConflictPolicy:
    """Create the conflict policy for *kind*."""
    return _POLICY_MAP[kind]()  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ConflictResolver:
    """Decide per incoming row whether it replaces the local one."""

    def __init__(self) -> None:
        self._policies = {kind: create_policy(kind) for kind in EntityKind}

    def resolve(
        self, kind: EntityKind, local: dict | None, incoming: dict
    ) -> Resolution:
        """Return which side wins for *incoming* against *local*.

        Raises:
            ProtocolError: If the incoming row carries no timestamp.
        """
        policy = self._policies[kind]
        incoming_modified = incoming.get(policy.timestamp_field)
        if not incoming_modified:
            raise ProtocolError(
                f"Incoming {kind.value} row has no '{policy.timestamp_field}'"
            )

        if local is None:
            return Resolution.APPLY_INCOMING

        local_modified = local.get(policy.timestamp_field) or ""
        if policy.incoming_wins(local_modified, incoming_modified):
            return Resolution.APPLY_INCOMING
        return Resolution.KEEP_LOCAL
