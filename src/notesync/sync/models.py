"""Pydantic models for the replication engine.

Defines the data contracts shared by the session, the HTTP client and the
receiving endpoints:

- ``EntityChange``: one row of the local change log.
- ``EntityPayload``: full state of one row as served to the peer.
- ``PushBody`` / ``PushItem``: bodies accepted by the push endpoints.
- ``ChangedResponse``: a batch of changes returned to a pulling peer.
- ``SyncStatus`` / ``SyncOutcome``: result of one sync cycle.

Wire names are camelCase; Python attributes are snake_case. All models are
frozen.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

_WIRE = {"frozen": True, "alias_generator": to_camel, "populate_by_name": True}


class EntityChange(BaseModel):
    """A sequenced record of one mutation to a replicated row.

    Attributes:
        id: Strictly increasing id; the only ordering key for replication.
        entity_name: Kind of the mutated row (``notes``, ``notes_tree``,
            ``notes_history``).
        entity_id: Primary key of the mutated row.
        source_id: Instance that originated the change.
        hash: Content hash of the row when the change was recorded.
        is_synced: Whether the change has been pushed to the peer.
        utc_date_changed: When the change was recorded.
    """

    id: int
    entity_name: str
    entity_id: str
    source_id: str
    hash: str = ""
    is_synced: bool = False
    utc_date_changed: str | None = None

    model_config = _WIRE


class EntityPayload(BaseModel):
    """Current state of one row plus its dependent rows (note links)."""

    entity: dict[str, Any]
    links: list[dict[str, Any]] | None = None

    model_config = _WIRE


class PushItem(BaseModel):
    entity_change: EntityChange
    entity: dict[str, Any]
    links: list[dict[str, Any]] | None = None

    model_config = _WIRE


class PushBody(BaseModel):
    """Body of a push request.

    Either a single row (``entity`` and optional ``links``, with the kind
    taken from the URL) or a batch in ``entities``.
    """

    source_id: str
    entity: dict[str, Any] | None = None
    links: list[dict[str, Any]] | None = None
    entities: list[PushItem] | None = None

    model_config = _WIRE


class ChangedResponse(BaseModel):
    entity_changes: list[EntityChange] = Field(default_factory=list)
    max_entity_change_id: int = 0

    model_config = _WIRE


class SyncStatus(str, Enum):
    """How a sync cycle ended."""

    SUCCESS = "success"
    IN_PROGRESS = "in_progress"
    DB_NOT_UP_TO_DATE = "db_not_up_to_date"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"


class SyncOutcome(BaseModel):
    """Result of one sync cycle.

    Attributes:
        status: How the cycle ended.
        log: Human-readable progress lines collected during the cycle.
        pulled: Rows applied locally (incoming won).
        pushed: Rows accepted by the peer.
        conflicts: Incoming rows discarded because the local row was newer.
        error: Message of the failure that aborted the cycle.
        started_at: ISO 8601 timestamp when the cycle started.
        completed_at: ISO 8601 timestamp when the cycle ended.
    """

    status: SyncStatus
    log: list[str] = Field(default_factory=list)
    pulled: int = 0
    pushed: int = 0
    conflicts: int = 0
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    def summary(self) -> str:
        """Format a short human-readable summary of the cycle."""
        lines = [
            f"Sync {self.status.value}",
            f"  Pulled:    {self.pulled}",
            f"  Pushed:    {self.pushed}",
            f"  Conflicts: {self.conflicts}",
        ]
        if self.error:
            lines.append(f"  Error:     {self.error}")
        return "\n".join(lines)
