"""Entity-change replication engine.

Replicates notes, their tree placement and their revisions between two
notesync instances over HTTP. Every mutation appends a sequenced row to
the entity change log; each side pulls the peer's changes after its pull
cursor and pushes its own after its push cursor. Conflicts are settled by
last writer wins on each kind's modification timestamp.

Modules:

- ``session``        -- ``SyncSession``: one full cycle (login, pull, push).
- ``scheduler``      -- ``SyncScheduler`` and ``PeriodicTask`` timers.
- ``cursor``         -- ``ChangeCursor``: persisted pull/push watermarks.
- ``entity_changes`` -- ``EntityChangeLog``: append-only change log.
- ``entities``       -- ``EntityKind`` and per-kind storage definitions.
- ``resolver``       -- per-kind last-writer-wins policies.
- ``updater``        -- ``EntityUpdater``: apply an incoming row.
- ``partial``        -- ``PartialRequestStore``: chunked push reassembly.
- ``content_hash``   -- ``ContentHasher``: divergence check digests.
- ``auth``           -- timestamp + HMAC login handshake.
- ``mutex``          -- ``SyncMutex`` shared with backups.
- ``models``         -- wire models and ``SyncOutcome``.
- ``reporter``       -- text and JSON formatting of outcomes.

Usage example
-------------
::

    from notesync.config import load_config
    from notesync.core.client import SyncClient
    from notesync.db.store import NoteStore
    from notesync.sync import SyncMutex, SyncSession, format_sync_outcome

    config = load_config()
    store = NoteStore(config.db_path)
    store.initialize()

    session = SyncSession(store, config, SyncMutex(), client_factory=SyncClient)
    print(format_sync_outcome(session.sync()))
"""

from .content_hash import ContentHasher
from .cursor import ChangeCursor
from .entities import ENTITIES, EntityKind
from .entity_changes import EntityChangeLog
from .models import EntityChange, SyncOutcome, SyncStatus
from .mutex import SyncMutex
from .partial import PartialRequestStore
from .reporter import format_sync_outcome, outcome_to_json
from .resolver import ConflictResolver, Resolution
from .scheduler import PeriodicTask, SyncScheduler
from .session import SyncSession
from .updater import EntityUpdater

__all__ = [
    "ENTITIES",
    "ChangeCursor",
    "ConflictResolver",
    "ContentHasher",
    "EntityChange",
    "EntityChangeLog",
    "EntityKind",
    "EntityUpdater",
    "PartialRequestStore",
    "PeriodicTask",
    "Resolution",
    "SyncMutex",
    "SyncOutcome",
    "SyncScheduler",
    "SyncSession",
    "SyncStatus",
    "format_sync_outcome",
    "outcome_to_json",
]
