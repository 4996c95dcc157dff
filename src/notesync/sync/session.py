"""One replication cycle against the configured peer.

``SyncSession.sync()`` runs the whole cycle: single-flight guard, schema
check, login, pull, push. It holds the ``SyncMutex`` for the full cycle
so a backup never sees half-applied state, and it never raises: every
failure ends up in the returned ``SyncOutcome``.

Pull and push both walk changes strictly in ascending id order, one row
at a time, and move their cursor right after each row. The first failure
aborts the rest of the cycle; the next cycle resumes from the cursors.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from ..config import Config
from ..db.store import NoteStore
from ..utils import utc_now_datetime
from .auth import AuthHandshake
from .cursor import ChangeCursor
from .entities import ENTITIES, EntityKind
from .entity_changes import EntityChangeLog
from .errors import ProtocolError, SyncError
from .models import SyncOutcome, SyncStatus
from .mutex import SyncMutex
from .resolver import Resolution
from .updater import EntityUpdater

if TYPE_CHECKING:
    from ..core.client import SyncClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Config], "SyncClient"]


@dataclass
class _CycleProgress:
    started_at: str
    log: list[str] = field(default_factory=list)
    pulled: int = 0
    pushed: int = 0
    conflicts: int = 0

    def note(self, message: str) -> None:
        logger.info(message)
        self.log.append(message)

    def finish(self, status: SyncStatus, error: str | None = None) -> SyncOutcome:
        return SyncOutcome(
            status=status,
            log=list(self.log),
            pulled=self.pulled,
            pushed=self.pushed,
            conflicts=self.conflicts,
            error=error,
            started_at=self.started_at,
            completed_at=utc_now_datetime(),
        )


class SyncSession:
    """Replicate one local store with the configured peer.

    Args:
        store: The local document store.
        config: Runtime configuration (peer host, timeouts, batch size).
        mutex: Lock shared with the backup routine.
        client_factory: Builds a fresh ``SyncClient`` for each cycle.
    """

    def __init__(
        self,
        store: NoteStore,
        config: Config,
        mutex: SyncMutex,
        client_factory: ClientFactory,
    ) -> None:
        self.store = store
        self.config = config
        self.mutex = mutex
        self.client_factory = client_factory

        self.changes = EntityChangeLog(store)
        self.cursor = ChangeCursor(store)
        self.handshake = AuthHandshake(store)
        self.updater = EntityUpdater(store)

        self._guard = threading.Lock()
        self.last_outcome: SyncOutcome | None = None
        self.outstanding_pull_count = 0

    @property
    def in_progress(self) -> bool:
        return self._guard.locked()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def sync(self) -> SyncOutcome:
        """Run one cycle, or return at once if another is running."""
        progress = _CycleProgress(started_at=utc_now_datetime())

        if not self.config.is_sync_setup:
            progress.note("Sync server not configured, skipping sync")
            return progress.finish(SyncStatus.NOT_CONFIGURED)

        if not self._guard.acquire(blocking=False):
            progress.note("Sync already in progress")
            return progress.finish(SyncStatus.IN_PROGRESS)

        try:
            with self.mutex.hold("sync"):
                outcome = self._run(progress)
        finally:
            self._guard.release()

        self.last_outcome = outcome
        return outcome

    def _run(self, progress: _CycleProgress) -> SyncOutcome:
        if not self.store.is_db_up_to_date():
            progress.note("DB not up to date")
            return progress.finish(SyncStatus.DB_NOT_UP_TO_DATE)

        try:
            client = self.client_factory(self.config)
        except (SyncError, ValueError) as exc:
            logger.error("Cannot create sync client: %s", exc)
            return progress.finish(SyncStatus.FAILED, str(exc))

        try:
            self.handshake.login(client)
            progress.note(f"Logged in to {client.base_url}")
            self._pull(client, progress)
            self._push(client, progress)
        except SyncError as exc:
            logger.warning("Sync failed: %s", exc)
            progress.log.append(f"Sync failed: {exc}")
            return progress.finish(SyncStatus.FAILED, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during sync")
            return progress.finish(SyncStatus.FAILED, str(exc))
        finally:
            client.close()

        progress.note(
            f"Sync finished: pulled {progress.pulled}, pushed {progress.pushed}, "
            f"conflicts {progress.conflicts}"
        )
        return progress.finish(SyncStatus.SUCCESS)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _pull(self, client: SyncClient, progress: _CycleProgress) -> None:
        source_id = self.store.source_id

        while True:
            last_pulled = self.cursor.last_pulled
            response = client.get_changed(last_pulled, source_id)
            self.outstanding_pull_count = max(
                0, response.max_entity_change_id - last_pulled
            )
            if not response.entity_changes:
                break

            for change in response.entity_changes:
                if change.id <= self.cursor.last_pulled:
                    raise ProtocolError(
                        f"Peer sent change {change.id} at or below cursor "
                        f"{self.cursor.last_pulled}"
                    )
                kind = EntityKind.parse(change.entity_name)
                payload = client.get_entity(kind.value, change.entity_id)
                resolution = self.updater.update_entity(
                    kind, payload.entity, change.source_id, payload.links
                )
                if resolution == Resolution.APPLY_INCOMING:
                    progress.pulled += 1
                else:
                    progress.conflicts += 1
                self.cursor.advance_pull(change.id)

            progress.note(
                f"Pulled {len(response.entity_changes)} changes "
                f"up to {self.cursor.last_pulled}"
            )

        self.outstanding_pull_count = max(
            0, response.max_entity_change_id - self.cursor.last_pulled
        )

    def _push(self, client: SyncClient, progress: _CycleProgress) -> None:
        source_id = self.store.source_id

        while True:
            change = self.changes.first_after(self.cursor.last_pushed)
            if change is None:
                break

            if change.source_id != source_id:
                # came from a peer; never reflect it back
                self.cursor.advance_push(change.id)
                continue

            kind = EntityKind.parse(change.entity_name)
            definition = ENTITIES[kind]
            row = definition.load(self.store, change.entity_id)
            if row is None:
                logger.warning(
                    "Skipping push of %s %s: row no longer exists",
                    kind.value,
                    change.entity_id,
                )
                self.cursor.advance_push(change.id)
                continue

            body: dict = {"sourceId": source_id, "entity": row}
            if definition.has_links:
                body["links"] = definition.load_links(self.store, change.entity_id)

            client.push_entity(kind.value, body)

            self.cursor.advance_push(change.id)
            self.changes.mark_synced(change.id)
            progress.pushed += 1

        if progress.pushed:
            progress.note(f"Pushed {progress.pushed} changes")

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def test_connection(self) -> str:
        """Run only the login handshake.

        Raises:
            SyncError: If the peer is unreachable or rejects the login.
        """
        if not self.config.is_sync_setup:
            raise SyncError("Sync server host is not configured")
        client = self.client_factory(self.config)
        try:
            self.handshake.login(client)
        finally:
            client.close()
        return f"Sync server handshake with {client.base_url} has been successful"

    def force_full_sync(self) -> SyncOutcome:
        """Reset both cursors and run a cycle that resends everything."""
        self.cursor.reset()
        logger.info("Forcing full sync")
        return self.sync()

    def force_note_sync(self, note_id: str) -> SyncOutcome:
        """Push a note, its tree placement and its revisions as the newest
        version.

        Their modification times are set to now before they are queued, so
        the peer takes them over its own copies.
        """
        now = utc_now_datetime()
        with self.store.transaction():
            self.store.execute(
                "UPDATE notes SET date_modified = ? WHERE note_id = ?", (now, note_id)
            )
            self.changes.move_to_top(EntityKind.NOTES, note_id)

            self.store.execute(
                "UPDATE notes_tree SET date_modified = ? WHERE note_id = ?",
                (now, note_id),
            )
            self.changes.move_to_top(EntityKind.NOTES_TREE, note_id)

            revision_ids = self.store.get_column(
                "SELECT note_history_id FROM notes_history WHERE note_id = ?",
                (note_id,),
            )
            for revision_id in revision_ids:
                self.store.execute(
                    "UPDATE notes_history SET date_modified_to = ? "
                    "WHERE note_history_id = ?",
                    (now, revision_id),
                )
                self.changes.move_to_top(EntityKind.NOTES_HISTORY, revision_id)
        logger.info("Forcing sync of note %s", note_id)
        return self.sync()

    def stats(self) -> dict:
        return {
            "initialized": self.store.get_option("initialized") == "true",
            "outstandingPullCount": self.outstanding_pull_count,
            "lastSyncOutcome": (
                self.last_outcome.model_dump(mode="json")
                if self.last_outcome
                else None
            ),
        }
