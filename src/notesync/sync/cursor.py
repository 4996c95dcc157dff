"""Replication watermarks.

``ChangeCursor`` stores the two ``EntityChange.id`` watermarks that track
replication progress in the ``options`` table:

* ``last_synced_pull`` -- id (in the peer's log) of the last change
  applied locally.
* ``last_synced_push`` -- id (in the local log) of the last change the
  peer accepted.

Both only move forward. Each advance is written immediately, not batched
at the end of a cycle, so a crash resumes right after the last row that
was fully processed.
"""

from __future__ import annotations

import logging

from ..db.store import NoteStore

logger = logging.getLogger(__name__)

PULL_OPTION = "last_synced_pull"
PUSH_OPTION = "last_synced_push"


class ChangeCursor:
    """Load and advance the pull/push watermarks of one store."""

    def __init__(self, store: NoteStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def last_pulled(self) -> int:
        return self._store.get_int_option(PULL_OPTION)

    @property
    def last_pushed(self) -> int:
        return self._store.get_int_option(PUSH_OPTION)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def advance_pull(self, change_id: int) -> None:
        self._advance(PULL_OPTION, change_id)

    def advance_push(self, change_id: int) -> None:
        self._advance(PUSH_OPTION, change_id)

    def reset(self) -> None:
        """Rewind both watermarks to 0 so the next cycle re-sends everything."""
        self._store.set_option(PULL_OPTION, 0)
        self._store.set_option(PUSH_OPTION, 0)
        logger.info("Sync cursors reset to 0")

    def _advance(self, option: str, change_id: int) -> None:
        current = self._store.get_int_option(option)
        if change_id < current:
            # a watermark never moves back outside of reset()
            logger.warning(
                "Ignoring %s regression from %d to %d", option, current, change_id
            )
            return
        self._store.set_option(option, change_id)
