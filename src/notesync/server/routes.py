"""Handlers behind the ``/api`` sync endpoints.

``SyncApi`` holds the logic of every endpoint and knows nothing about the
web framework; ``server.app`` binds it to FastAPI routes. Errors are
raised as sync exceptions and mapped to status codes by the app.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading

from pydantic import ValidationError

from ..context import AppContext
from ..sync.auth import LoginRequest, verify_login
from ..sync.entities import ENTITIES, EntityKind
from ..sync.errors import AuthError, ProtocolError
from ..sync.models import PushBody, SyncOutcome
from ..sync.resolver import Resolution

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Session tokens issued by successful sync logins."""

    def __init__(self) -> None:
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    def issue(self) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens.add(token)
        return token

    def is_valid(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            return token in self._tokens

    def revoke(self, token: str) -> None:
        with self._lock:
            self._tokens.discard(token)


class SyncApi:
    def __init__(self, context: AppContext) -> None:
        self.context = context
        self.sessions = SessionRegistry()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, body: dict) -> str:
        """Verify a login request and return a new session token.

        Raises:
            AuthError: If the request is malformed or rejected.
        """
        try:
            request = LoginRequest.model_validate(body)
        except ValidationError as exc:
            raise AuthError(f"Malformed login request: {exc.error_count()} errors") from exc

        verify_login(self.context.store, request)
        logger.info("Sync login accepted")
        return self.sessions.issue()

    def require_session(self, token: str | None) -> None:
        if not self.sessions.is_valid(token):
            raise AuthError("Not logged in")

    # ------------------------------------------------------------------
    # Pull side
    # ------------------------------------------------------------------

    def get_changed(self, last_sync_id: int, source_id: str | None) -> dict:
        changes = self.context.changes.changes_since(
            last_sync_id,
            exclude_source_id=source_id,
            limit=self.context.config.pull_batch_size,
        )
        return {
            "entityChanges": [c.model_dump(by_alias=True) for c in changes],
            "maxEntityChangeId": self.context.changes.max_id(
                exclude_source_id=source_id
            ),
        }

    def get_entity(self, entity_name: str, entity_id: str) -> dict:
        kind = EntityKind.parse(entity_name)
        payload = ENTITIES[kind].load_payload(self.context.store, entity_id)
        return payload.model_dump(by_alias=True, exclude_none=True)

    # ------------------------------------------------------------------
    # Push side
    # ------------------------------------------------------------------

    def put_entity(
        self,
        entity_name: str,
        raw_body: str,
        page_count: int | None = None,
        page_index: int | None = None,
        request_id: str | None = None,
    ) -> dict:
        """Apply a single-row push, possibly arriving in pages."""
        kind = EntityKind.parse(entity_name)
        text = self._assemble(raw_body, page_count, page_index, request_id)
        if text is None:
            return {"status": "page accepted"}

        body = _parse_push_body(text)
        if body.entities is not None:
            return self._apply_batch(body)
        if body.entity is None:
            raise ProtocolError("Push body has neither 'entity' nor 'entities'")

        resolution = self.context.updater.update_entity(
            kind, body.entity, body.source_id, body.links
        )
        return _result([resolution])

    def update(
        self,
        raw_body: str,
        page_count: int | None = None,
        page_index: int | None = None,
        request_id: str | None = None,
    ) -> dict:
        """Apply a batched push ``{sourceId, entities: [...]}``."""
        text = self._assemble(raw_body, page_count, page_index, request_id)
        if text is None:
            return {"status": "page accepted"}

        body = _parse_push_body(text)
        if body.entities is None:
            raise ProtocolError("Batched push body has no 'entities'")
        return self._apply_batch(body)

    def _assemble(
        self,
        raw_body: str,
        page_count: int | None,
        page_index: int | None,
        request_id: str | None,
    ) -> str | None:
        if page_count is None and page_index is None:
            return raw_body
        if page_count is None or page_index is None or not request_id:
            raise ProtocolError(
                "Paged request needs pageCount, pageIndex and requestId headers"
            )
        return self.context.partials.add_page(
            request_id, page_index, page_count, raw_body
        )

    def _apply_batch(self, body: PushBody) -> dict:
        resolutions = []
        for item in body.entities or []:
            kind = EntityKind.parse(item.entity_change.entity_name)
            resolutions.append(
                self.context.updater.update_entity(
                    kind, item.entity, body.source_id, item.links
                )
            )
        return _result(resolutions)

    # ------------------------------------------------------------------
    # Diagnostics and operator actions
    # ------------------------------------------------------------------

    def check(self) -> dict:
        return {
            "entityHashes": self.context.hasher.get_entity_hashes(),
            "maxEntityChangeId": self.context.changes.max_id(),
        }

    def stats(self) -> dict:
        return self.context.session.stats()

    def sync_now(self) -> SyncOutcome:
        return self.context.scheduler.tick()

    def test(self) -> dict:
        message = self.context.session.test_connection()
        self.context.kick_off_sync()
        return {"success": True, "message": message}

    def force_full_sync(self) -> SyncOutcome:
        return self.context.session.force_full_sync()

    def force_note_sync(self, note_id: str) -> SyncOutcome:
        return self.context.session.force_note_sync(note_id)

    def fill_entity_changes(self) -> dict:
        return {"added": self.context.changes.fill_all()}

    def queue_sector(self, entity_name: str, sector: str) -> dict:
        kind = EntityKind.parse(entity_name)
        return {"queued": self.context.changes.add_for_sector(kind, sector)}

    def sync_finished(self) -> dict:
        self.context.store.set_option("initialized", "true")
        logger.info("Database marked as initialized")
        return {"initialized": True}

    def backup(self) -> dict:
        path = self.context.backups.backup_now("now")
        return {"backupFile": str(path)}

    def vacuum(self) -> dict:
        self.context.store.vacuum()
        return {"success": True}


def _parse_push_body(text: str) -> PushBody:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ProtocolError(f"Push body is not valid JSON: {exc}") from exc
    try:
        return PushBody.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid push body: {exc.error_count()} errors") from exc


def _result(resolutions: list[Resolution]) -> dict:
    applied = sum(1 for r in resolutions if r == Resolution.APPLY_INCOMING)
    return {"applied": applied, "conflicts": len(resolutions) - applied}
