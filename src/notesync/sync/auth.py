"""Timestamp + HMAC login handshake.

The initiating side signs the current time with the shared document
secret; the receiving side checks the schema version, the clock skew and
the signature before issuing a session token.
"""

from __future__ import annotations

import hmac as _hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from ..db.schema import APP_DB_VERSION
from ..db.store import NoteStore
from ..utils import format_datetime, hmac, parse_datetime
from .errors import AuthError

if TYPE_CHECKING:
    from ..core.client import SyncClient

logger = logging.getLogger(__name__)

MAX_CLOCK_SKEW = timedelta(hours=1)


class LoginRequest(BaseModel):
    timestamp: str
    schema_version: int
    hash: str

    model_config = {"frozen": True, "alias_generator": to_camel, "populate_by_name": True}


class AuthHandshake:
    """Build and send the login request of one sync cycle."""

    def __init__(self, store: NoteStore) -> None:
        self.store = store

    def build_request(self, now: datetime | None = None) -> LoginRequest:
        secret = self.store.get_option("document_secret")
        if not secret:
            raise AuthError("No document secret configured")
        timestamp = format_datetime(now or datetime.now(timezone.utc))
        return LoginRequest(
            timestamp=timestamp,
            schema_version=APP_DB_VERSION,
            hash=hmac(secret, timestamp),
        )

    def login(self, client: SyncClient) -> None:
        """Authenticate *client*; the session cookie stays in its jar.

        Raises:
            AuthError: If the peer rejected the credential.
            TransportError: If the peer could not be reached.
        """
        client.login(self.build_request())
        logger.debug("Logged in to %s", client.base_url)


def verify_login(
    store: NoteStore,
    request: LoginRequest,
    now: datetime | None = None,
    max_skew: timedelta = MAX_CLOCK_SKEW,
) -> None:
    """Check a login request against the local secret.

    Raises:
        AuthError: On a schema mismatch, a stale timestamp or a bad hash.
    """
    if request.schema_version != APP_DB_VERSION:
        raise AuthError(
            f"Non-matching schema versions, local is version {APP_DB_VERSION}, "
            f"remote is {request.schema_version}"
        )

    try:
        sent_at = parse_datetime(request.timestamp)
    except ValueError:
        raise AuthError(f"Malformed timestamp {request.timestamp!r}") from None
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    if abs(now - sent_at) > max_skew:
        raise AuthError(
            "Auth request time is out of sync, please check that both "
            "instances have correct time"
        )

    secret = store.get_option("document_secret") or ""
    expected = hmac(secret, request.timestamp)
    if not _hmac.compare_digest(expected.encode("ascii"), request.hash.encode("utf-8")):
        logger.warning("Sync login rejected: hash mismatch")
        raise AuthError("Sync login credentials are incorrect")
