"""Exception types raised by the replication engine.

- ``TransportError``: the peer could not be reached, timed out or answered
  with a non-2xx status. Aborts the current phase.
- ``AuthError``: the login handshake was rejected.
- ``ProtocolError``: the peer sent something this side cannot process
  (unknown entity kind, chunk for an unknown request, malformed body).
- ``EntityNotFoundError``: a requested row does not exist.
- ``PreconditionError``: the local database cannot take part in sync yet.

``SyncSession`` turns all of them into a ``SyncOutcome``; none reach the
scheduler.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for replication failures."""


class TransportError(SyncError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(SyncError):
    pass


class ProtocolError(SyncError):
    pass


class UnknownEntityError(ProtocolError):
    def __init__(self, entity_name: str) -> None:
        super().__init__(f"Unrecognized entity type {entity_name!r}")
        self.entity_name = entity_name


class PartialRequestError(ProtocolError):
    pass


class EntityNotFoundError(SyncError):
    def __init__(self, entity_name: str, entity_id: str) -> None:
        super().__init__(f"Entity {entity_name} {entity_id} not found")
        self.entity_name = entity_name
        self.entity_id = entity_id


class PreconditionError(SyncError):
    pass
