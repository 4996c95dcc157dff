"""SQLite persistence for the replicated note tables."""

from .store import AuditCategory, NoteStore

__all__ = ["AuditCategory", "NoteStore"]
