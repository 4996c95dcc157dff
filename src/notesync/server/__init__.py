"""Receiving side of the sync protocol."""

from .app import create_app
from .routes import SyncApi

__all__ = ["SyncApi", "create_app"]
