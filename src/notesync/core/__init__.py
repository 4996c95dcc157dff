"""HTTP client for a peer instance, shared by the CLI, the API and the MCP server."""

from .async_utils import run_sync
from .client import SyncClient

__all__ = ["SyncClient", "run_sync"]
