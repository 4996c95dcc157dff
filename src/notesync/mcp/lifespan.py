"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..context import build_context, load_runtime_config

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Merge configuration: CLI > env vars > .env > YAML > defaults
    - Open the document database (created on first start)
    - Fail fast if the configuration is invalid

    The sync timers are not started: the MCP server only serves operator
    requests; ``notesync serve`` runs the scheduled cycles.

    Yields:
        Dict with 'context' key containing the wired AppContext

    Raises:
        RuntimeError: If configuration is invalid or the database cannot be opened.
    """
    logger.info("MCP server starting...")
    _stderr_print("notesync MCP server starting...")

    try:
        config, _, sources = load_runtime_config(config_overrides)
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Sync peer: {config.sync_server_host or 'not configured'}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        context = build_context(config, backup_enabled=False)
    except Exception as e:
        logger.error("Failed to open database %s: %s", config.db_path, e)
        _stderr_print(f"ERROR: Cannot open database {config.db_path}: {e}")
        raise RuntimeError(f"Cannot open database {config.db_path}: {e}") from e

    _stderr_print(f"  Database: {config.db_path}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"context": context}
    finally:
        logger.info("MCP server shutting down")
        context.close()
        _stderr_print("notesync MCP server shutting down.")
