"""MCP tool handlers for replication and backups.

Defines five tools:

- ``sync_now`` -- run one sync cycle with the configured peer.
- ``sync_status`` -- outstanding pull count and the last cycle outcome.
- ``sync_check`` -- content hashes for comparing two instances.
- ``sync_force_full`` -- reset both cursors and resend everything.
- ``backup_now`` -- snapshot the database into the backup directory.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...context import AppContext
from ...core.async_utils import run_sync
from ...sync.reporter import (
    format_entity_hashes,
    format_sync_outcome,
    outcome_to_json,
)
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_NO_ARGS = {"type": "object", "properties": {}, "required": []}

SYNC_NOW_TOOL = types.Tool(
    name="sync_now",
    description=(
        "Run one sync cycle with the configured peer: pull its changes, "
        "then push local ones. Returns immediately if a cycle is already running."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "verbose": {
                "type": "boolean",
                "default": False,
                "description": "Include the progress log of the cycle",
            },
        },
        "required": [],
    },
)

SYNC_STATUS_TOOL = types.Tool(
    name="sync_status",
    description=(
        "Show sync status -- whether the database is initialized, how many "
        "peer changes are outstanding, cursors and the last cycle outcome."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema=_NO_ARGS,
)

SYNC_CHECK_TOOL = types.Tool(
    name="sync_check",
    description=(
        "Return per-sector content hashes of the local database. Compare "
        "with the peer's to detect silent divergence."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema=_NO_ARGS,
)

SYNC_FORCE_FULL_TOOL = types.Tool(
    name="sync_force_full",
    description=(
        "Reset both sync cursors to zero and run a cycle that re-pulls and "
        "re-pushes every change."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    ),
    inputSchema=_NO_ARGS,
)

BACKUP_NOW_TOOL = types.Tool(
    name="backup_now",
    description="Snapshot the database to backup-<name>.db in the backup directory.",
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "name": {
                "type": "string",
                "default": "now",
                "description": "Backup name (letters, digits, '-' and '_')",
            },
        },
        "required": [],
    },
)

SYNC_TOOLS: list[types.Tool] = [
    SYNC_NOW_TOOL,
    SYNC_STATUS_TOOL,
    SYNC_CHECK_TOOL,
    SYNC_FORCE_FULL_TOOL,
    BACKUP_NOW_TOOL,
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_sync_now(
    context: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    outcome = await run_sync(context.scheduler.tick)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=format_sync_outcome(outcome, verbose=bool(args.get("verbose"))),
            )
        ],
        structuredContent=outcome_to_json(outcome),
        isError=outcome.status.value == "failed",
    )


async def _handle_sync_status(
    context: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    stats = context.session.stats()
    cursor = context.session.cursor
    last = context.session.last_outcome

    lines = [
        "Sync status",
        f"  Peer:        {context.config.sync_server_host or 'not configured'}",
        f"  Initialized: {stats['initialized']}",
        f"  In progress: {context.session.in_progress}",
        f"  Last pulled: {cursor.last_pulled}",
        f"  Last pushed: {cursor.last_pushed}",
        f"  Outstanding pulls: {stats['outstandingPullCount']}",
        f"  Last cycle:  {last.status.value if last else 'never'}",
    ]
    structured = {
        "peer": context.config.sync_server_host,
        "initialized": stats["initialized"],
        "in_progress": context.session.in_progress,
        "last_synced_pull": cursor.last_pulled,
        "last_synced_push": cursor.last_pushed,
        "outstanding_pull_count": stats["outstandingPullCount"],
        "last_outcome": outcome_to_json(last) if last else None,
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


async def _handle_sync_check(
    context: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    hashes = await run_sync(context.hasher.get_entity_hashes)
    max_id = context.changes.max_id()
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_entity_hashes(hashes, max_id))],
        structuredContent={"entity_hashes": hashes, "max_entity_change_id": max_id},
    )


async def _handle_sync_force_full(
    context: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    outcome = await run_sync(context.session.force_full_sync)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_outcome(outcome))],
        structuredContent=outcome_to_json(outcome),
        isError=outcome.status.value == "failed",
    )


async def _handle_backup_now(
    context: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    name = args.get("name") or "now"
    path = await run_sync(context.backups.backup_now, name)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Backup written to {path}")],
        structuredContent={"path": str(path)},
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_NOW_TOOL,
        permissions=frozenset({"SYNC_RUN"}),
        handler=_handle_sync_now,
    ),
    ToolSpec(
        tool=SYNC_STATUS_TOOL,
        permissions=frozenset({"SYNC_VIEW"}),
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=SYNC_CHECK_TOOL,
        permissions=frozenset({"SYNC_VIEW"}),
        handler=_handle_sync_check,
    ),
    ToolSpec(
        tool=SYNC_FORCE_FULL_TOOL,
        permissions=frozenset({"SYNC_RUN"}),
        handler=_handle_sync_force_full,
    ),
    ToolSpec(
        tool=BACKUP_NOW_TOOL,
        permissions=frozenset({"BACKUP_RUN"}),
        handler=_handle_backup_now,
    ),
]
