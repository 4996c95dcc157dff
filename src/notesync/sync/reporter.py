"""Formatting of sync results for the CLI and the MCP tools.

- ``format_sync_outcome`` -- human-readable summary of one cycle.
- ``format_entity_hashes`` -- content hash table from ``/sync/check``.
- ``outcome_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncOutcome

# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_sync_outcome(outcome: SyncOutcome, verbose: bool = False) -> str:
    """Format one cycle as text.

    Args:
        outcome: Result of ``SyncSession.sync()``.
        verbose: Append the progress log collected during the cycle.
    """
    lines = [f"Sync {outcome.status.value.replace('_', ' ')}"]
    lines.append(f"Started: {outcome.started_at}")
    if outcome.completed_at:
        lines.append(f"Completed: {outcome.completed_at}")
    lines.append(
        f"Pulled {outcome.pulled}, pushed {outcome.pushed}, "
        f"{outcome.conflicts} conflicts"
    )
    if outcome.error:
        lines.append(f"Error: {outcome.error}")

    if verbose and outcome.log:
        lines.append("")
        lines.append("Log:")
        lines.extend(f"  {line}" for line in outcome.log)

    return "\n".join(lines)


def format_entity_hashes(
    entity_hashes: dict[str, dict[str, str]], max_entity_change_id: int
) -> str:
    lines = [f"Max entity change id: {max_entity_change_id}"]
    for entity_name in sorted(entity_hashes):
        sectors = entity_hashes[entity_name]
        lines.append(f"{entity_name}: {len(sectors)} sectors")
        for sector, digest in sorted(sectors.items()):
            lines.append(f"  {sector}  {digest}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Structured dict for MCP ``structuredContent`` output."""
    result: dict = {
        "status": outcome.status.value,
        "success": outcome.success,
        "started_at": outcome.started_at,
        "completed_at": outcome.completed_at,
        "counts": {
            "pulled": outcome.pulled,
            "pushed": outcome.pushed,
            "conflicts": outcome.conflicts,
        },
        "log": list(outcome.log),
    }
    if outcome.error:
        result["error"] = outcome.error
    return result
