"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...sync.errors import (
    AuthError,
    EntityNotFoundError,
    PreconditionError,
    ProtocolError,
    SyncError,
    TransportError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, auth_error, transport_error,
            protocol_error, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Note abc not found", "Use sync_check to list entity hashes.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Map a sync exception to a structured error response."""
    match error:
        case AuthError():
            return build_error_response(
                "auth_error",
                str(error),
                "Check that both instances share the same document secret "
                "and that their clocks agree within one hour.",
            )
        case TransportError():
            return build_error_response(
                "transport_error",
                str(error),
                "Check NOTESYNC_SYNC_SERVER_HOST and that the peer is running, then retry.",
            )
        case EntityNotFoundError():
            return build_error_response(
                "not_found",
                str(error),
                "Verify the entity id; use sync_check to compare instances.",
            )
        case ProtocolError():
            return build_error_response(
                "protocol_error",
                str(error),
                "Check that both instances run the same notesync version.",
            )
        case PreconditionError():
            return build_error_response(
                "precondition_failed",
                str(error),
                "Run 'notesync init' to create or upgrade the database.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Check the notesync log file or retry later.",
            )
