"""MCP tool handlers for notesync operations.

Each handler wraps the running ``AppContext`` with an async signature and
returns structured responses; errors are translated by the registry.
"""

from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
    "ToolRegistry",
    "ToolSpec",
    "build_error_response",
    "load_permissions_file",
    "translate_sync_error",
]
