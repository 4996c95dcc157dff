"""MCP server for notesync using stdio transport.

Exposes the sync and backup operations of the local instance as MCP
tools so an agent can trigger cycles, inspect status and compare
content hashes.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..context import AppContext
from ..logger import setup_logging
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)

logger = logging.getLogger(__name__)

server = Server("notesync")

# Initialized in main()
_context: AppContext | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> AppContext:
    """Get the global AppContext.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError("AppContext not initialized. Server lifespan not started.")
    return _context


def set_context(context: AppContext | None) -> None:
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """Return all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch a tool call through the ToolRegistry."""
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Args:
        config_overrides: Optional dict overriding sync_server_host,
            data_dir, insecure, log_file and permissions_file.
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    permissions_file = overrides.pop("permissions_file", None)

    # must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    registry = ToolRegistry(ALL_SPECS, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    set_registry(registry)

    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="notesync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that parses CLI arguments and handles errors gracefully."""
    parser = argparse.ArgumentParser(
        description="notesync MCP server - sync and backup tools over stdio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .notesync/config.yml)
  notesync-mcp

  # Point at another data directory and peer
  notesync-mcp --data-dir ~/notes --server-host https://notes.example.com

  # Read-only tools
  notesync-mcp --permissions-file /etc/notesync/read-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument("--server-host", help="Override the sync peer URL")
    parser.add_argument("--data-dir", help="Override the data directory")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/notesync.log",
        help="Log file path (default: /tmp/notesync.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools "
        "(SYNC_VIEW, SYNC_RUN, BACKUP_RUN; one per line).",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"notesync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.server_host:
        config_overrides["sync_server_host"] = args.server_host
    if args.data_dir:
        config_overrides["data_dir"] = args.data_dir
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # already reported on stderr by the lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
