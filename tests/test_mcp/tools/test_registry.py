"""Tests for ToolSpec, ToolRegistry, and load_permissions_file.

Covers:
- ToolSpec creation and immutability
- ToolRegistry filtering (no filter, permission filter, empty permissions)
- ToolRegistry call_tool dispatch and error translation
- load_permissions_file parsing, validation, and error cases
"""

import asyncio
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock

import mcp.types as types

from notesync.mcp.tools import ALL_SPECS
from notesync.mcp.tools.registry import (
    ToolRegistry,
    ToolSpec,
    load_permissions_file,
)
from notesync.sync.errors import AuthError


def _make_spec(
    name: str,
    permissions: frozenset[str] | None = None,
    handler=None,
) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if permissions is None:
        permissions = frozenset()
    if handler is None:

        async def handler(context, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        permissions=permissions,
        handler=handler,
    )


def _raising(exc: Exception):
    async def handler(context, args):
        raise exc

    return handler


class TestToolSpec(unittest.TestCase):
    def test_creation(self):
        spec = _make_spec("test_tool", frozenset({"SYNC_VIEW"}))
        self.assertEqual(spec.tool.name, "test_tool")
        self.assertEqual(spec.permissions, frozenset({"SYNC_VIEW"}))

    def test_frozen(self):
        spec = _make_spec("test_tool")
        with self.assertRaises(AttributeError):
            spec.permissions = frozenset({"NEW"})


class TestToolRegistryFiltering(unittest.TestCase):
    def setUp(self):
        self.specs = [
            _make_spec("open"),
            _make_spec("view", frozenset({"SYNC_VIEW"})),
            _make_spec("run", frozenset({"SYNC_RUN"})),
        ]

    def test_no_filter_includes_all(self):
        registry = ToolRegistry(self.specs)
        self.assertEqual(registry.tool_count(), 3)

    def test_permission_filter(self):
        registry = ToolRegistry(self.specs, frozenset({"SYNC_VIEW"}))
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["open", "view"])

    def test_all_notesync_tools_have_permissions(self):
        for spec in ALL_SPECS:
            self.assertTrue(spec.permissions, spec.tool.name)

    def test_read_only_permissions_hide_run_tools(self):
        registry = ToolRegistry(ALL_SPECS, frozenset({"SYNC_VIEW"}))
        names = {t.name for t in registry.list_tools()}
        self.assertEqual(names, {"sync_status", "sync_check"})


class TestToolRegistryCallTool(unittest.TestCase):
    def test_dispatch(self):
        registry = ToolRegistry([_make_spec("open")])
        result = asyncio.run(registry.call_tool("open", None, MagicMock()))
        self.assertEqual(result.content[0].text, "ok:open")

    def test_unknown_tool_raises(self):
        registry = ToolRegistry([_make_spec("open")])
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("nope", {}, MagicMock()))

    def test_filtered_tool_is_unknown(self):
        registry = ToolRegistry(
            [_make_spec("run", frozenset({"SYNC_RUN"}))], frozenset({"SYNC_VIEW"})
        )
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("run", {}, MagicMock()))

    def test_sync_error_translated(self):
        registry = ToolRegistry([_make_spec("x", handler=_raising(AuthError("no")))])
        result = asyncio.run(registry.call_tool("x", {}, MagicMock()))
        self.assertTrue(result.isError)
        self.assertIn("auth_error", result.content[0].text)

    def test_value_error_translated(self):
        registry = ToolRegistry(
            [_make_spec("x", handler=_raising(ValueError("Invalid backup name")))]
        )
        result = asyncio.run(registry.call_tool("x", {}, MagicMock()))
        self.assertIn("validation_error", result.content[0].text)

    def test_unexpected_error_translated(self):
        registry = ToolRegistry([_make_spec("x", handler=_raising(RuntimeError("boom")))])
        result = asyncio.run(registry.call_tool("x", {}, MagicMock()))
        self.assertIn("server_error", result.content[0].text)


class TestLoadPermissionsFile(unittest.TestCase):
    def _write(self, text: str) -> Path:
        self._tmp = TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        path = Path(self._tmp.name) / "perms.txt"
        path.write_text(text)
        return path

    def test_parses_permissions(self):
        path = self._write("# read only\nSYNC_VIEW\n\nBACKUP_RUN\n")
        self.assertEqual(
            load_permissions_file(path), frozenset({"SYNC_VIEW", "BACKUP_RUN"})
        )

    def test_invalid_permission(self):
        path = self._write("sync_view\n")
        with self.assertRaises(ValueError):
            load_permissions_file(path)

    def test_empty_file(self):
        path = self._write("# nothing\n")
        with self.assertRaises(ValueError):
            load_permissions_file(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_permissions_file("/nonexistent/perms.txt")
