"""Tests for ToolSpec, ToolRegistry, build_specs and load_permissions_file.

Covers:
- ToolRegistry filtering (no filter, permission filter, multi-permission specs)
- call_tool dispatch and exception translation
- build_specs binding of module dispatchers
- load_permissions_file parsing, validation, and error cases
- The shipped spec lists carry known permissions only
"""

import asyncio
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock

import mcp.types as types

from jobsync.errors import PersistenceError, TransportError
from jobsync.mcp.tools import ALL_SPECS
from jobsync.mcp.tools.registry import (
    KNOWN_PERMISSIONS,
    ToolRegistry,
    ToolSpec,
    build_specs,
    load_permissions_file,
)


def _tool(name: str) -> types.Tool:
    return types.Tool(
        name=name,
        description=f"Test tool {name}",
        inputSchema={"type": "object", "properties": {}, "required": []},
    )


def _make_spec(name: str, permissions: frozenset[str] = frozenset(), handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(store, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(tool=_tool(name), permissions=permissions, handler=handler)


def _raising(exc: Exception):
    async def handler(store, args):
        raise exc

    return handler


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestToolRegistry(unittest.TestCase):
    def setUp(self):
        self.specs = [
            _make_spec("ping"),
            _make_spec("entity_list", frozenset({"ENTITY_VIEW"})),
            _make_spec("entity_create", frozenset({"ENTITY_MODIFY"})),
            _make_spec("compute_totals", frozenset({"ENTITY_VIEW", "SETTINGS_VIEW"})),
            _make_spec("sync_now", frozenset({"SYNC_RUN"})),
        ]

    def test_no_filter_all_tools_registered(self):
        self.assertEqual(ToolRegistry(self.specs).tool_count(), 5)

    def test_filter_by_permissions(self):
        registry = ToolRegistry(self.specs, frozenset({"ENTITY_VIEW"}))
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["ping", "entity_list"])

    def test_multi_permission_needs_all(self):
        registry = ToolRegistry(self.specs, frozenset({"ENTITY_VIEW", "SETTINGS_VIEW"}))
        names = [t.name for t in registry.list_tools()]
        self.assertIn("compute_totals", names)
        self.assertNotIn("entity_create", names)

    def test_unknown_tool_raises(self):
        registry = ToolRegistry(self.specs, frozenset({"ENTITY_VIEW"}))
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("sync_now", {}, MagicMock()))

    def test_call_tool_dispatches_with_store_and_args(self):
        calls = []

        async def handler(store, args):
            calls.append((store, args))
            return types.CallToolResult(content=[types.TextContent(type="text", text="done")])

        registry = ToolRegistry([_make_spec("t", handler=handler)])
        store = MagicMock()

        result = asyncio.run(registry.call_tool("t", None, store))

        self.assertEqual(calls, [(store, {})])
        self.assertEqual(_text(result), "done")

    def test_key_error_is_not_found(self):
        registry = ToolRegistry([_make_spec("t", handler=_raising(KeyError("parts record 'p9' not found")))])
        result = asyncio.run(registry.call_tool("t", {}, MagicMock()))
        self.assertTrue(result.isError)
        self.assertIn("Error (not_found): parts record 'p9' not found", _text(result))

    def test_value_error_is_validation_error(self):
        registry = ToolRegistry([_make_spec("t", handler=_raising(ValueError("kind is required")))])
        result = asyncio.run(registry.call_tool("t", {}, MagicMock()))
        self.assertIn("Error (validation_error): kind is required", _text(result))

    def test_remote_and_persistence_errors_are_server_errors(self):
        for exc in (TransportError("down"), PersistenceError("disk full"), RuntimeError("bug")):
            registry = ToolRegistry([_make_spec("t", handler=_raising(exc))])
            result = asyncio.run(registry.call_tool("t", {}, MagicMock()))
            self.assertTrue(result.isError)
            self.assertIn("Error (server_error)", _text(result))


class TestBuildSpecs(unittest.TestCase):
    def test_binds_tool_name(self):
        seen = []

        async def dispatch(name, args, store):
            seen.append((name, args, store))
            return types.CallToolResult(content=[types.TextContent(type="text", text=name)])

        specs = build_specs(
            [_tool("a"), _tool("b")],
            {"a": frozenset({"SYNC_VIEW"}), "b": frozenset()},
            dispatch,
        )
        store = MagicMock()
        asyncio.run(specs[1].handler(store, {"x": 1}))

        self.assertEqual(seen, [("b", {"x": 1}, store)])
        self.assertEqual(specs[0].permissions, frozenset({"SYNC_VIEW"}))


class TestShippedSpecs(unittest.TestCase):
    def test_every_tool_needs_a_known_permission(self):
        for spec in ALL_SPECS:
            self.assertTrue(spec.permissions, spec.tool.name)
            self.assertLessEqual(spec.permissions, KNOWN_PERMISSIONS, spec.tool.name)

    def test_tool_names_unique(self):
        names = [spec.tool.name for spec in ALL_SPECS]
        self.assertEqual(len(names), len(set(names)))

    def test_read_only_profile(self):
        registry = ToolRegistry(ALL_SPECS, frozenset({"ENTITY_VIEW", "SETTINGS_VIEW", "SYNC_VIEW"}))
        names = {t.name for t in registry.list_tools()}
        self.assertIn("entity_list", names)
        self.assertIn("sync_status", names)
        self.assertNotIn("entity_create", names)
        self.assertNotIn("sync_now", names)
        self.assertNotIn("session_sign_in", names)


class TestLoadPermissionsFile(unittest.TestCase):
    def _write(self, text: str) -> Path:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / "agent.permissions"
        path.write_text(text)
        return path

    def test_parses_comments_and_blanks(self):
        path = self._write("# read-only agent\n\nENTITY_VIEW\n  SYNC_VIEW  \n")
        self.assertEqual(load_permissions_file(path), frozenset({"ENTITY_VIEW", "SYNC_VIEW"}))

    def test_unknown_permission(self):
        path = self._write("ENTITY_VIEW\nINVOICE_VOID\n")
        with self.assertRaisesRegex(ValueError, "Unknown permission 'INVOICE_VOID' at line 2"):
            load_permissions_file(path)

    def test_empty_file(self):
        path = self._write("# nothing granted\n")
        with self.assertRaisesRegex(ValueError, "No permissions found"):
            load_permissions_file(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_permissions_file("/nonexistent/agent.permissions")
