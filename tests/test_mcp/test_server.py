"""Tests for jobsync.mcp.server -- registry wiring, ping and dispatch.

Covers:
- build_registry with and without a permissions file
- ping reports mode, workspace and authentication
- handle_call_tool routes through the registry and reports unknown tools
- Global accessors raise before the lifespan has started
"""

import pytest
import mcp.types as types

from jobsync import __version__
from jobsync.mcp.server import (
    build_registry,
    get_registry,
    get_store,
    handle_call_tool,
    handle_list_tools,
    set_registry,
    set_store,
)
from jobsync.mcp.tools import ALL_SPECS
from jobsync.store import JobStore


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def wired(store):
    """Install a full registry and the signed-in store as server globals."""
    set_registry(build_registry())
    set_store(store)
    yield store
    set_registry(None)
    set_store(None)


class TestBuildRegistry:
    def test_all_tools_plus_ping(self):
        registry = build_registry()
        assert registry.tool_count() == len(ALL_SPECS) + 1

    def test_permissions_file_filters(self, tmp_path, capsys):
        path = tmp_path / "readonly.permissions"
        path.write_text("# read-only\nENTITY_VIEW\nSYNC_VIEW\n")

        registry = build_registry(str(path))

        names = {t.name for t in registry.list_tools()}
        assert "ping" in names
        assert "entity_list" in names
        assert "sync_status" in names
        assert "entity_create" not in names
        assert "settings_get" not in names
        assert "tools enabled" in capsys.readouterr().err

    def test_bad_permissions_file(self, tmp_path):
        path = tmp_path / "bad.permissions"
        path.write_text("ADMIN\n")
        with pytest.raises(ValueError, match="Unknown permission"):
            build_registry(str(path))


class TestGlobals:
    def test_unset_store(self):
        set_store(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_store()

    def test_unset_registry(self):
        set_registry(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_registry()


class TestCallTool:
    async def test_list_tools(self, wired):
        names = [t.name for t in await handle_list_tools()]
        assert names[0] == "ping"
        assert "sync_now" in names

    async def test_ping_remote_mode(self, wired):
        result = await handle_call_tool("ping", {})

        assert result.structuredContent == {
            "version": __version__,
            "mode": "remote",
            "workspaceId": "ws-1",
            "authenticated": True,
        }
        assert "(remote mode)" in _text(result)

    async def test_ping_offline_mode(self):
        set_registry(build_registry())
        set_store(JobStore(auto_sync=False))
        try:
            result = await handle_call_tool("ping", None)
        finally:
            set_registry(None)
            set_store(None)

        assert result.structuredContent["mode"] == "offline"
        assert result.structuredContent["authenticated"] is False
        assert "Workspace: not linked" in _text(result)

    async def test_dispatches_to_tool(self, wired):
        result = await handle_call_tool(
            "entity_create", {"kind": "customers", "data": {"name": "Ada"}}
        )
        assert result.isError is False
        assert [c.name for c in wired.customers] == ["Ada"]

    async def test_handler_error_translated(self, wired):
        result = await handle_call_tool("entity_get", {"kind": "parts", "id": "nope"})
        assert result.isError is True
        assert _text(result).startswith("Error (not_found):")

    async def test_unknown_tool(self, wired):
        result = await handle_call_tool("invoice_void", {})
        assert result.isError is True
        assert _text(result).startswith("Error (unknown_tool): Unknown tool: invoice_void")
