"""Tests for MCP sync tool definitions and handlers.

Covers:
- Tool definitions have valid schemas
- sync_now pushes the outbox and reports counters
- sync_full resets the cursor before pulling
- Failed passes come back as error results
- Precondition failure when nobody is signed in
- sync_status returns structured output
"""

from __future__ import annotations

import pytest
import mcp.types as types

from jobsync.errors import TransportError
from jobsync.mcp.tools.sync import SYNC_TOOLS, handle_sync_tool
from jobsync.sync.models import ChangeEvent, EntityKind, Operation


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def _remote_customer(record_id: str, name: str) -> ChangeEvent:
    return ChangeEvent(
        entity=EntityKind.CUSTOMERS,
        operation=Operation.CREATE,
        row={
            "id": record_id,
            "name": name,
            "createdAt": "2026-02-01T09:00:00.000Z",
            "updatedAt": "2026-02-01T09:00:00.000Z",
        },
        updated_at="2026-02-01T09:00:00.000Z",
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class TestToolDefinitions:
    def test_names(self):
        assert [t.name for t in SYNC_TOOLS] == ["sync_now", "sync_full", "sync_status"]

    def test_schemas_are_objects(self):
        for tool in SYNC_TOOLS:
            assert tool.inputSchema["type"] == "object"
            assert tool.description

    def test_status_is_read_only(self):
        status = next(t for t in SYNC_TOOLS if t.name == "sync_status")
        assert status.annotations.readOnlyHint is True


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestSyncNow:
    async def test_pushes_and_pulls(self, store, fake_remote):
        store.add_customer({"name": "Ada"})
        fake_remote.changes = [_remote_customer("c-remote", "Grace")]

        result = await handle_sync_tool("sync_now", {}, store)

        assert result.isError is False
        data = result.structuredContent
        assert data["success"] is True
        assert data["pushed"] == 1
        assert data["pulled"] == 1
        assert data["cursor"] == fake_remote.server_time
        assert "Pushed 1 change(s), pulled 1 change(s)" in _text(result)
        assert {c.name for c in store.customers} == {"Ada", "Grace"}
        assert store.outbox.count("user-1") == 0

    async def test_remote_failure_is_error_result(self, store, fake_remote):
        store.add_customer({"name": "Ada"})
        fake_remote.push_error = TransportError("Connection refused")

        result = await handle_sync_tool("sync_now", {}, store)

        assert result.isError is True
        assert result.structuredContent["success"] is False
        assert "FAILED" in _text(result)
        assert store.outbox.count("user-1") == 1

    async def test_not_signed_in(self, anonymous_store):
        result = await handle_sync_tool("sync_now", {}, anonymous_store)
        assert result.isError is True
        assert _text(result).startswith("Error (precondition_failed):")


class TestSyncFull:
    async def test_pulls_from_scratch(self, store, fake_remote):
        await handle_sync_tool("sync_now", {}, store)
        await handle_sync_tool("sync_full", {}, store)

        assert fake_remote.pull_calls[0] == ("ws-1", None)
        assert fake_remote.pull_calls[1] == ("ws-1", None)


class TestSyncStatus:
    async def test_structured(self, store):
        store.add_part({"name": "Valve"})

        result = await handle_sync_tool("sync_status", {}, store)

        data = result.structuredContent
        assert data["phase"] == "idle"
        assert data["pending_changes"] == 1
        assert data["workspace_id"] == "ws-1"
        assert "Pending changes: 1" in _text(result)

    async def test_after_sync(self, store, fake_remote):
        await handle_sync_tool("sync_now", {}, store)
        result = await handle_sync_tool("sync_status", {}, store)
        assert result.structuredContent["last_synced_at"] == fake_remote.server_time


async def test_unknown_tool(store):
    with pytest.raises(ValueError, match="Unknown sync tool"):
        await handle_sync_tool("sync_everything", {}, store)
