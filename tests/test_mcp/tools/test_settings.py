"""Tests for MCP business settings tool handlers."""

from __future__ import annotations

import pytest
import mcp.types as types

from jobsync.mcp.tools.settings import handle_settings_tool


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestSettingsTools:
    async def test_get_defaults(self, anonymous_store):
        result = await handle_settings_tool("settings_get", {}, anonymous_store)

        data = result.structuredContent
        assert data["enableTax"] is False
        assert data["defaultPaymentTerms"] == "Net 30 days"
        assert "Tax: disabled" in _text(result)

    async def test_sign_in_fills_business_name(self, store):
        result = await handle_settings_tool("settings_get", {}, store)
        assert result.structuredContent["businessName"] == "Acme Plumbing"
        assert "Business: Acme Plumbing" in _text(result)

    async def test_update(self, store):
        result = await handle_settings_tool(
            "settings_update",
            {"updates": {"enableTax": True, "defaultTaxRate": 8}},
            store,
        )

        assert "Tax: enabled at 8%" in _text(result)
        assert store.get_settings().default_tax_rate == 8

    async def test_update_requires_fields(self, store):
        with pytest.raises(ValueError, match="non-empty object"):
            await handle_settings_tool("settings_update", {"updates": {}}, store)

    async def test_reset(self, store):
        store.update_settings(enable_tax=True, default_tax_rate=8, currency_symbol="€")

        result = await handle_settings_tool("settings_reset", {}, store)

        assert result.structuredContent["enableTax"] is False
        assert store.get_settings().currency_symbol == "$"

    async def test_settings_are_not_synced(self, store):
        await handle_settings_tool(
            "settings_update", {"updates": {"enableTax": True}}, store
        )
        assert store.outbox.count("user-1") == 0

    async def test_unknown_tool(self, store):
        with pytest.raises(ValueError, match="Unknown settings tool"):
            await handle_settings_tool("settings_delete", {}, store)
