"""Business settings tool handlers: get, update and reset.

Settings are device-local (they are not part of the synced tables) and
only affect totals computed after the change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import mcp.types as types

from ...sync.models import BusinessSettings
from .errors import format_timestamp, text_result
from .registry import build_specs

if TYPE_CHECKING:
    from ...store import JobStore

SETTINGS_TOOLS = [
    types.Tool(
        name="settings_get",
        description="Show business settings: tax switch and default rate, payment terms, currency and business details.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="settings_update",
        description=(
            "Change business settings. Example: {\"updates\": {\"enableTax\": true, "
            "\"defaultTaxRate\": 8}}"
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "updates": {
                    "type": "object",
                    "description": "Settings fields to change (camelCase)",
                },
            },
            "required": ["updates"],
        },
    ),
    types.Tool(
        name="settings_reset",
        description="Restore default business settings (tax disabled).",
        annotations=types.ToolAnnotations(destructiveHint=True),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


async def handle_settings_tool(
    name: str, arguments: dict | None, store: JobStore
) -> types.CallToolResult:
    args = arguments or {}

    match name:
        case "settings_get":
            return _settings_result("Business settings", store.get_settings())
        case "settings_update":
            updates = args.get("updates")
            if not isinstance(updates, dict) or not updates:
                raise ValueError("updates must be a non-empty object")
            return _settings_result("Settings updated", store.update_settings(**updates))
        case "settings_reset":
            return _settings_result("Settings reset to defaults", store.reset_settings())
        case _:
            raise ValueError(f"Unknown settings tool: {name}")


def _settings_result(title: str, settings: BusinessSettings) -> types.CallToolResult:
    tax = (
        f"enabled at {settings.default_tax_rate:g}%"
        if settings.enable_tax
        else "disabled"
    )
    lines = [
        f"{title}:",
        f"  Business: {settings.business_name or '-'}",
        f"  Tax: {tax}",
        f"  Payment terms: {settings.default_payment_terms}",
        f"  Quote validity: {settings.default_validity_days} days",
        f"  Currency: {settings.currency_symbol}",
        f"  Date format: {settings.date_format}",
        f"  Updated: {format_timestamp(settings.updated_at)}",
    ]
    return text_result(
        "\n".join(lines), settings.model_dump(by_alias=True, mode="json")
    )


SETTINGS_SPECS = build_specs(
    SETTINGS_TOOLS,
    {
        "settings_get": frozenset({"SETTINGS_VIEW"}),
        "settings_update": frozenset({"SETTINGS_MODIFY"}),
        "settings_reset": frozenset({"SETTINGS_MODIFY"}),
    },
    handle_settings_tool,
)
