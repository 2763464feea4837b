"""MCP tool handlers for the entity store.

CRUD over every synced table plus the lookups agents need when writing
quotes and invoices: documents of a job, a part by SKU, and a totals
preview with the workspace tax settings applied.

Writes go through the store, so they land in the outbox and trigger a
background sync exactly like any other local edit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...sync.models import (
    Customer,
    EntityKind,
    Invoice,
    Job,
    LaborItem,
    Part,
    Quote,
    Record,
)
from .errors import format_money, no_workspace_response, text_result
from .registry import build_specs

if TYPE_CHECKING:
    from ...store import JobStore

_KIND_SCHEMA = {
    "type": "string",
    "enum": [kind.value for kind in EntityKind],
    "description": "Table name",
}

_LINE_ITEMS_SCHEMA = {
    "type": "array",
    "description": "Line items: {type: part|labor|service, itemId, quantity, unitPrice, total?, description?}",
    "items": {"type": "object"},
}

# Tool definitions for list_tools()
ENTITY_TOOLS = [
    types.Tool(
        name="entity_list",
        description="List records of one table in the active workspace (customers, parts, laborItems, jobs, quotes, invoices).",
        inputSchema={
            "type": "object",
            "properties": {
                "kind": _KIND_SCHEMA,
                "limit": {
                    "type": "integer",
                    "description": "Maximum records to return (default: 50, max: 500)",
                    "default": 50,
                    "minimum": 1,
                    "maximum": 500,
                },
            },
            "required": ["kind"],
        },
    ),
    types.Tool(
        name="entity_get",
        description="Get one record by id.",
        inputSchema={
            "type": "object",
            "properties": {
                "kind": _KIND_SCHEMA,
                "id": {"type": "string", "description": "Record id"},
            },
            "required": ["kind", "id"],
        },
    ),
    types.Tool(
        name="entity_create",
        description=(
            "Create a record. Quotes and invoices get their number and totals "
            "computed; invoices take their part lines out of stock."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "kind": _KIND_SCHEMA,
                "data": {
                    "type": "object",
                    "description": "Field values (camelCase, e.g. {\"name\": \"Ada\", \"unitPrice\": 12.5})",
                },
            },
            "required": ["kind", "data"],
        },
    ),
    types.Tool(
        name="entity_update",
        description=(
            "Update fields of a record. Changing lineItems or taxRate on a quote or "
            "invoice recomputes totals; invoice part lines adjust stock by the difference."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "kind": _KIND_SCHEMA,
                "id": {"type": "string", "description": "Record id"},
                "updates": {"type": "object", "description": "Fields to change"},
            },
            "required": ["kind", "id", "updates"],
        },
    ),
    types.Tool(
        name="entity_delete",
        description="Delete a record. The deletion is synced to other devices.",
        annotations=types.ToolAnnotations(destructiveHint=True),
        inputSchema={
            "type": "object",
            "properties": {
                "kind": _KIND_SCHEMA,
                "id": {"type": "string", "description": "Record id"},
            },
            "required": ["kind", "id"],
        },
    ),
    types.Tool(
        name="job_documents",
        description="List the quotes and invoices that belong to a job.",
        inputSchema={
            "type": "object",
            "properties": {"job_id": {"type": "string", "description": "Job id"}},
            "required": ["job_id"],
        },
    ),
    types.Tool(
        name="part_by_sku",
        description="Find a part by SKU (case-insensitive).",
        inputSchema={
            "type": "object",
            "properties": {"sku": {"type": "string", "description": "Stock keeping unit"}},
            "required": ["sku"],
        },
    ),
    types.Tool(
        name="compute_totals",
        description=(
            "Preview subtotal, tax and total for line items using the business tax "
            "settings. tax_rate defaults to the configured default rate."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "line_items": _LINE_ITEMS_SCHEMA,
                "tax_rate": {"type": "number", "description": "Percent, e.g. 8 for 8%"},
            },
            "required": ["line_items"],
        },
    ),
]


async def handle_entity_tool(
    name: str, arguments: dict | None, store: JobStore
) -> types.CallToolResult:
    """Handle entity tool execution.

    Raises:
        ValueError: If tool name or entity kind is unknown
        KeyError: If a referenced record does not exist
    """
    args = arguments or {}

    match name:
        case "entity_list":
            return _handle_list(store, args)
        case "entity_get":
            return _handle_get(store, args)
        case "entity_create":
            return _handle_create(store, args)
        case "entity_update":
            return _handle_update(store, args)
        case "entity_delete":
            return _handle_delete(store, args)
        case "job_documents":
            return _handle_job_documents(store, args)
        case "part_by_sku":
            return _handle_part_by_sku(store, args)
        case "compute_totals":
            return _handle_compute_totals(store, args)
        case _:
            raise ValueError(f"Unknown entity tool: {name}")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _summary(record: Record, symbol: str) -> str:
    match record:
        case Customer():
            contact = record.email or record.phone or ""
            return f"{record.id}  {record.name}  {contact}".rstrip()
        case Part():
            sku = f" [{record.sku}]" if record.sku else ""
            return (
                f"{record.id}  {record.name}{sku}  stock {record.stock:g}  "
                f"{format_money(record.unit_price, symbol)}"
            )
        case LaborItem():
            return f"{record.id}  {record.name}  {format_money(record.hourly_rate, symbol)}/h"
        case Job():
            return f"{record.id}  {record.title} ({record.status})"
        case Quote():
            return (
                f"{record.id}  {record.quote_number} {record.title} "
                f"({record.status})  {format_money(record.total, symbol)}"
            )
        case Invoice():
            return (
                f"{record.id}  {record.invoice_number} {record.title} "
                f"({record.status})  {format_money(record.total, symbol)}"
            )
        case _:
            return record.id


def _kind(args: dict[str, Any]) -> EntityKind:
    raw = args.get("kind")
    if not raw:
        raise ValueError("kind is required")
    try:
        return EntityKind(raw)
    except ValueError:
        raise ValueError(
            f"Unknown kind '{raw}'. Expected one of: {', '.join(k.value for k in EntityKind)}"
        ) from None


def _required(args: dict[str, Any], key: str) -> Any:
    value = args.get(key)
    if value in (None, ""):
        raise ValueError(f"{key} is required")
    return value


def _record_result(verb: str, kind: EntityKind, record: Record, symbol: str) -> types.CallToolResult:
    return text_result(
        f"{verb} {kind.value} record:\n{_summary(record, symbol)}",
        {"kind": kind.value, "record": record.to_row()},
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _handle_list(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    kind = _kind(args)
    limit = min(max(int(args.get("limit", 50)), 1), 500)
    records = store.list_entities(kind)
    showing = records[:limit]
    symbol = store.get_settings().currency_symbol

    if not records:
        text = f"No {kind.value} in the active workspace."
    else:
        lines = [f"{kind.value}: showing {len(showing)} of {len(records)}"]
        lines.extend(_summary(record, symbol) for record in showing)
        text = "\n".join(lines)

    return text_result(
        text,
        {
            "kind": kind.value,
            "items": [record.to_row() for record in showing],
            "total": len(records),
            "showing": len(showing),
        },
    )


def _handle_get(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    kind = _kind(args)
    record_id = _required(args, "id")
    record = store.get(kind, record_id)
    if record is None:
        raise KeyError(f"{kind.value} record '{record_id}' not found")
    return _record_result("Found", kind, record, store.get_settings().currency_symbol)


def _handle_create(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    kind = _kind(args)
    data = args.get("data")
    if not isinstance(data, dict):
        raise ValueError("data must be an object")
    record = store.add(kind, data)
    if record is None:
        return no_workspace_response()
    return _record_result("Created", kind, record, store.get_settings().currency_symbol)


def _handle_update(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    kind = _kind(args)
    record_id = _required(args, "id")
    updates = args.get("updates")
    if not isinstance(updates, dict):
        raise ValueError("updates must be an object")
    if not store.state.workspace_id:
        return no_workspace_response()
    record = store.update(kind, record_id, updates)
    if record is None:
        raise KeyError(f"{kind.value} record '{record_id}' not found")
    return _record_result("Updated", kind, record, store.get_settings().currency_symbol)


def _handle_delete(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    kind = _kind(args)
    record_id = _required(args, "id")
    if not store.state.workspace_id:
        return no_workspace_response()
    record = store.delete(kind, record_id)
    if record is None:
        raise KeyError(f"{kind.value} record '{record_id}' not found")
    return _record_result("Deleted", kind, record, store.get_settings().currency_symbol)


def _handle_job_documents(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    job_id = _required(args, "job_id")
    job = store.get_job(job_id)
    if job is None:
        raise KeyError(f"jobs record '{job_id}' not found")

    symbol = store.get_settings().currency_symbol
    quotes = store.get_job_quotes(job_id)
    invoices = store.get_job_invoices(job_id)

    lines = [f"Job {job.title} ({job.status})"]
    lines.append(f"Quotes ({len(quotes)}):")
    lines.extend(f"  {_summary(q, symbol)}" for q in quotes)
    lines.append(f"Invoices ({len(invoices)}):")
    lines.extend(f"  {_summary(i, symbol)}" for i in invoices)

    return text_result(
        "\n".join(lines),
        {
            "job": job.to_row(),
            "quotes": [q.to_row() for q in quotes],
            "invoices": [i.to_row() for i in invoices],
        },
    )


def _handle_part_by_sku(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    sku = _required(args, "sku")
    part = store.get_part_by_sku(sku)
    if part is None:
        raise KeyError(f"No part with SKU '{sku}'")
    return _record_result("Found", EntityKind.PARTS, part, store.get_settings().currency_symbol)


def _handle_compute_totals(store: JobStore, args: dict[str, Any]) -> types.CallToolResult:
    items = args.get("line_items")
    if not isinstance(items, list):
        raise ValueError("line_items must be an array")
    tax_rate = args.get("tax_rate")
    totals = store.calculate_quote_total(items, None if tax_rate is None else float(tax_rate))

    settings = store.get_settings()
    symbol = settings.currency_symbol
    text = (
        f"Subtotal: {format_money(totals.subtotal, symbol)}\n"
        f"Tax: {format_money(totals.tax, symbol)}"
        + ("" if settings.enable_tax else " (tax disabled)")
        + f"\nTotal: {format_money(totals.total, symbol)}"
    )
    return text_result(text, totals.model_dump())


ENTITY_SPECS = build_specs(
    ENTITY_TOOLS,
    {
        "entity_list": frozenset({"ENTITY_VIEW"}),
        "entity_get": frozenset({"ENTITY_VIEW"}),
        "entity_create": frozenset({"ENTITY_MODIFY"}),
        "entity_update": frozenset({"ENTITY_MODIFY"}),
        "entity_delete": frozenset({"ENTITY_MODIFY"}),
        "job_documents": frozenset({"ENTITY_VIEW"}),
        "part_by_sku": frozenset({"ENTITY_VIEW"}),
        "compute_totals": frozenset({"ENTITY_VIEW", "SETTINGS_VIEW"}),
    },
    handle_entity_tool,
)
