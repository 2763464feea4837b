"""MCP tool handlers for the sync engine.

Defines three tools:

- ``sync_now`` -- run one push/pull/merge pass.
- ``sync_full`` -- forget the cursor and pull everything again.
- ``sync_status`` -- engine phase, pending outbox size, last error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...sync.models import SyncReport
from ...sync.reporter import (
    format_sync_report,
    format_sync_status,
    report_to_json,
    status_to_json,
)
from .errors import build_error_response, text_result
from .registry import build_specs

if TYPE_CHECKING:
    from ...store import JobStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_now",
        description=(
            "Push pending local changes and pull remote changes for the "
            "active workspace. Newer edits win; local changes are kept if "
            "the remote is unreachable."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_full",
        description=(
            "Reset the sync cursor and pull the whole workspace again, "
            "then push pending changes. Use after restoring a device or "
            "when data looks stale."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_status",
        description=(
            "Show sync state: idle/syncing/error, pending change count, "
            "last successful sync and the last error."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    store: JobStore,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Raises:
        ValueError: If tool name is unknown
    """
    match name:
        case "sync_now":
            return _report_result(store, await store.sync_now())
        case "sync_full":
            return _report_result(store, await store.full_sync())
        case "sync_status":
            status = store.engine.status()
            return text_result(format_sync_status(status), status_to_json(status))
        case _:
            raise ValueError(f"Unknown sync tool: {name}")


def _report_result(store: JobStore, report: SyncReport | None) -> types.CallToolResult:
    if report is None:
        if store.is_syncing:
            return text_result(
                "A sync is already in progress.", {"in_progress": True}
            )
        return build_error_response(
            "precondition_failed",
            store.sync_error or "Sync did not run.",
            "Sign in with session_sign_in and link a workspace, then retry.",
        )

    return text_result(
        format_sync_report(report),
        report_to_json(report),
        is_error=not report.success,
    )


SYNC_SPECS = build_specs(
    SYNC_TOOLS,
    {
        "sync_now": frozenset({"SYNC_RUN"}),
        "sync_full": frozenset({"SYNC_RUN"}),
        "sync_status": frozenset({"SYNC_VIEW"}),
    },
    handle_sync_tool,
)
