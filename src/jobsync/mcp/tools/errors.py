"""Error response builders and shared formatting for MCP tool handlers.

Errors carry a corrective action so an agent can recover without a human.
"""

from typing import Any

import mcp.types as types

from ...sync.models import parse_timestamp


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            no_workspace, precondition_failed, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Part p1 not found", "Use entity_list to find valid ids.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def no_workspace_response() -> types.CallToolResult:
    return build_error_response(
        "no_workspace",
        "No active workspace; nothing was written.",
        "Sign in with session_sign_in or link a workspace with workspace_create / workspace_join.",
    )


def text_result(
    text: str, structured: dict[str, Any] | None = None, is_error: bool = False
) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
        isError=is_error,
    )


# ---------------------------------------------------------------------------
# Shared formatting utilities
# ---------------------------------------------------------------------------


def format_timestamp(value: str | None) -> str:
    """Format an ISO 8601 timestamp as ``YYYY-MM-DD HH:MM`` (UTC)."""
    if not value:
        return "never"
    return parse_timestamp(value).strftime("%Y-%m-%d %H:%M")


def format_money(amount: float, symbol: str = "$") -> str:
    return f"{symbol}{amount:,.2f}"
