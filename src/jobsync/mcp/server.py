"""MCP server exposing the jobsync store using stdio transport.

Agents get the same operations the app's screens use: CRUD on customers,
parts, labor, jobs, quotes and invoices, business settings, workspace
membership, and on-demand sync.

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
from ..logger import setup_logging
from ..core.client import LocalOnlyClient
from ..store import JobStore
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("jobsync")

# Global store instance (initialized in main via lifespan)
_store: JobStore | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(store: JobStore, args: dict) -> types.CallToolResult:
    """Report server version, mode and active workspace."""
    state = store.state
    mode = "offline" if isinstance(store.client, LocalOnlyClient) else "remote"
    text = (
        f"jobsync MCP server {__version__} ({mode} mode). "
        f"Workspace: {state.workspace_id or 'not linked'}"
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "version": __version__,
            "mode": mode,
            "workspaceId": state.workspace_id,
            "authenticated": store.is_authenticated,
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Check that the jobsync MCP server is running and show its mode and workspace",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_store() -> JobStore:
    """Get the global JobStore instance.

    Raises:
        RuntimeError: If store is not initialized
    """
    if _store is None:
        raise RuntimeError("JobStore not initialized. Server lifespan not started.")
    return _store


def set_store(store: JobStore | None) -> None:
    global _store
    _store = store


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
    """List all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    store = get_store()
    try:
        return await get_registry().call_tool(name, arguments, store)
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


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging is set up for MCP mode (file only, never stdout) before the
    stdio transport starts, so nothing leaks into the protocol stream.

    Args:
        config_overrides: Optional dict of CLI values (api_url, api_key,
            state_file, insecure, auto_sync, log_file, permissions_file)
    """
    overrides = config_overrides or {}
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    set_registry(build_registry(overrides.get("permissions_file")))

    # set_store() is called here rather than inside the lifespan so that
    # running as ``python -m jobsync.mcp.server`` updates this module's
    # global and not a second copy imported under the package name.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_store(ctx["store"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="jobsync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_store(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="jobsync MCP server - offline-first jobs, quotes and invoices with multi-device sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Offline, state in ./.jobsync/state.json
  jobsync-mcp

  # Sync against a remote
  jobsync-mcp --api-url https://sync.example.com --api-key $TOKEN

  # Custom state file, no background sync after edits
  jobsync-mcp --state-file ~/jobs/state.json --no-auto-sync

  # Read-only agent
  jobsync-mcp --permissions-file /etc/jobsync/read-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--api-url",
        help="Remote sync API URL (takes precedence over JOBSYNC_API_URL and config files)",
    )
    parser.add_argument(
        "--api-key",
        help="Remote API key (visible in process list -- prefer JOBSYNC_API_KEY)",
    )
    parser.add_argument(
        "--state-file",
        help="Path of the persisted state (default: .jobsync/state.json)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--no-auto-sync",
        action="store_true",
        help="Do not sync in the background after each change",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/jobsync.log",
        help="Log file path (default: /tmp/jobsync.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (e.g., ENTITY_VIEW), # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"jobsync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.api_key:
        config_overrides["api_key"] = args.api_key
    if args.state_file:
        config_overrides["state_file"] = args.state_file
    if args.insecure:
        config_overrides["insecure"] = True
    if args.no_auto_sync:
        config_overrides["auto_sync"] = False
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file

    override_keys = [k for k in config_overrides if k not in ("api_key", "log_file")]
    if override_keys:
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
