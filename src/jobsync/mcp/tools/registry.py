"""ToolSpec and ToolRegistry for permission-based tool filtering.

Operators can restrict which store operations an agent may reach by
listing the allowed permissions in a file (``--permissions-file``). A
read-only deployment, for example, grants only the ``*_VIEW`` ones.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, required permissions,
  and an async handler with signature (store, args) -> CallToolResult.
- ToolRegistry: Filters specs by allowed permissions at construction time,
  then provides list_tools() and call_tool() dispatch with error translation.
- load_permissions_file: Reads a simple text file of permission names.

Permissions:
    ENTITY_VIEW, ENTITY_MODIFY, SETTINGS_VIEW, SETTINGS_MODIFY,
    SYNC_VIEW, SYNC_RUN, SESSION_ADMIN
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import mcp.types as types

from ...errors import PersistenceError, RemoteError

if TYPE_CHECKING:
    from ...store import JobStore

logger = logging.getLogger(__name__)

KNOWN_PERMISSIONS = frozenset(
    {
        "ENTITY_VIEW",
        "ENTITY_MODIFY",
        "SETTINGS_VIEW",
        "SETTINGS_MODIFY",
        "SYNC_VIEW",
        "SYNC_RUN",
        "SESSION_ADMIN",
    }
)

Handler = Callable[["JobStore", dict], Awaitable[types.CallToolResult]]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        permissions: Permissions required to use this tool.
            Empty frozenset means the tool is always available.
        handler: Async handler with signature (store, args) -> CallToolResult.
    """

    tool: types.Tool
    permissions: frozenset[str]
    handler: Handler


def build_specs(
    tools: list[types.Tool],
    permissions: dict[str, frozenset[str]],
    dispatch: Callable[[str, dict | None, JobStore], Awaitable[types.CallToolResult]],
) -> list[ToolSpec]:
    """Wrap a module's ``(name, args, store)`` dispatcher into one spec per tool."""

    def _bind(name: str) -> Handler:
        async def handler(store: JobStore, args: dict) -> types.CallToolResult:
            return await dispatch(name, args, store)

        return handler

    return [
        ToolSpec(
            tool=tool,
            permissions=permissions[tool.name],
            handler=_bind(tool.name),
        )
        for tool in tools
    ]


class ToolRegistry:
    """Registry of ToolSpecs with optional permission-based filtering.

    If allowed_permissions is None, all specs are included. Otherwise a
    spec is included only if its permissions are empty or a subset of
    allowed_permissions.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_permissions: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if (
                allowed_permissions is None
                or not spec.permissions
                or spec.permissions <= allowed_permissions
            ):
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        store: JobStore,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates handler exceptions into structured error responses:
        KeyError -> not_found, ValueError -> validation_error, remote and
        persistence failures and anything unexpected -> server_error.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(store, args)
        except KeyError as e:
            message = e.args[0] if e.args else str(e)
            return build_error_response(
                "not_found",
                str(message),
                "Use entity_list to find valid ids.",
            )
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except RemoteError as e:
            logger.warning("Remote error in %s: %s", name, e)
            return build_error_response(
                "server_error",
                str(e),
                "Check JOBSYNC_API_URL and connectivity, then retry.",
            )
        except PersistenceError as e:
            logger.error("Persistence error in %s: %s", name, e)
            return build_error_response(
                "server_error",
                str(e),
                "Check that JOBSYNC_STATE_FILE is writable.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Retry later or check the server log.",
            )


def load_permissions_file(path: str | Path) -> frozenset[str]:
    """Load permissions from a text file.

    Format: one permission per line, ``#`` for comments, blank lines ignored.

    Example file::

        # Read-only agent
        ENTITY_VIEW
        SETTINGS_VIEW
        SYNC_VIEW

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file names an unknown permission or is empty.
    """
    path = Path(path)
    permissions: set[str] = set()
    for line_num, line in enumerate(path.read_text().splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped not in KNOWN_PERMISSIONS:
            raise ValueError(
                f"Unknown permission '{stripped}' at line {line_num} in {path}. "
                f"Expected one of: {', '.join(sorted(KNOWN_PERMISSIONS))}."
            )
        permissions.add(stripped)
    if not permissions:
        raise ValueError(
            f"No permissions found in {path}. File must contain at least one permission."
        )
    return frozenset(permissions)
