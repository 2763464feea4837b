"""MCP tool handlers for the jobsync store.

Each module defines its ``*_TOOLS`` list, a ``handle_*_tool`` dispatcher
taking ``(name, arguments, store)``, and the ``*_SPECS`` that bind the two
to required permissions for the ``ToolRegistry``.
"""

from .entities import ENTITY_SPECS, ENTITY_TOOLS, handle_entity_tool
from .errors import build_error_response
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .session import SESSION_SPECS, SESSION_TOOLS, handle_session_tool
from .settings import SETTINGS_SPECS, SETTINGS_TOOLS, handle_settings_tool
from .sync import SYNC_SPECS, SYNC_TOOLS, handle_sync_tool

ALL_SPECS: list[ToolSpec] = (
    SYNC_SPECS + ENTITY_SPECS + SETTINGS_SPECS + SESSION_SPECS
)

__all__ = [
    "build_error_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "ENTITY_SPECS",
    "SETTINGS_SPECS",
    "SESSION_SPECS",
    # Tool lists and dispatchers
    "SYNC_TOOLS",
    "handle_sync_tool",
    "ENTITY_TOOLS",
    "handle_entity_tool",
    "SETTINGS_TOOLS",
    "handle_settings_tool",
    "SESSION_TOOLS",
    "handle_session_tool",
]
