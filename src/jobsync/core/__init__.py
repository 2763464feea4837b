"""Remote client and async helpers shared by the store, the engine and the MCP server."""

from .async_utils import run_sync
from .client import HttpSyncClient, LocalOnlyClient, SyncRemote, create_client

__all__ = [
    "HttpSyncClient",
    "LocalOnlyClient",
    "SyncRemote",
    "create_client",
    "run_sync",
]
