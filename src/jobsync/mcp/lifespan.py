"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, to_fallbacks
from ..core.client import create_client
from ..errors import PersistenceError
from ..store import JobStore
from ..sync.state import StateStore

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config files if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Load (and migrate) the persisted state and build the JobStore

    The remote is not contacted at startup: the store works offline and
    the first sync pass reports connectivity problems.

    On shutdown:
    - Wait for a running background sync
    - Save the state one last time

    Args:
        config_overrides: Optional dict with CLI values (api_url, api_key,
            state_file, insecure, debug, auto_sync)

    Yields:
        Dict with 'store' key containing the initialized JobStore

    Raises:
        RuntimeError: If configuration is invalid or the state file cannot be loaded.
    """
    logger.info("MCP server starting...")
    _stderr_print("jobsync MCP server starting...")

    try:
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = to_fallbacks(unified)
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            api_url=overrides.get("api_url"),
            api_key=overrides.get("api_key"),
            state_file=overrides.get("state_file"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            auto_sync=overrides.get("auto_sync"),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        remote_desc = config.api_url or "none (offline mode)"
        logger.info("Remote: %s", remote_desc)
        _stderr_print(f"  Remote: {remote_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    persistence = StateStore(Path(config.state_file))
    try:
        store = JobStore.open(
            persistence,
            client=create_client(config),
            auto_sync=config.auto_sync,
        )
    except PersistenceError as e:
        logger.error("Failed to load state: %s", e)
        _stderr_print(f"ERROR: Failed to load state from {config.state_file}.")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Failed to load state: {e}") from e

    logger.info("State loaded from %s", config.state_file)
    _stderr_print(f"  State file: {config.state_file}")
    _stderr_print(f"  Auto-sync: {'on' if config.auto_sync else 'off'}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"store": store, "config": config}
    finally:
        logger.info("MCP server shutting down")
        await store.trigger.wait_idle()
        await store.flush()
        try:
            store.persist()
        except PersistenceError:
            logger.exception("Final state save failed")
        _stderr_print("jobsync MCP server shutting down.")
