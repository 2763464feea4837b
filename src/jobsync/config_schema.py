"""Unified configuration schema for jobsync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote endpoint, local storage, sync behaviour and
logging, plus the adapter that flattens them into ``load_config()``
fallbacks.

Usage:
    from jobsync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote sync API settings.

    All fields are optional: with no URL the server runs offline.
    """

    url: str | None = Field(default=None, description="Remote sync API URL")
    api_key: str | None = Field(default=None, description="Bearer API key")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        le=300,
        description="Seconds before a remote request times out (1-300)",
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Where the persisted state blob lives."""

    state_file: str | None = Field(
        default=None, description="Path of the JSON state blob"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    auto_sync: bool = Field(
        default=True,
        description="Run a background sync pass after every mutation",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        debug: Force DEBUG regardless of level.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid and means "offline, state in ./.jobsync".
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``. Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten a ``UnifiedConfig`` into the ``yaml_fallbacks`` dict that
    ``load_config()`` consults after CLI args and env vars.

    Unset optional values are omitted so they never shadow defaults.
    """
    fallbacks = {
        "api_url": unified.remote.url,
        "api_key": unified.remote.api_key,
        "insecure": unified.remote.insecure,
        "request_timeout": unified.remote.request_timeout,
        "state_file": unified.storage.state_file,
        "auto_sync": unified.sync.auto_sync,
        "debug": unified.logging.debug,
    }
    return {key: value for key, value in fallbacks.items() if value is not None}
