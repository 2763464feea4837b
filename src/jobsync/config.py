"""Runtime configuration for the jobsync MCP server.

Reads remote sync settings, the state file location and auto-sync
behaviour from CLI args, environment variables, .env files and YAML
config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

The remote is optional. Without an API URL the store runs offline against
a local-only client and every sync pass succeeds without network traffic.

Environment variables:
    JOBSYNC_API_URL: Base URL of the remote sync API (optional)
    JOBSYNC_API_KEY: Bearer token for the remote (required when URL is set)
    JOBSYNC_STATE_FILE: Path of the persisted state blob
        (optional, default: .jobsync/state.json)
    JOBSYNC_INSECURE: Skip SSL verification (optional, default: false)
    JOBSYNC_DEBUG: Enable debug logging (optional, default: false)
    JOBSYNC_AUTO_SYNC: Sync in the background after each mutation
        (optional, default: true)
    JOBSYNC_REQUEST_TIMEOUT: Seconds before a remote request times out
        (optional, default: 30)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".jobsync/state.json"
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class Config:
    api_url: str | None = None
    api_key: str | None = None
    state_file: str = DEFAULT_STATE_FILE
    insecure: bool = False
    debug: bool = False
    auto_sync: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def remote_enabled(self) -> bool:
        return bool(self.api_url)


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate. The API URL is normalized
            in place (whitespace and trailing slash stripped).

    Raises:
        ValueError: If the URL format is invalid, the API key is missing
            for a configured remote, or numeric limits are out of range.
    """
    if config.api_url is not None:
        config.api_url = config.api_url.strip() or None

    if config.api_url:
        if not config.api_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid API URL '{config.api_url}': must start with http:// or https://"
            )

        parsed = urlparse(config.api_url)
        if not parsed.hostname:
            raise ValueError(
                f"Invalid API URL '{config.api_url}': URL must include a hostname"
            )

        config.api_url = config.api_url.removesuffix("/")

        if not (config.api_key or "").strip():
            raise ValueError(
                "API key cannot be empty when a remote is configured. "
                "Set JOBSYNC_API_KEY environment variable."
            )

    if not config.state_file.strip():
        raise ValueError(
            "State file path cannot be empty. Set JOBSYNC_STATE_FILE environment variable."
        )

    if not (1 <= config.request_timeout <= 300):
        raise ValueError(
            f"Invalid request timeout '{config.request_timeout}': must be between 1 and 300 seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _resolve_bool(cli_value: bool | None, env_key: str, fallback) -> bool:
    if cli_value is not None:
        return cli_value
    env_value = get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def load_config(
    api_url: str | None = None,
    api_key: str | None = None,
    state_file: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    auto_sync: bool | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override remote API URL.
        api_key: Override remote API key.
        state_file: Override the persisted state path.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        auto_sync: ``False`` from ``--no-auto-sync``; ``None`` defers to
            env/YAML.
        yaml_fallbacks: Flat dict built from the YAML config sections
            (see ``config_schema.to_fallbacks``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any resolved value is invalid.
    """
    fb = yaml_fallbacks or {}

    final_url = api_url or os.getenv("JOBSYNC_API_URL") or fb.get("api_url")
    final_key = api_key or os.getenv("JOBSYNC_API_KEY") or fb.get("api_key")
    final_state_file = (
        state_file
        or os.getenv("JOBSYNC_STATE_FILE")
        or fb.get("state_file")
        or DEFAULT_STATE_FILE
    )

    final_insecure = _resolve_bool(
        True if insecure else None, "JOBSYNC_INSECURE", fb.get("insecure", False)
    )
    final_debug = _resolve_bool(
        True if debug else None, "JOBSYNC_DEBUG", fb.get("debug", False)
    )
    final_auto_sync = _resolve_bool(
        auto_sync, "JOBSYNC_AUTO_SYNC", fb.get("auto_sync", True)
    )

    timeout_raw = os.getenv("JOBSYNC_REQUEST_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid JOBSYNC_REQUEST_TIMEOUT '{timeout_raw}': must be a number between 1 and 300"
            ) from None
    elif "request_timeout" in fb:
        final_timeout = float(fb["request_timeout"])
    else:
        final_timeout = DEFAULT_REQUEST_TIMEOUT

    config = Config(
        api_url=final_url.strip() if final_url else None,
        api_key=final_key.strip() if final_key else None,
        state_file=final_state_file,
        insecure=final_insecure,
        debug=final_debug,
        auto_sync=final_auto_sync,
        request_timeout=final_timeout,
    )

    validate_config(config)

    return config
