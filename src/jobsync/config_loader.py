"""
YAML config discovery for jobsync.

Looks for config files by convention, resolves ``!include`` directives
relative to the including file and expands ``${VAR}`` /
``${VAR:-default}`` references after all files are merged.

Usage:
    from jobsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand env references in a single string.

    An unset or empty variable falls back to its ``:-`` default, or to the
    empty string when there is none. An unterminated ``${`` stays literal.
    """

    def _expand(match: re.Match) -> str:
        name, default = match.group(1), match.group(2)
        current = os.environ.get(name)
        if current:
            return current
        return default if default is not None else ""

    return _ENV_REF.sub(_expand, value)


def _expand_tree(node: Any) -> Any:
    match node:
        case str():
            return interpolate_env_vars(node)
        case dict():
            return {key: _expand_tree(value) for key, value in node.items()}
        case list():
            return [_expand_tree(item) for item in node]
        case _:
            return node


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader with ``!include``; a subclass so the global loader stays untouched."""

    include_chain: list[Path]


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    raw = loader.construct_scalar(node)
    including_file = Path(loader.name).resolve()
    target = Path(raw)
    if not target.is_absolute():
        target = including_file.parent / target
    target = target.resolve()

    chain = getattr(loader, "include_chain", [including_file])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including_file})"
        )
    return load_yaml_file(target, _chain=[*chain, target])


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: list[Path] | None = None) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = _chain or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``JOBSYNC_CONFIG`` env var (explicit single path)
        2. ``.jobsync/config.yml`` in CWD (project-level)
        3. ``~/.config/jobsync/config.yml`` (user-level)
    """
    candidates: list[Path] = []

    explicit = os.environ.get("JOBSYNC_CONFIG")
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    candidates.append(Path.cwd() / ".jobsync" / "config.yml")
    candidates.append(Path.home() / ".config" / "jobsync" / "config.yml")

    return [p for p in candidates if p.exists()]


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; top-level
    sections of a higher file replace whole sections of a lower one.
    Env references are expanded once the merge is done.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _expand_tree(merged)
