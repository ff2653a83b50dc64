"""YAML configuration for the bridge.

The config file is looked up from ``KIMI_ROUTER_CONFIG`` and falls back to
``configs/config_default.yaml`` under the project root. Each
``config_<name>.yaml`` may have a sibling ``.env_<name>`` file whose values
feed ``${VAR}`` / ``$VAR`` placeholders ahead of the process environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("kimi-router")

DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_ENV_VAR = "KIMI_ROUTER_CONFIG"

PROJECT_ROOT = Path(__file__).resolve().parent.parent

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Return ``path`` as is when absolute, else relative to the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Pick the .env file that belongs to ``config_path``.

    ``config_default.yaml`` pairs with ``.env_default``; a file not named
    ``config_*`` pairs with ``.env`` in the same directory.
    """
    if env_path:
        return resolve_config_path(env_path)
    prefix, _, name = config_path.stem.partition("config_")
    if not prefix and name:
        return config_path.with_name(f".env_{name}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Read a .env file into a dict; ``os.environ`` is left alone."""
    if not env_path.is_file():
        return {}
    return {key: value for key, value in dotenv_values(env_path).items() if value is not None}


def _read_document(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            document = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Config root in {config_path} must be a mapping, got {type(document).__name__}"
        )
    return document


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict[str, Any]:
    """Load the bridge configuration.

    Args:
        path: Config file; defaults to ``$KIMI_ROUTER_CONFIG`` or
            ``configs/config_default.yaml``.
        env_path: Explicit .env file instead of the paired one.
        substitute_env: Replace ``${VAR}`` placeholders in string values.

    Raises:
        ConfigurationError: The file is missing, unreadable as YAML, or its
            top level is not a mapping.
    """
    config_path = resolve_config_path(path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")
    config = _read_document(config_path)
    if not substitute_env:
        return config

    env_file = resolve_env_path(config_path, env_path)
    env_values = load_env_values(env_file)
    if env_values:
        logger.info(f"Using {len(env_values)} value(s) from {env_file}")
    return _substitute_env_vars(config, env_values)


def _lookup(name: str, env_values: Mapping[str, str]) -> Optional[str]:
    value = env_values.get(name)
    return value if value is not None else os.getenv(name)


def _substitute_env_vars(value: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Expand placeholders in every string nested inside ``value``.

    An unknown variable keeps its placeholder and is reported once per
    occurrence.
    """
    env_values = env_values or {}

    if isinstance(value, dict):
        return {key: _substitute_env_vars(item, env_values) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute_env_vars(item, env_values) for item in value]
    if not isinstance(value, str):
        return value

    def expand(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        resolved = _lookup(name, env_values)
        if resolved is None:
            logger.warning(f"Config references unset variable {name}; keeping {match.group(0)!r}")
            return match.group(0)
        return resolved

    return _PLACEHOLDER.sub(expand, value)
