"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: LENSHARVEST_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation for nested keys and
JSON-coerced values:
  LENSHARVEST_MAX_REQUEST_RETRIES=0          →  max_request_retries=0
  LENSHARVEST_LOCALES='["en-US","de-DE"]'    →  locales=[...]
  LENSHARVEST_HEADERS__USER_AGENT="Custom"   →  headers["User-Agent"]="Custom"

Header variables keep their raw string value and are merged over the default
headers instead of replacing them.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import CrawlerConfig

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "LENSHARVEST_"

# Names the config file itself rather than a field.
_ENV_CONFIG_PATH_KEY = "CONFIG"


def _read_file(path: str | os.PathLike[str]) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Args:
        path: File path (suffix determines format: .yaml/.yml or .json)

    Returns:
        Parsed config dictionary

    Raises:
        ValueError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            loaded = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            loaded = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ValueError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return loaded


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Attempt to coerce environment variable string to appropriate type.

    Tries JSON parsing first (handles lists, dicts, bools, numbers).
    Falls back to the raw string.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    return value


def _header_name(env_suffix: str) -> str:
    """Map ``USER_AGENT`` to the canonical ``User-Agent`` header name."""

    return "-".join(part.capitalize() for part in env_suffix.lower().split("_") if part)


def _merge_env_overrides(
    data: dict[str, Any],
    env: Mapping[str, str],
    env_prefix: str = ENV_PREFIX,
) -> dict[str, Any]:
    """Overlay ``LENSHARVEST_*`` variables onto the config dict."""

    for env_key, env_value in env.items():
        if not env_key.startswith(env_prefix):
            continue

        suffix = env_key[len(env_prefix) :]
        if suffix == _ENV_CONFIG_PATH_KEY:
            continue

        section, _, header = suffix.partition("__")
        if section.lower() == "headers" and header:
            _assign_nested(data, f"headers.{_header_name(header)}", env_value)
            _LOGGER.debug("Environment header override: %s", env_key)
            continue

        dotted_key = suffix.lower().replace("__", ".")
        coerced_value = _coerce_env_value(env_value)

        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug("Environment override: %s -> %s = %r", env_key, dotted_key, coerced_value)

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Recursively merge CLI overrides into the config dict (later values win)."""

    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = value
        _LOGGER.debug("CLI override: %s = %r", key, value)

    return data


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> CrawlerConfig:
    """
    Load :class:`CrawlerConfig` from file, environment, and CLI.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to YAML/JSON config file (optional)
        env: Environment mapping (default: ``os.environ``)
        env_prefix: Environment variable prefix
        cli_overrides: Programmatic overrides (optional)

    Returns:
        Validated CrawlerConfig instance

    Raises:
        ValueError: If the file cannot be read or the merged config is invalid
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, os.environ if env is None else env, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    config = CrawlerConfig.model_validate(data)
    _LOGGER.debug("Configuration validated", extra={"config": config.model_dump()})
    return config


def export_config_schema() -> dict[str, Any]:
    """Export the JSON Schema of :class:`CrawlerConfig`."""

    return CrawlerConfig.model_json_schema()
