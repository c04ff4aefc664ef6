"""
LensHarvest Configuration Package

Public API for loading and validating resolution-engine configuration.

Example:
    from LensHarvest.config import load_config

    config = load_config(
        path="lensharvest.yaml",
        cli_overrides={"max_request_retries": 0},
    )
"""

from .loader import ENV_PREFIX, export_config_schema, load_config
from .models import (
    DEFAULT_LOCALES,
    DEFAULT_USER_AGENT,
    CrawlerConfig,
)

__all__ = [
    "CrawlerConfig",
    "DEFAULT_LOCALES",
    "DEFAULT_USER_AGENT",
    "ENV_PREFIX",
    "export_config_schema",
    "load_config",
]
