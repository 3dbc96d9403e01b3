"""Configuration package for VstupCore."""

from __future__ import annotations

from .config import (
    Config,
    CrawlerConfig,
    MonitoringConfig,
    RetryConfig,
    SQLiteConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "Config",
    "CrawlerConfig",
    "MonitoringConfig",
    "RetryConfig",
    "SQLiteConfig",
    "find_config_file",
    "load_config",
]
