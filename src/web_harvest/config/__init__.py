"""
Configuration module for Web Harvest.

Provides Pydantic-based settings management with YAML file support
and environment variable overrides.
"""

from web_harvest.config.settings import (
    CrawlConfig,
    BrowserSettings,
    RateLimitSettings,
    CrawlerSettings,
    TextSettings,
    MediaSettings,
    TrafficSettings,
    LoggingSettings,
)
from web_harvest.config.loader import load_config, dump_default_config

__all__ = [
    "CrawlConfig",
    "BrowserSettings",
    "RateLimitSettings",
    "CrawlerSettings",
    "TextSettings",
    "MediaSettings",
    "TrafficSettings",
    "LoggingSettings",
    "load_config",
    "dump_default_config",
]
