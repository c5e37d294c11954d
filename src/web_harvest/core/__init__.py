"""
Core module for Web Harvest.

Contains the error taxonomy and the event dispatcher shared by
crawlers and extractors.
"""

from web_harvest.core.exceptions import (
    HarvestError,
    RetryableError,
    ConfigError,
    BrowserError,
    LaunchError,
    NavigationError,
    SessionLostError,
    InteractionError,
    ObserverOverflow,
    DownloadError,
    TransientDownloadError,
    PermanentDownloadError,
    RobotsDenied,
    CancelRequested,
    ExtractionError,
    is_retryable,
    get_retry_delay,
    is_fatal,
)
from web_harvest.core.events import EventEmitter

__all__ = [
    # Base
    "HarvestError",
    "RetryableError",
    "ConfigError",
    # Browser
    "BrowserError",
    "LaunchError",
    "NavigationError",
    "SessionLostError",
    "InteractionError",
    # Observer
    "ObserverOverflow",
    # Download
    "DownloadError",
    "TransientDownloadError",
    "PermanentDownloadError",
    # Policy / control flow
    "RobotsDenied",
    "CancelRequested",
    "ExtractionError",
    # Helpers
    "is_retryable",
    "get_retry_delay",
    "is_fatal",
    # Events
    "EventEmitter",
]
