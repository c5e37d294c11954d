"""
Utilities module for Web Harvest.

Provides logging setup, URL canonicalization and atomic file writes.
"""

from web_harvest.utils.logging import (
    setup_logging,
    get_logger,
    get_logger_with_context,
)
from web_harvest.utils.urls import (
    canonicalize_url,
    strip_tracking_params,
    is_http_url,
    origin_of,
    host_of,
)
from web_harvest.utils.fs import (
    atomic_write_text,
    atomic_write_bytes,
    safe_filename,
    unique_path,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "get_logger_with_context",
    # URLs
    "canonicalize_url",
    "strip_tracking_params",
    "is_http_url",
    "origin_of",
    "host_of",
    # Files
    "atomic_write_text",
    "atomic_write_bytes",
    "safe_filename",
    "unique_path",
]
