"""
Download module for Web Harvest.

Bounded-concurrency media downloads with retries, atomic .part
renames and per-type directory layout.
"""

from web_harvest.download.downloader import (
    DownloadReport,
    DownloadStats,
    MediaDownloader,
    MediaItem,
    MediaStatus,
    format_bytes,
    media_type_for,
    parse_retry_after,
)

__all__ = [
    "MediaDownloader",
    "MediaItem",
    "MediaStatus",
    "DownloadStats",
    "DownloadReport",
    "format_bytes",
    "media_type_for",
    "parse_retry_after",
]
