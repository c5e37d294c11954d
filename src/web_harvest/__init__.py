"""
Web Harvest - Browser-driven web harvesting toolkit.

This package drives a real browser against a target URL to crawl it
through adaptive interactions, or to extract readable text, media and
video streams from the rendered page, and serializes the results.
"""

from web_harvest.config import CrawlConfig, load_config
from web_harvest.core.exceptions import HarvestError
from web_harvest.crawler import AdaptiveCrawler, Report
from web_harvest.download import MediaDownloader
from web_harvest.extractors import MediaExtractor, TextExtractor, TrafficExtractor
from web_harvest.facade import (
    create_crawler,
    create_mft_extractor,
    create_tbr_extractor,
    create_text_extractor,
)
from web_harvest.synthesis import DataSynthesizer
from web_harvest.utils.logging import get_logger, setup_logging

__version__ = "0.1.0"
__author__ = "Web Harvest Team"

__all__ = [
    "CrawlConfig",
    "load_config",
    "setup_logging",
    "get_logger",
    "HarvestError",
    "AdaptiveCrawler",
    "Report",
    "TextExtractor",
    "MediaExtractor",
    "TrafficExtractor",
    "MediaDownloader",
    "DataSynthesizer",
    "create_crawler",
    "create_text_extractor",
    "create_mft_extractor",
    "create_tbr_extractor",
]
