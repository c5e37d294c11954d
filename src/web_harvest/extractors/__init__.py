"""
Extractors for Web Harvest.

Specialized single-target pipelines sharing the browser session,
observer and event machinery:
- TextExtractor: readable text, metadata and quality metrics
- MediaExtractor (MFT): images, videos and audio via scroll-driven discovery
- TrafficExtractor (TBR): video streams observed on the network
"""

from web_harvest.extractors.base import BaseExtractor
from web_harvest.extractors.media import MediaCollector, MediaExtractor, MediaResult, categorize_image
from web_harvest.extractors.text import BELOW_MIN_LENGTH, TextExtractor, TextResult
from web_harvest.extractors.traffic import (
    TrafficExtractor,
    TrafficResult,
    classify_stream,
    is_segment,
)

__all__ = [
    "BaseExtractor",
    "TextExtractor",
    "TextResult",
    "BELOW_MIN_LENGTH",
    "MediaExtractor",
    "MediaResult",
    "MediaCollector",
    "categorize_image",
    "TrafficExtractor",
    "TrafficResult",
    "classify_stream",
    "is_segment",
]
