"""
Content analysis for Web Harvest.

Pure BeautifulSoup analysis of rendered HTML:
- Readability scoring and main content detection
- HTML to Markdown conversion
- Metadata, JSON-LD, authorship and headings
- Quality metrics (Flesch reading ease, reading time)
"""

from web_harvest.extraction.markdown import MarkdownConverter, table_to_markdown
from web_harvest.extraction.metadata import Authorship, MetadataExtractor, PageMetadata
from web_harvest.extraction.quality import QualityMetrics, analyze_quality, count_syllables
from web_harvest.extraction.readability import (
    ReadabilityScorer,
    ScoredBlock,
    clean_soup,
)

__all__ = [
    "ReadabilityScorer",
    "ScoredBlock",
    "clean_soup",
    "MarkdownConverter",
    "table_to_markdown",
    "MetadataExtractor",
    "PageMetadata",
    "Authorship",
    "QualityMetrics",
    "analyze_quality",
    "count_syllables",
]
