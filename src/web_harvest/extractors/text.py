"""
Text extractor.

A single enriched pass over the rendered page: metadata, JSON-LD, the
readability-selected main content as Markdown and plain text, heading
outline, authorship and quality metrics.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup

from web_harvest.extraction.markdown import MarkdownConverter
from web_harvest.extraction.metadata import Authorship, MetadataExtractor
from web_harvest.extraction.quality import QualityMetrics, analyze_quality
from web_harvest.extraction.readability import ReadabilityScorer, clean_soup
from web_harvest.extractors.base import BaseExtractor
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

BELOW_MIN_LENGTH = "below-min-length"
EXCERPT_LENGTH = 300

_WHITESPACE = re.compile(r"\s+")


@dataclass
class TextResult:
    """
    Everything extracted from one page.

    ``error`` is set (to "below-min-length") when the main content is
    shorter than min_text_length; metadata is still populated.
    """

    url: str
    title: str = ""
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    json_ld: list[Any] = field(default_factory=list)
    markdown: str | None = None
    text: str = ""
    excerpt: str = ""
    readability_score: float = 0.0
    headings: list[tuple[int, str]] = field(default_factory=list)
    authorship: Authorship = field(default_factory=Authorship)
    language: str | None = None
    canonical_url: str | None = None
    quality: QualityMetrics | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def text_length(self) -> int:
        return len(self.text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "language": self.language,
            "canonical_url": self.canonical_url,
            "metadata": dict(self.metadata),
            "json_ld": list(self.json_ld),
            "content": {
                "markdown": self.markdown,
                "text": self.text,
                "excerpt": self.excerpt,
                "length": self.text_length,
            },
            "readability_score": self.readability_score,
            "headings": [{"level": level, "text": text} for level, text in self.headings],
            "authorship": self.authorship.to_dict(),
            "quality": self.quality.to_dict() if self.quality else None,
            "error": self.error,
            "warnings": list(self.warnings),
        }


def make_excerpt(text: str, limit: int = EXCERPT_LENGTH) -> str:
    """First ``limit`` characters of text, cut back to a word boundary."""
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:") + "…"


class TextExtractor(BaseExtractor[TextResult]):
    """
    Extracts readable text and metadata from one page.

    Example:
        >>> extractor = await create_text_extractor({"text": {"min_text_length": 200}})
        >>> result = await extractor.run("https://example.com/article")
        >>> print(result.title, result.readability_score)
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.settings = self.config.text
        self.metadata_extractor = MetadataExtractor()
        self.scorer = ReadabilityScorer()

    async def extract(self, url: str) -> TextResult:
        page = await self.session.new_page()

        if not await self.start_allowed(url):
            return TextResult(url=url, warnings=list(self.warnings))

        await page.navigate(url)
        await page.wait_for_settled(
            quiet_ms=self.config.crawler.settle_quiet_ms,
            timeout_ms=self.config.crawler.settle_timeout_ms,
        )
        if self.settings.wait_for_dynamic_content_ms:
            await page.wait(self.settings.wait_for_dynamic_content_ms)

        html = await page.content()
        result = self.analyze(html, page.current_url or url)
        result.url = url
        result.warnings = self.warnings + result.warnings

        if result.text_length < self.settings.min_text_length:
            result.error = BELOW_MIN_LENGTH
            message = (
                f"Extracted text too short: {result.text_length} < "
                f"{self.settings.min_text_length} characters"
            )
            logger.warning(f"{message} ({url})")
            self.events.emit("extractionError", {
                "reason": BELOW_MIN_LENGTH,
                "error": message,
                "url": url,
                "length": result.text_length,
            })

        self.add_item(url, {
            "title": result.title,
            "readability_score": result.readability_score,
            "word_count": result.quality.word_count if result.quality else 0,
            "language": result.language,
        })
        return result

    def analyze(self, html: str, url: str = "") -> TextResult:
        """
        Analyze rendered HTML without touching the browser.

        Args:
            html: Serialized document
            url: Document URL (base for relative links in Markdown)

        Returns:
            TextResult (error is not set here; run() applies min_text_length)
        """
        soup = BeautifulSoup(html, "html.parser")

        # Metadata first: cleaning removes <script> JSON-LD blocks
        metadata = self.metadata_extractor.extract(soup)
        result = TextResult(
            url=url,
            title=metadata.title,
            description=metadata.description,
            metadata=dict(metadata.meta),
            json_ld=list(metadata.json_ld),
            headings=list(metadata.headings),
            authorship=metadata.authorship,
            language=metadata.language,
            canonical_url=metadata.canonical_url,
            warnings=list(metadata.warnings),
        )

        clean_soup(soup)
        block = self.scorer.find_main_content(soup)
        if block is None:
            result.quality = analyze_quality("", 0, self.settings.words_per_minute)
            return result

        result.text = _WHITESPACE.sub(" ", block.element.get_text(" ", strip=True)).strip()
        result.readability_score = round(block.normalized, 4)
        if self.settings.extract_markdown:
            result.markdown = MarkdownConverter(base_url=url).convert(block.element)

        paragraphs = len(block.element.find_all("p"))
        result.quality = analyze_quality(result.text, paragraphs, self.settings.words_per_minute)
        result.excerpt = metadata.description or make_excerpt(result.text)
        return result
