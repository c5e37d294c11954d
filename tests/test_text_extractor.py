"""
Tests for text extraction.

Covers main-content detection, Markdown conversion, metadata,
quality metrics and the TextExtractor pipeline over a fake browser.
"""

import pytest
from bs4 import BeautifulSoup

from web_harvest import create_text_extractor
from web_harvest.config import CrawlConfig
from web_harvest.core.exceptions import NavigationError
from web_harvest.extraction.markdown import MarkdownConverter, table_to_markdown
from web_harvest.extraction.metadata import MetadataExtractor
from web_harvest.extraction.quality import analyze_quality, count_syllables
from web_harvest.extraction.readability import ReadabilityScorer, clean_soup
from web_harvest.extractors import BELOW_MIN_LENGTH, TextExtractor
from web_harvest.extractors.text import make_excerpt
from tests.fakes import FakeSession, FakeSite, robots_transport

ARTICLE_URL = "https://example.com/birds"


class TestReadability:
    """Tests for main content detection."""

    def test_article_selected(self, sample_html):
        """The article block should beat navigation, sidebar and footer."""
        soup = clean_soup(BeautifulSoup(sample_html, "html.parser"))

        block = ReadabilityScorer().find_main_content(soup)

        assert block.element.name == "article"
        assert 0.0 <= block.normalized <= 1.0

    def test_hidden_and_script_removed(self):
        soup = BeautifulSoup(
            '<body><script>var x;</script><div hidden>secret</div>'
            '<p style="display: none">gone</p><p>kept</p></body>',
            "html.parser",
        )

        clean_soup(soup)

        assert soup.get_text(" ", strip=True) == "kept"

    def test_link_density(self):
        soup = BeautifulSoup('<div>ab <a href="/x">cd</a></div>', "html.parser")

        density = ReadabilityScorer.link_density(soup.div)

        assert density == pytest.approx(2 / 5)

    def test_body_fallback(self):
        """Documents without candidates fall back to <body>."""
        soup = BeautifulSoup("<html><body><p>Short</p></body></html>", "html.parser")

        block = ReadabilityScorer().find_main_content(soup)

        assert block.element.name == "body"


class TestMarkdown:
    """Tests for Markdown conversion."""

    def convert(self, html: str, base_url: str = "") -> str:
        soup = BeautifulSoup(f"<div>{html}</div>", "html.parser")
        return MarkdownConverter(base_url=base_url).convert(soup.div)

    def test_headings_paragraphs_and_emphasis(self):
        markdown = self.convert("<h2>Title</h2><p>Some <strong>bold</strong> and <em>soft</em> text.</p>")

        assert markdown == "## Title\n\nSome **bold** and *soft* text."

    def test_links_resolved_against_base(self):
        markdown = self.convert('<p><a href="/guide">guide</a> <a href="#top">top</a></p>', "https://x.com/post")

        assert markdown == "[guide](https://x.com/guide) top"

    def test_lists(self):
        assert self.convert("<ol><li>one</li><li>two</li></ol>") == "1. one\n2. two"
        assert self.convert("<ul><li>a</li><li>b</li></ul>") == "- a\n- b"

    def test_code_block_language(self):
        markdown = self.convert('<pre><code class="language-python">print(1)</code></pre>')

        assert markdown == "```python\nprint(1)\n```"

    def test_boilerplate_skipped(self):
        markdown = self.convert(
            '<section><p>Body</p><div class="share-buttons"><p>Share this</p></div></section>'
        )

        assert markdown == "Body"

    def test_table(self):
        soup = BeautifulSoup(
            "<table><tr><th>Bird</th><th>Size</th></tr><tr><td>Wren</td><td>10 cm</td></tr></table>",
            "html.parser",
        )

        assert table_to_markdown(soup.table) == "| Bird | Size |\n| --- | --- |\n| Wren | 10 cm |"


class TestMetadata:
    """Tests for metadata extraction."""

    def test_sample_metadata(self, sample_html):
        metadata = MetadataExtractor().extract(BeautifulSoup(sample_html, "html.parser"))

        assert metadata.title == "Garden Birds of Europe"
        assert metadata.description == "A field guide to garden birds"
        assert metadata.language == "en"
        assert metadata.canonical_url == "https://example.com/birds"
        assert metadata.open_graph == {"title": "Garden Birds"}
        assert metadata.json_ld[0]["@type"] == "Article"
        assert metadata.authorship.author == "Jane Doe"
        assert metadata.authorship.publisher == "Bird Press"
        assert metadata.authorship.published.year == 2024
        assert metadata.headings == [(1, "Garden Birds of Europe"), (2, "Feeding")]

    def test_invalid_json_ld_warns(self):
        html = '<html><head><script type="application/ld+json">{broken</script></head></html>'

        metadata = MetadataExtractor().extract(BeautifulSoup(html, "html.parser"))

        assert metadata.json_ld == []
        assert len(metadata.warnings) == 1

    def test_title_falls_back_to_h1(self):
        metadata = MetadataExtractor().extract(BeautifulSoup("<body><h1>Heading</h1></body>", "html.parser"))

        assert metadata.title == "Heading"

    def test_byline_prefix_stripped(self):
        html = '<body><span class="byline">By Sam Lee</span></body>'

        metadata = MetadataExtractor().extract(BeautifulSoup(html, "html.parser"))

        assert metadata.authorship.authors == ["Sam Lee"]

    @pytest.mark.parametrize("value", ["2024-03-01", "March 01, 2024", "2024-03-01T09:30:00Z"])
    def test_parse_date(self, value):
        parsed = MetadataExtractor().parse_date(value)

        assert (parsed.year, parsed.month, parsed.day) == (2024, 3, 1)

    def test_parse_date_invalid(self):
        assert MetadataExtractor().parse_date("someday") is None


class TestQuality:
    """Tests for quality metrics."""

    @pytest.mark.parametrize("word,expected", [
        ("the", 1),
        ("bird", 1),
        ("make", 1),
        ("table", 2),
        ("garden", 2),
        ("", 0),
    ])
    def test_count_syllables(self, word, expected):
        assert count_syllables(word) == expected

    def test_empty_text(self):
        metrics = analyze_quality("")

        assert metrics.word_count == 0
        assert metrics.flesch_reading_ease is None
        assert metrics.reading_time_minutes is None
        assert metrics.quality_score == 50

    def test_simple_text(self):
        text = "The cat sat on the mat. It was a sunny day in the small town."

        metrics = analyze_quality(text, paragraph_count=3, words_per_minute=200)

        assert metrics.word_count == 15
        assert metrics.sentence_count == 2
        assert 0 <= metrics.flesch_reading_ease <= 100
        assert metrics.reading_time_minutes == 1
        assert 0 <= metrics.quality_score <= 100

    def test_excerpt_cut_at_word_boundary(self):
        excerpt = make_excerpt("word " * 100, limit=22)

        assert excerpt == "word word word word…"


class TestTextExtractor:
    """Tests for the TextExtractor pipeline."""

    def test_analyze(self, sample_html):
        """analyze() should combine metadata, main content and quality."""
        extractor = TextExtractor(CrawlConfig(), FakeSession(), rate_limiter=None)

        result = extractor.analyze(sample_html, ARTICLE_URL)

        assert result.title == "Garden Birds of Europe"
        assert result.canonical_url == ARTICLE_URL
        assert result.authorship.author == "Jane Doe"
        assert "orange breast" in result.text
        assert "Subscribe" not in result.text
        assert "Home" not in result.text
        assert result.markdown.startswith("# Garden Birds of Europe")
        assert "## Feeding" in result.markdown
        assert "- Sunflower hearts" in result.markdown
        assert "[feeding guide](https://example.com/guides/feeding)" in result.markdown
        assert result.quality.paragraph_count == 4
        assert result.excerpt == "A field guide to garden birds"
        assert 0.0 < result.readability_score <= 1.0

    @pytest.mark.asyncio
    async def test_run(self, fast_options, sample_html):
        """A full run navigates, extracts and reports one item."""
        session = FakeSession(FakeSite(html=sample_html))
        extractor = await create_text_extractor(
            fast_options, session=session, robots_transport=robots_transport(None))
        found, completed, errors = [], [], []
        extractor.on("itemFound", found.append)
        extractor.on("extractionComplete", completed.append)
        extractor.on("extractionError", errors.append)

        result = await extractor.run(ARTICLE_URL)

        assert result.error is None
        assert result.url == ARTICLE_URL
        assert result.text_length >= 100
        assert len(found) == 1
        assert found[0]["metadata"]["title"] == "Garden Birds of Europe"
        assert completed[0]["stats"]["items_found"] == 1
        assert errors == []
        assert session.pages[0].gotos == [ARTICLE_URL]
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_markdown_disabled(self, fast_options, sample_html):
        fast_options["text"]["extract_markdown"] = False
        extractor = await create_text_extractor(
            fast_options,
            session=FakeSession(FakeSite(html=sample_html)),
            robots_transport=robots_transport(None),
        )

        result = await extractor.run(ARTICLE_URL)

        assert result.markdown is None
        assert result.text

    @pytest.mark.asyncio
    async def test_below_min_length(self, fast_options):
        """Short pages still return a result, flagged below-min-length."""
        site = FakeSite(html="<html><body><p>Short</p></body></html>")
        extractor = await create_text_extractor(
            fast_options, session=FakeSession(site), robots_transport=robots_transport(None))
        errors = []
        extractor.on("extractionError", errors.append)

        result = await extractor.run(ARTICLE_URL)

        assert result.error == BELOW_MIN_LENGTH
        assert result.text == "Short"
        assert errors[0]["reason"] == BELOW_MIN_LENGTH
        assert errors[0]["length"] == 5

    @pytest.mark.asyncio
    async def test_robots_denied(self, fast_options, sample_html):
        """A disallowed start URL yields an empty result without navigating."""
        session = FakeSession(FakeSite(html=sample_html))
        extractor = await create_text_extractor(
            fast_options,
            session=session,
            robots_transport=robots_transport("User-agent: *\nDisallow: /birds\n"),
        )
        errors = []
        extractor.on("extractionError", errors.append)

        result = await extractor.run(ARTICLE_URL)

        assert result.text == ""
        assert result.warnings
        assert errors[0]["reason"] == "robots-denied"
        assert session.pages[0].gotos == []

    @pytest.mark.asyncio
    async def test_navigation_failure(self, fast_options):
        session = FakeSession(FakeSite(navigation_error="net::ERR_CONNECTION_REFUSED"))
        extractor = await create_text_extractor(
            fast_options, session=session, robots_transport=robots_transport(None))
        errors = []
        extractor.on("extractionError", errors.append)

        with pytest.raises(NavigationError):
            await extractor.run(ARTICLE_URL)

        assert errors[0]["reason"] == "fatal"
        assert not session.is_open
