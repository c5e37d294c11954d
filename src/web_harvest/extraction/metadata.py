"""
Metadata extraction from rendered pages.

Extracts structured metadata including:
- Standard HTML meta tags
- Open Graph protocol
- Twitter Cards
- Dublin Core and article:* properties
- JSON-LD structured data
- Authorship, dates, language and heading outline
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup, Tag

from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

AUTHOR_SELECTORS = [
    '[rel="author"]', ".author", ".byline", ".writer", '[itemprop="author"]',
    ".post-author", ".article-author", ".entry-author", ".meta-author",
]

DATE_SELECTORS = [
    "time[datetime]", '[itemprop="datePublished"]', ".publish-date", ".post-date",
    ".entry-date", ".article-date", ".meta-date",
]


@dataclass
class Authorship:
    """Who wrote the page and when."""

    authors: list[str] = field(default_factory=list)
    published: datetime | None = None
    modified: datetime | None = None
    publisher: str | None = None

    @property
    def author(self) -> str | None:
        return self.authors[0] if self.authors else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "authors": list(self.authors),
            "published": self.published.isoformat() if self.published else None,
            "modified": self.modified.isoformat() if self.modified else None,
            "publisher": self.publisher,
        }


@dataclass
class PageMetadata:
    """
    Metadata extracted from a page.

    ``meta`` is the flattened view: standard names as-is, Open Graph as
    ``og:*``, Twitter as ``twitter:*``, Dublin Core as ``dc:*`` and
    article properties as ``article:*``.
    """

    title: str = ""
    description: str = ""
    language: str | None = None
    canonical_url: str | None = None
    robots: str | None = None
    meta: dict[str, str] = field(default_factory=dict)
    json_ld: list[Any] = field(default_factory=list)
    feeds: list[str] = field(default_factory=list)
    authorship: Authorship = field(default_factory=Authorship)
    headings: list[tuple[int, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def open_graph(self) -> dict[str, str]:
        return {k[3:]: v for k, v in self.meta.items() if k.startswith("og:")}

    @property
    def twitter(self) -> dict[str, str]:
        return {k[8:]: v for k, v in self.meta.items() if k.startswith("twitter:")}

    @property
    def dublin_core(self) -> dict[str, str]:
        return {k[3:]: v for k, v in self.meta.items() if k.startswith("dc:")}

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "language": self.language,
            "canonical_url": self.canonical_url,
            "robots": self.robots,
            "meta": dict(self.meta),
            "feeds": list(self.feeds),
            "authorship": self.authorship.to_dict(),
            "headings": [{"level": level, "text": text} for level, text in self.headings],
        }


class MetadataExtractor:
    """
    Extracts metadata from HTML pages.

    Example:
        >>> extractor = MetadataExtractor()
        >>> metadata = extractor.extract(soup)
        >>> print(f"Title: {metadata.title}")
    """

    # Date formats to try when parsing
    DATE_FORMATS = [
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
        "%B %d, %Y",
        "%d %B %Y",
        "%m/%d/%Y",
    ]

    def extract(self, soup: BeautifulSoup) -> PageMetadata:
        """
        Extract all metadata from a parsed page.

        The soup must still contain <head> and JSON-LD scripts, so pass it
        before any content cleaning.
        """
        metadata = PageMetadata()

        self._extract_meta_tags(soup, metadata)
        self._extract_json_ld(soup, metadata)
        metadata.title = self._extract_title(soup, metadata)
        metadata.description = (
            metadata.meta.get("description")
            or metadata.meta.get("og:description")
            or metadata.meta.get("twitter:description")
            or ""
        )
        metadata.language = self._extract_language(soup, metadata)
        metadata.authorship = self._extract_authorship(soup, metadata)
        metadata.headings = self.extract_headings(soup)

        return metadata

    def _extract_meta_tags(self, soup: BeautifulSoup, metadata: PageMetadata) -> None:
        """Flatten <meta> tags and pick up canonical/robots/feeds."""
        for tag in soup.find_all("meta"):
            content = tag.get("content")
            if not content:
                continue
            name = tag.get("name") or ""
            prop = tag.get("property") or ""

            if prop.startswith(("og:", "article:")):
                metadata.meta.setdefault(prop, content)
            elif prop.startswith("twitter:"):
                metadata.meta.setdefault(prop, content)

            if name:
                lowered = name.lower()
                if lowered.startswith("dc."):
                    metadata.meta.setdefault(f"dc:{name[3:].lower()}", content)
                elif lowered.startswith("dcterms."):
                    metadata.meta.setdefault(f"dc:{name[8:].lower()}", content)
                else:
                    metadata.meta.setdefault(lowered, content)
                if lowered == "robots":
                    metadata.robots = content

        canonical = soup.find("link", rel="canonical")
        if canonical is not None and canonical.get("href"):
            metadata.canonical_url = canonical["href"]

        for link in soup.find_all("link", rel="alternate"):
            link_type = (link.get("type") or "").lower()
            if link.get("href") and ("rss" in link_type or "atom" in link_type):
                metadata.feeds.append(link["href"])

    def _extract_json_ld(self, soup: BeautifulSoup, metadata: PageMetadata) -> None:
        """Parse JSON-LD blocks; invalid blocks are skipped with a warning."""
        for index, script in enumerate(soup.find_all("script", type="application/ld+json")):
            text = script.string or script.get_text()
            if not text or not text.strip():
                continue
            try:
                metadata.json_ld.append(json.loads(text))
            except json.JSONDecodeError as e:
                message = f"Skipping invalid JSON-LD block {index}: {e}"
                logger.warning(message)
                metadata.warnings.append(message)

    def _extract_title(self, soup: BeautifulSoup, metadata: PageMetadata) -> str:
        """document.title, then the first <h1>, then og:title."""
        if soup.title is not None:
            title = soup.title.get_text(strip=True)
            if title:
                return title
        h1 = soup.find("h1")
        if h1 is not None:
            title = h1.get_text(" ", strip=True)
            if title:
                return title
        return metadata.meta.get("og:title", "")

    def _extract_language(self, soup: BeautifulSoup, metadata: PageMetadata) -> str | None:
        html_tag = soup.find("html")
        if html_tag is not None and html_tag.get("lang"):
            return html_tag["lang"]

        lang_meta = soup.find("meta", attrs={"http-equiv": re.compile(r"^content-language$", re.I)})
        if lang_meta is not None and lang_meta.get("content"):
            return lang_meta["content"]

        if metadata.meta.get("language"):
            return metadata.meta["language"]

        locale = metadata.meta.get("og:locale")
        if locale:
            return locale.split("_")[0]
        return None

    def _extract_authorship(self, soup: BeautifulSoup, metadata: PageMetadata) -> Authorship:
        authorship = Authorship()

        def add_author(name: Any) -> None:
            if isinstance(name, dict):
                name = name.get("name")
            if isinstance(name, str):
                name = re.sub(r"^by\s+", "", name.strip(), flags=re.I)
                if name and len(name) < 100 and name not in authorship.authors:
                    authorship.authors.append(name)

        for item in self._json_ld_objects(metadata.json_ld):
            author = item.get("author")
            for entry in author if isinstance(author, list) else [author]:
                add_author(entry)
            if authorship.published is None and item.get("datePublished"):
                authorship.published = self.parse_date(str(item["datePublished"]))
            if authorship.modified is None and item.get("dateModified"):
                authorship.modified = self.parse_date(str(item["dateModified"]))
            publisher = item.get("publisher")
            if authorship.publisher is None and isinstance(publisher, dict) and publisher.get("name"):
                authorship.publisher = publisher["name"]

        add_author(metadata.meta.get("author"))
        for selector in AUTHOR_SELECTORS:
            for element in soup.select(selector):
                add_author(element.get_text(" ", strip=True))

        if authorship.published is None and metadata.meta.get("article:published_time"):
            authorship.published = self.parse_date(metadata.meta["article:published_time"])
        if authorship.modified is None and metadata.meta.get("article:modified_time"):
            authorship.modified = self.parse_date(metadata.meta["article:modified_time"])

        if authorship.published is None:
            for selector in DATE_SELECTORS:
                element = soup.select_one(selector)
                if element is None:
                    continue
                value = element.get("datetime") or element.get("content") or element.get_text(strip=True)
                authorship.published = self.parse_date(value)
                if authorship.published is not None:
                    break

        return authorship

    @staticmethod
    def _json_ld_objects(blocks: list[Any]) -> list[dict[str, Any]]:
        """Top-level JSON-LD objects, unwrapping arrays and @graph."""
        objects: list[dict[str, Any]] = []
        pending = list(blocks)
        while pending:
            item = pending.pop(0)
            if isinstance(item, list):
                pending.extend(item)
            elif isinstance(item, dict):
                objects.append(item)
                if isinstance(item.get("@graph"), list):
                    pending.extend(item["@graph"])
        return objects

    @staticmethod
    def extract_headings(root: Tag) -> list[tuple[int, str]]:
        """Outline of h1-h6 as (level, text)."""
        headings = []
        for heading in root.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
            text = heading.get_text(" ", strip=True)
            if text:
                headings.append((int(heading.name[1]), text))
        return headings

    def parse_date(self, date_str: str) -> datetime | None:
        """Parse a date string into datetime."""
        if not date_str:
            return None

        date_str = date_str.strip()

        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue

        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            pass

        logger.debug(f"Could not parse date: {date_str}")
        return None
