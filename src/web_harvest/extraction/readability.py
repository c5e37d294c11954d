"""
Main content detection.

Scores candidate blocks by tag weight, class/id patterns, ARIA role,
text length, punctuation, paragraph count, text density and link
density, and picks the highest-scoring subtree.
"""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

SCORE_MIN = -100.0
SCORE_MAX = 200.0

TAG_WEIGHTS = {
    "article": 30,
    "main": 25,
    "section": 10,
    "div": 5,
    "p": 3,
    "pre": 3,
}

POSITIVE_PATTERN = re.compile(
    r"article|body|content|entry|hentry|h-entry|main|page|post|text|blog|story|prose|single",
    re.I,
)

NEGATIVE_PATTERN = re.compile(
    r"hidden|banner|combx|comment|community|disqus|extra|foot|header|menu|remark|rss|"
    r"shoutbox|sidebar|sponsor|ad-|branding|popup|social|share|nav|buttons|recommend|"
    r"related|widget|promo|newsletter",
    re.I,
)

NEGATIVE_ROLES = frozenset({"complementary", "navigation", "banner", "contentinfo"})
POSITIVE_ROLES = frozenset({"main", "article"})

# Never part of readable content
STRIP_TAGS = ["script", "style", "noscript", "template", "svg", "canvas", "iframe", "object", "embed"]

CANDIDATE_TAGS = ["article", "main", "section", "div"]

# Blocks with less text than this are not candidates
MIN_CANDIDATE_LENGTH = 100

_PUNCTUATION = re.compile(r"[.,!?;:]")
_HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.I)


@dataclass
class ScoredBlock:
    """A candidate block and its raw score."""

    element: Tag
    score: float

    @property
    def normalized(self) -> float:
        """Score mapped from [SCORE_MIN, SCORE_MAX] onto [0, 1]."""
        return (self.score - SCORE_MIN) / (SCORE_MAX - SCORE_MIN)


def is_hidden(element: Tag) -> bool:
    """True for elements hidden by attribute or inline style."""
    if element.has_attr("hidden") or element.get("aria-hidden") == "true":
        return True
    return bool(_HIDDEN_STYLE.search(element.get("style", "")))


def clean_soup(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove non-content tags and hidden elements in place."""
    for element in soup.find_all(STRIP_TAGS) + soup.find_all(is_hidden):
        if not element.decomposed:
            element.decompose()
    return soup


def _class_string(element: Tag) -> str:
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


class ReadabilityScorer:
    """
    Finds the main content block of a page.

    Example:
        >>> scorer = ReadabilityScorer()
        >>> block = scorer.find_main_content(clean_soup(BeautifulSoup(html, "html.parser")))
        >>> block.normalized
        0.71
    """

    def score_element(self, element: Tag) -> float:
        """
        Score one element.

        Returns:
            Score clamped to [SCORE_MIN, SCORE_MAX]
        """
        positive = 0.0
        negative = 0.0

        positive += TAG_WEIGHTS.get(element.name, 0)

        class_name = _class_string(element)
        element_id = element.get("id", "") or ""
        if POSITIVE_PATTERN.search(class_name):
            positive += 25
        if POSITIVE_PATTERN.search(element_id):
            positive += 25
        if NEGATIVE_PATTERN.search(class_name):
            negative += 50
        if NEGATIVE_PATTERN.search(element_id):
            negative += 50

        role = element.get("role", "")
        if role in NEGATIVE_ROLES:
            negative += 50
        if role in POSITIVE_ROLES:
            positive += 30

        text = element.get_text(" ", strip=True)
        word_count = len(text.split())
        positive += min(word_count // 10, 50)
        positive += min(len(_PUNCTUATION.findall(text)), 20)
        positive += min(len(element.find_all("p")) * 3, 30)

        density = self.text_density(element, text)
        if density is not None:
            if density > 0.3:
                positive += 20
            if density > 0.5:
                positive += 10

        negative += 50 * self.link_density(element, text)

        return max(SCORE_MIN, min(SCORE_MAX, positive - negative))

    @staticmethod
    def text_density(element: Tag, text: str | None = None) -> float | None:
        """Text length over inner HTML length (None if undefined)."""
        if text is None:
            text = element.get_text(" ", strip=True)
        html_length = len(element.decode_contents())
        if html_length == 0:
            return 0.0 if not text else None
        return len(text) / html_length

    @staticmethod
    def link_density(element: Tag, text: str | None = None) -> float:
        """Share of the element's text that sits inside links, in [0, 1]."""
        if text is None:
            text = element.get_text(" ", strip=True)
        if not text:
            return 0.0
        link_length = sum(len(a.get_text(" ", strip=True)) for a in element.find_all("a"))
        return min(1.0, link_length / len(text))

    def candidates(self, soup: BeautifulSoup) -> list[ScoredBlock]:
        """Score every candidate block with enough text, best first."""
        scored: list[ScoredBlock] = []
        seen: set[int] = set()

        elements = soup.find_all(CANDIDATE_TAGS) + soup.find_all(attrs={"role": list(POSITIVE_ROLES)})
        for element in elements:
            if id(element) in seen:
                continue
            seen.add(id(element))

            if len(element.get_text(" ", strip=True)) < MIN_CANDIDATE_LENGTH:
                continue
            score = self.score_element(element)
            if score > 0:
                scored.append(ScoredBlock(element, score))

        scored.sort(key=lambda block: block.score, reverse=True)
        return scored

    def find_main_content(self, soup: BeautifulSoup) -> ScoredBlock | None:
        """
        Pick the main content block.

        Falls back to <body> (scored as-is) when no candidate scores above
        zero; returns None only for documents without a body.
        """
        ranked = self.candidates(soup)
        if ranked:
            best = ranked[0]
            logger.debug(f"Main content: <{best.element.name}> score={best.score:.1f}")
            return best

        body = soup.body or soup
        if not isinstance(body, Tag):
            return None
        return ScoredBlock(body, self.score_element(body))
