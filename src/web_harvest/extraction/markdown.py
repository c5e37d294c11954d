"""
HTML to Markdown conversion for extracted main content.

Walks a BeautifulSoup subtree and emits Markdown for headings,
paragraphs, emphasis, links, lists, blockquotes, code, images, figures
and tables. Boilerplate descendants (navigation, share widgets, forms)
are skipped.
"""

import re
from urllib.parse import urljoin

from bs4 import NavigableString, Tag
from bs4.element import Comment

from web_harvest.extraction.readability import NEGATIVE_PATTERN, NEGATIVE_ROLES, is_hidden

SKIP_TAGS = frozenset({
    "script", "style", "noscript", "meta", "link", "button", "form",
    "input", "select", "textarea", "template", "svg",
})

_WHITESPACE = re.compile(r"\s+")
_BLANK_LINES = re.compile(r"\n{3,}")
_CODE_LANGUAGE = re.compile(r"(?:language|lang)-([\w+-]+)")


def table_to_markdown(table: Tag) -> str:
    """
    Render a table as a GitHub-style Markdown table.

    The first row is the header (thead row if present). Returns "" for
    tables without cells.
    """
    header_row = table.select_one("thead tr") or table.find("tr")
    if header_row is None:
        return ""

    headers = [_cell_text(cell) for cell in header_row.find_all(["th", "td"])]
    if not headers:
        return ""

    rows = []
    for row in table.find_all("tr"):
        if row is header_row:
            continue
        cells = [_cell_text(cell) for cell in row.find_all(["td", "th"])]
        if cells:
            rows.append(cells)

    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def _cell_text(cell: Tag) -> str:
    return _WHITESPACE.sub(" ", cell.get_text(" ", strip=True)).replace("|", "\\|")


class MarkdownConverter:
    """
    Converts an element subtree to Markdown.

    Example:
        >>> converter = MarkdownConverter(base_url="https://example.com/post")
        >>> converter.convert(block.element)
        '# Title\\n\\nFirst paragraph with a [link](https://example.com/a).'
    """

    def __init__(self, base_url: str = "") -> None:
        self.base_url = base_url

    def convert(self, element: Tag) -> str:
        """Markdown for ``element``'s children, with blank runs collapsed."""
        markdown = self._children(element, deep=False)
        return _BLANK_LINES.sub("\n\n", markdown).strip()

    def _url(self, value: str | None) -> str:
        if not value:
            return ""
        return urljoin(self.base_url, value) if self.base_url else value

    def _skip(self, child: Tag) -> bool:
        if child.name in SKIP_TAGS or is_hidden(child):
            return True
        classes = child.get("class") or []
        class_name = classes if isinstance(classes, str) else " ".join(classes)
        if NEGATIVE_PATTERN.search(class_name) or NEGATIVE_PATTERN.search(child.get("id", "") or ""):
            return True
        return child.get("role", "") in NEGATIVE_ROLES

    def _inline(self, element: Tag) -> str:
        return self._children(element, deep=True).strip()

    def _children(self, element: Tag, deep: bool) -> str:
        parts: list[str] = []
        for child in element.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                text = _WHITESPACE.sub(" ", str(child))
                if text.strip():
                    parts.append(text)
                continue
            if not isinstance(child, Tag):
                continue
            if deep and self._skip(child):
                continue
            if not deep and child.name in SKIP_TAGS:
                continue
            parts.append(self._element(child))
        return "".join(parts)

    def _element(self, child: Tag) -> str:
        tag = child.name

        if tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
            text = self._inline(child)
            return f"\n\n{'#' * int(tag[1])} {text}\n\n" if text else ""

        if tag == "p":
            text = self._inline(child)
            return f"\n\n{text}\n\n" if text else ""

        if tag in ("strong", "b"):
            text = self._inline(child)
            return f"**{text}**" if text else ""

        if tag in ("em", "i"):
            text = self._inline(child)
            return f"*{text}*" if text else ""

        if tag in ("s", "strike", "del"):
            text = self._inline(child)
            return f"~~{text}~~" if text else ""

        if tag == "a":
            text = self._inline(child)
            href = (child.get("href") or "").strip()
            if text and href and not href.startswith(("javascript:", "#")):
                return f"[{text}]({self._url(href)})"
            return text

        if tag in ("ul", "ol"):
            items = child.find_all("li", recursive=False)
            lines = []
            for i, li in enumerate(items, start=1):
                marker = f"{i}." if tag == "ol" else "-"
                lines.append(f"{marker} {self._inline(li)}")
            return "\n" + "\n".join(lines) + "\n\n" if lines else ""

        if tag == "blockquote":
            text = self._inline(child)
            if not text:
                return ""
            quoted = "\n".join(f"> {line}" for line in text.split("\n"))
            return f"\n\n{quoted}\n\n"

        if tag == "code":
            if child.parent is not None and child.parent.name == "pre":
                return ""
            return f"`{child.get_text().strip()}`"

        if tag == "pre":
            code_el = child.find("code")
            code = (code_el or child).get_text()
            classes = " ".join((code_el or child).get("class") or [])
            match = _CODE_LANGUAGE.search(classes)
            language = match.group(1) if match else ""
            return f"\n\n```{language}\n{code.strip()}\n```\n\n"

        if tag == "br":
            return "\n"

        if tag == "hr":
            return "\n\n---\n\n"

        if tag == "img":
            src = self._url(child.get("src") or child.get("data-src"))
            return f"\n\n![{child.get('alt', '')}]({src})\n\n" if src else ""

        if tag == "figure":
            img = child.find("img")
            if img is None:
                return self._children(child, deep=True)
            src = self._url(img.get("src") or img.get("data-src"))
            result = f"\n\n![{img.get('alt', '')}]({src})"
            caption = child.find("figcaption")
            if caption is not None:
                result += f"\n*{caption.get_text(' ', strip=True)}*"
            return result + "\n\n"

        if tag == "table":
            table = table_to_markdown(child)
            return f"\n\n{table}\n\n" if table else ""

        return self._children(child, deep=True)
