"""
Media extractor (MFT).

Scrolls the page with the adaptive crawler, restricted to a scroll-only
planner, and collects images, videos and audio from the DOM (including
srcset, lazy-load attributes, social meta tags, icons, JSON-LD and CSS
backgrounds) and from media responses seen on the network. Found media
can be downloaded at the end.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from web_harvest.browser import actions
from web_harvest.browser.observer import NetworkEvent
from web_harvest.config.settings import CrawlConfig
from web_harvest.crawler.adaptive import AdaptiveCrawler
from web_harvest.crawler.collectors import kind_for_content_type
from web_harvest.core.exceptions import RobotsDenied
from web_harvest.crawler.models import Discovery, DiscoveryKind, Report, StopReason
from web_harvest.crawler.planner import ScrollOnlyPlanner
from web_harvest.download.downloader import DownloadReport, MediaItem
from web_harvest.extractors.base import BaseExtractor
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import is_http_url

if TYPE_CHECKING:
    from web_harvest.browser.page_context import PageContext

logger = get_logger(__name__)

IMAGE_CATEGORIES = ("hero", "gallery", "thumbnail", "icon", "background", "social", "other")

GROUP_NAMES = {
    DiscoveryKind.IMAGE: "images",
    DiscoveryKind.VIDEO: "videos",
    DiscoveryKind.AUDIO: "audio",
}

_RAW_KINDS = {
    "image": DiscoveryKind.IMAGE,
    "video": DiscoveryKind.VIDEO,
    "audio": DiscoveryKind.AUDIO,
}

HERO_MIN_WIDTH = 600
ICON_MAX_SIZE = 64
THUMBNAIL_MAX_SIZE = 200


def categorize_image(raw: dict[str, Any]) -> str:
    """
    Category of an image candidate from COLLECT_MEDIA_JS.

    Checked in order: icon, social, background, hero, gallery,
    thumbnail, other.
    """
    width = int(raw.get("width") or 0)
    height = int(raw.get("height") or 0)

    if raw.get("icon") or (0 < width <= ICON_MAX_SIZE and 0 < height <= ICON_MAX_SIZE):
        return "icon"
    if raw.get("social") or raw.get("jsonLd"):
        return "social"
    if raw.get("background"):
        return "background"
    if raw.get("inHeader") and width >= HERO_MIN_WIDTH:
        return "hero"
    if raw.get("inGallery"):
        return "gallery"
    if 0 < width <= THUMBNAIL_MAX_SIZE and 0 < height <= THUMBNAIL_MAX_SIZE:
        return "thumbnail"
    return "other"


def _source_of(raw: dict[str, Any]) -> str:
    for flag, source in (
        ("social", "social-meta"),
        ("icon", "icon"),
        ("jsonLd", "json-ld"),
        ("background", "background-image"),
        ("poster", "poster"),
        ("srcset", "srcset"),
    ):
        if raw.get(flag):
            return source
    return "dom"


class MediaCollector:
    """Collector that reports only media, from the DOM and from network responses."""

    def __init__(self, include_backgrounds: bool = True) -> None:
        self.include_backgrounds = include_backgrounds

    async def collect(
        self,
        page: "PageContext",
        phase_index: int,
        network_events: list[NetworkEvent],
    ) -> list[Discovery]:
        found: list[Discovery] = []

        for raw in await actions.collect_media(page.page, self.include_backgrounds):
            url = raw.get("url")
            kind = _RAW_KINDS.get(raw.get("type", ""))
            if not url or kind is None or not is_http_url(url):
                continue

            metadata: dict[str, Any] = {"source": _source_of(raw)}
            if kind == DiscoveryKind.IMAGE:
                metadata["category"] = categorize_image(raw)
            for key in ("alt", "title", "caption"):
                if raw.get(key):
                    metadata[key] = raw[key]
            if raw.get("width") and raw.get("height"):
                metadata["width"] = int(raw["width"])
                metadata["height"] = int(raw["height"])
            if raw.get("mimeType"):
                metadata["content_type"] = raw["mimeType"]
            found.append(Discovery(url, kind, phase_index, metadata))

        for event in network_events:
            if event.phase != "response" or not is_http_url(event.url):
                continue
            kind = kind_for_content_type(event.content_type)
            if kind is None:
                continue
            metadata = {"source": "network", "content_type": event.content_type}
            if kind == DiscoveryKind.IMAGE:
                metadata["category"] = "other"
            found.append(Discovery(event.url, kind, phase_index, metadata))

        return found


@dataclass
class MediaResult:
    """
    Attributes:
        items: Every media item (url, type and metadata) in discovery order
        grouped: URLs by type: images, videos, audio
        categories: Image URLs by category (hero, gallery, ...)
        report: The underlying scroll crawl report
        downloaded: Download report when download_media is enabled
    """

    url: str
    items: list[dict[str, Any]] = field(default_factory=list)
    grouped: dict[str, list[str]] = field(default_factory=dict)
    categories: dict[str, list[str]] = field(default_factory=dict)
    report: Report | None = None
    downloaded: DownloadReport | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "url": self.url,
            "items": list(self.items),
            "grouped": {k: list(v) for k, v in self.grouped.items()},
            "categories": {k: list(v) for k, v in self.categories.items()},
            "report": self.report.to_dict() if self.report else None,
            "warnings": list(self.warnings),
        }
        if self.downloaded is not None:
            data["downloaded"] = self.downloaded.to_dict()
        return data


class MediaExtractor(BaseExtractor[MediaResult]):
    """
    Scroll-driven media harvester.

    Example:
        >>> extractor = await create_mft_extractor({"media": {"max_scrolls": 10}})
        >>> extractor.on("itemFound", lambda e: print(e["item"]))
        >>> result = await extractor.run("https://example.com/gallery")
        >>> len(result.grouped["images"])
        37
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.settings = self.config.media
        self.crawler: AdaptiveCrawler | None = None

    def _crawl_config(self) -> CrawlConfig:
        return CrawlConfig.from_options(
            self.config,
            crawler={
                "max_phases": self.settings.max_scrolls,
                "track_requests": False,
                "export_formats": [],
            },
        )

    def cancel(self) -> None:
        """Stop scrolling after the current phase."""
        if self.crawler is not None:
            self.crawler.cancel()

    async def extract(self, url: str) -> MediaResult:
        self.crawler = AdaptiveCrawler(
            self._crawl_config(),
            self.session,
            self.rate_limiter,
            robots=self.robots,
            planner=ScrollOnlyPlanner(step=self.settings.scroll_step, wait_ms=self.settings.scroll_delay_ms),
            collector=MediaCollector(include_backgrounds=self.settings.include_background_images),
            pause_after_interaction_ms=self.settings.scroll_delay_ms,
            persist=False,
        )
        self.crawler.on("discovery", self._on_discovery)

        report = await self.crawler.run(url)
        for warning in report.warnings:
            self.warnings.append(warning)
        if report.stopped_reason == StopReason.ROBOTS:
            self._emit_robots_denied(RobotsDenied("Start URL disallowed by robots.txt", url=url))

        result = self._build_result(url, report)

        if self.settings.download_media and result.items:
            media = [
                MediaItem(
                    url=item["url"],
                    mime_hint=item.get("content_type"),
                    media_type=item["type"],
                    referer=url,
                )
                for item in result.items
            ]
            logger.info(f"Downloading {len(media)} media items to {self.settings.download_dir}")
            result.downloaded = await self.download(media)

        return result

    def _on_discovery(self, payload: dict[str, Any]) -> None:
        discovery = payload["discovery"]
        self.add_item(discovery["url"], {"type": discovery["kind"], **discovery["metadata"]})

    def _build_result(self, url: str, report: Report) -> MediaResult:
        result = MediaResult(
            url=url,
            report=report,
            grouped={name: [] for name in GROUP_NAMES.values()},
            categories={name: [] for name in IMAGE_CATEGORIES},
            warnings=list(self.warnings),
        )

        for discovery in report.extraction_log:
            group = GROUP_NAMES.get(discovery.kind)
            if group is None:
                continue
            result.items.append({"url": discovery.url, "type": discovery.kind.value, **discovery.metadata})
            result.grouped[group].append(discovery.url)
            if discovery.kind == DiscoveryKind.IMAGE:
                category = discovery.metadata.get("category", "other")
                result.categories.setdefault(category, []).append(discovery.url)

        return result
