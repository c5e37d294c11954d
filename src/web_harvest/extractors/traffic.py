"""
Traffic extractor (TBR).

Finds video streams by watching network responses rather than the DOM:
HLS playlists, DASH manifests and direct video files. Segment files are
ignored. The DOM (optionally including open shadow roots) is scanned
once at the end for <video> sources, subtitle tracks and posters.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from web_harvest.browser import actions
from web_harvest.browser.observer import Feed, NetworkEvent
from web_harvest.extractors.base import BaseExtractor
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import canonicalize_url, is_http_url, path_extension, strip_tracking_params

logger = get_logger(__name__)

HLS_MIME_TYPES = frozenset({"application/vnd.apple.mpegurl", "application/x-mpegurl", "audio/mpegurl"})
DASH_MIME_TYPES = frozenset({"application/dash+xml"})
SEGMENT_MIME_TYPES = frozenset({"video/mp2t", "video/iso.segment"})

SEGMENT_EXTENSIONS = frozenset({"ts", "m4s", "aac"})
DIRECT_EXTENSIONS = frozenset({"mp4", "webm", "mov", "m4v", "mkv", "ogv"})
SUBTITLE_EXTENSIONS = frozenset({"vtt", "srt", "ass", "ttml", "dfxp"})
SUBTITLE_MIME_TYPES = frozenset({"text/vtt", "application/x-subrip", "application/ttml+xml"})

# Fragmented playback chunks that still carry a .mp4 extension
_SEGMENT_NAME = re.compile(r"(?:segment|chunk|frag)[^/]*\.(?:ts|m4s|mp4)$", re.I)

STREAM_GROUPS = ("hls", "dash", "direct")


def _mime(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_segment(url: str, content_type: str | None = None) -> bool:
    """True for media segments (.ts, .m4s, .aac fragments) that belong to a playlist."""
    if path_extension(url) in SEGMENT_EXTENSIONS or _mime(content_type) in SEGMENT_MIME_TYPES:
        return True
    return bool(_SEGMENT_NAME.search(url.split("?", 1)[0]))


def classify_stream(url: str, content_type: str | None = None) -> str | None:
    """
    Stream type of a response.

    Returns:
        "hls", "dash", "direct", or None for anything else (segments included)
    """
    if is_segment(url, content_type):
        return None

    ext = path_extension(url)
    mime = _mime(content_type)

    if ext == "m3u8" or mime in HLS_MIME_TYPES:
        return "hls"
    if ext == "mpd" or mime in DASH_MIME_TYPES:
        return "dash"
    if ext in DIRECT_EXTENSIONS or mime.startswith("video/"):
        return "direct"
    return None


def is_subtitle(url: str, content_type: str | None = None) -> bool:
    return path_extension(url) in SUBTITLE_EXTENSIONS or _mime(content_type) in SUBTITLE_MIME_TYPES


@dataclass
class TrafficResult:
    """
    Attributes:
        items: Every stream found (url, type, source, content_type)
        grouped: Stream URLs by type: hls, dash, direct, plus "other" for
            blob: sources seen in the DOM
        subtitles: Subtitle track URLs
        thumbnails: Poster image URLs
    """

    url: str
    items: list[dict[str, Any]] = field(default_factory=list)
    grouped: dict[str, list[str]] = field(
        default_factory=lambda: {"hls": [], "dash": [], "direct": [], "other": []})
    subtitles: list[str] = field(default_factory=list)
    thumbnails: list[str] = field(default_factory=list)
    responses_observed: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "items": list(self.items),
            "grouped": {k: list(v) for k, v in self.grouped.items()},
            "subtitles": list(self.subtitles),
            "thumbnails": list(self.thumbnails),
            "responses_observed": self.responses_observed,
            "warnings": list(self.warnings),
        }


class TrafficExtractor(BaseExtractor[TrafficResult]):
    """
    Network-driven video stream discovery.

    Example:
        >>> extractor = await create_tbr_extractor({"traffic": {"observation_window_ms": 8000}})
        >>> result = await extractor.run("https://example.com/watch")
        >>> result.grouped["hls"]
        ['https://cdn.example.com/master.m3u8']
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.settings = self.config.traffic
        self._result: TrafficResult | None = None
        self._seen_extras: set[str] = set()

    def _clean(self, url: str) -> str:
        if self.settings.strip_tracking_params and is_http_url(url):
            url = strip_tracking_params(url)
        return canonicalize_url(url)

    async def extract(self, url: str) -> TrafficResult:
        result = self._result = TrafficResult(url=url)
        page = await self.session.new_page()

        if not await self.start_allowed(url):
            result.warnings = list(self.warnings)
            return result

        responses: list[NetworkEvent] = []
        unsubscribe = page.observer.subscribe(
            Feed.NETWORK,
            responses.append,
            predicate=lambda event: event.phase == "response",
        )
        try:
            await page.navigate(url)
            await page.wait_for_settled(
                quiet_ms=self.config.crawler.settle_quiet_ms,
                timeout_ms=self.config.crawler.settle_timeout_ms,
            )
            logger.debug(f"Observing network for {self.settings.observation_window_ms}ms")
            await page.wait(self.settings.observation_window_ms)
            elements = await actions.scan_video_elements(page.page, self.settings.scan_shadow_dom)
        finally:
            unsubscribe()

        result.responses_observed = len(responses)
        for event in responses:
            self._consider_response(event)
        for element in elements:
            self._consider_element(element)

        result.warnings = list(self.warnings)
        logger.info(
            f"Found {len(result.grouped['hls'])} HLS, {len(result.grouped['dash'])} DASH, "
            f"{len(result.grouped['direct'])} direct streams on {url}"
        )
        return result

    def _consider_response(self, event: NetworkEvent) -> None:
        if event.status is not None and event.status >= 400:
            return
        if is_subtitle(event.url, event.content_type):
            self._add_extra(self._result.subtitles, event.url)
            return

        stream_type = classify_stream(event.url, event.content_type)
        if stream_type is not None:
            self._add_stream(event.url, stream_type, "network", event.content_type)

    def _consider_element(self, element: dict[str, Any]) -> None:
        url = element.get("url") or ""
        kind = element.get("kind")
        if not url:
            return

        if kind == "subtitle":
            self._add_extra(self._result.subtitles, url)
        elif kind == "poster":
            self._add_extra(self._result.thumbnails, url)
        elif url.startswith("blob:"):
            self._add_stream(url, "other", "element", element.get("mimeType"))
        elif kind == "video":
            mime = element.get("mimeType") or None
            stream_type = classify_stream(url, mime)
            if stream_type is None and not is_segment(url, mime) and is_http_url(url):
                stream_type = "direct"
            if stream_type is not None:
                self._add_stream(url, stream_type, "element", mime)

    def _add_stream(self, url: str, stream_type: str, source: str, content_type: str | None) -> None:
        cleaned = self._clean(url)
        item = {"type": stream_type, "source": source}
        if content_type:
            item["content_type"] = content_type
        if self.add_item(cleaned, item):
            self._result.items.append({"url": cleaned, **item})
            self._result.grouped[stream_type].append(cleaned)

    def _add_extra(self, bucket: list[str], url: str) -> None:
        cleaned = self._clean(url)
        if cleaned not in self._seen_extras:
            self._seen_extras.add(cleaned)
            bucket.append(cleaned)
