"""
Discovery collectors.

A collector turns the page state and the phase's network events into
Discovery candidates. The crawler deduplicates them against the log.
"""

from typing import TYPE_CHECKING, Any, Protocol

from web_harvest.browser import actions
from web_harvest.browser.observer import NetworkEvent
from web_harvest.crawler.models import Discovery, DiscoveryKind
from web_harvest.utils.urls import is_http_url

if TYPE_CHECKING:
    from web_harvest.browser.page_context import PageContext

# Network responses reported as "request" discoveries
DOCUMENT_RESOURCE_TYPES = frozenset({"document", "xhr", "fetch"})


def kind_for_content_type(content_type: str | None) -> DiscoveryKind | None:
    """Media kind implied by a Content-Type header, if any."""
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime.startswith("image/"):
        return DiscoveryKind.IMAGE
    if mime.startswith("video/"):
        return DiscoveryKind.VIDEO
    if mime.startswith("audio/"):
        return DiscoveryKind.AUDIO
    return None


def _clean(metadata: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in metadata.items() if v not in (None, "", [], {})}


class Collector(Protocol):
    async def collect(
        self,
        page: "PageContext",
        phase_index: int,
        network_events: list[NetworkEvent],
    ) -> list[Discovery]: ...


class DiscoveryCollector:
    """
    Default collector: links and media in the DOM plus observed responses.

    Example:
        >>> collector = DiscoveryCollector(track_requests=True)
        >>> found = await collector.collect(page_ctx, 3, observer.drain("network"))
    """

    def __init__(self, track_requests: bool = True) -> None:
        self.track_requests = track_requests

    async def collect(
        self,
        page: "PageContext",
        phase_index: int,
        network_events: list[NetworkEvent],
    ) -> list[Discovery]:
        found: list[Discovery] = []

        def add(url: str | None, kind: DiscoveryKind, **metadata: Any) -> None:
            if url and is_http_url(url):
                found.append(Discovery(url, kind, phase_index, _clean(metadata)))

        data = await actions.collect_discoveries(page.page)

        for link in data["links"]:
            add(link.get("url"), DiscoveryKind.LINK,
                text=link.get("text"), title=link.get("title"), rel=link.get("rel"))
        for frame in data["iframes"]:
            add(frame.get("url"), DiscoveryKind.LINK, tag="iframe")
        for image in data["images"]:
            add(image.get("url"), DiscoveryKind.IMAGE, alt=image.get("alt"))
        for video in data["videos"]:
            add(video.get("url"), DiscoveryKind.VIDEO, poster=video.get("poster"))
        for audio in data["audio"]:
            add(audio.get("url"), DiscoveryKind.AUDIO)

        if self.track_requests:
            for event in network_events:
                if event.phase != "response":
                    continue
                media_kind = kind_for_content_type(event.content_type)
                if media_kind is not None:
                    add(event.url, media_kind, content_type=event.content_type, status=event.status)
                elif event.resource_type in DOCUMENT_RESOURCE_TYPES:
                    add(event.url, DiscoveryKind.REQUEST,
                        method=event.method,
                        status=event.status,
                        content_type=event.content_type,
                        resource_type=event.resource_type)

        return found
