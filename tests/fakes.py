"""
In-memory stand-ins for the Playwright page and browser session.

FakePage answers the package's in-page scripts (matched against the
constants in web_harvest.browser.actions) from a FakeSite, and fires
request/response events the way the driver does. FakeSession is a real
BrowserSession whose launch is replaced by a fake browser context, so
page and observer wiring run unchanged.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import httpx
from playwright.async_api import Error as PlaywrightError

from web_harvest.browser import actions
from web_harvest.browser.session import BrowserSession
from web_harvest.config.settings import BrowserSettings
from web_harvest.core.exceptions import LaunchError


@dataclass
class FakeRequest:
    url: str
    method: str = "GET"
    resource_type: str = "other"
    failure: str | None = None


@dataclass
class FakeResponse:
    url: str
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    request: FakeRequest | None = None


@dataclass
class FakeConsoleMessage:
    type: str
    text: str


class FakeSite:
    """
    Scriptable page model shared by every page of a FakeSession.

    Args:
        html: Document returned by page.content()
        links: Anchor URLs in the DOM
        images: Image URLs in the DOM
        media: Raw candidates returned for COLLECT_MEDIA_JS
        video_elements: Raw entries returned for SCAN_VIDEO_ELEMENTS_JS
        responses: (url, content_type, status) tuples fired on navigation
        pagination, sentinels, activators: Clickable selectors
        iframes: iframe src URLs
        navigation_error: Message of a driver error raised by goto()
        click_error: Message of a driver error raised by click()
    """

    viewport_height = 1000

    def __init__(
        self,
        html: str = "<html><head><title>Fake</title></head><body><p>Hello</p></body></html>",
        links: list[str] | None = None,
        images: list[str] | None = None,
        media: list[dict[str, Any]] | None = None,
        video_elements: list[dict[str, Any]] | None = None,
        responses: list[tuple[str, str | None, int]] | None = None,
        pagination: list[str] | None = None,
        sentinels: list[str] | None = None,
        activators: list[str] | None = None,
        iframes: list[str] | None = None,
        navigation_error: str | None = None,
        click_error: str | None = None,
        status: int = 200,
    ) -> None:
        self.html = html
        self.links = list(links or [])
        self._images = list(images or [])
        self.media_items = list(media or [])
        self.video_elements = list(video_elements or [])
        self.responses = list(responses or [])
        self.pagination = list(pagination or [])
        self.sentinels = list(sentinels or [])
        self.activators = list(activators or [])
        self.iframes = list(iframes or [])
        self.navigation_error = navigation_error
        self.click_error = click_error
        self.status = status
        self.activated: set[str] = set()
        self.clicked: list[str] = []

    @property
    def images(self) -> list[str]:
        return self._images

    @property
    def document_height(self) -> int:
        return self.viewport_height

    def navigate(self, page: "FakePage", url: str) -> int:
        if self.navigation_error:
            raise PlaywrightError(self.navigation_error)
        for response_url, content_type, status in self.responses:
            page.emit_response(response_url, content_type, status)
        return self.status

    def scroll(self, page: "FakePage", amount: int) -> None:
        limit = max(0, self.document_height - self.viewport_height)
        page.scroll_y = max(0, min(page.scroll_y + amount, limit))

    def click(self, page: "FakePage", selector: str) -> None:
        if self.click_error:
            raise PlaywrightError(self.click_error)
        self.clicked.append(selector)

    def dom_size(self) -> int:
        return len(self.html) + 100 * (len(self.links) + len(self.images))

    def signals(self, page: "FakePage") -> dict[str, Any]:
        return {
            "counts": {
                "elements": 10 + len(self.links) + len(self.images),
                "links": len(self.links),
                "images": len(self.images),
                "media": 0,
            },
            "textLength": len(self.html),
            "domSize": self.dom_size(),
            "scrollY": page.scroll_y,
            "viewportHeight": self.viewport_height,
            "documentHeight": self.document_height,
            "pagination": list(self.pagination),
            "sentinels": list(self.sentinels),
            "activators": [s for s in self.activators if s not in self.activated],
            "iframes": list(self.iframes),
        }

    def discoveries(self, page: "FakePage") -> dict[str, list[dict[str, Any]]]:
        return {
            "links": [
                {"url": url, "text": f"Link {i}", "title": "", "rel": ""}
                for i, url in enumerate(self.links)
            ],
            "images": [{"url": url, "alt": ""} for url in self.images],
            "videos": [],
            "audio": [],
            "iframes": [{"url": url} for url in self.iframes],
        }

    def media(self, page: "FakePage", include_backgrounds: bool) -> list[dict[str, Any]]:
        return [
            dict(item) for item in self.media_items
            if include_backgrounds or not item.get("background")
        ]

    def scan_videos(self, page: "FakePage", scan_shadow_dom: bool) -> list[dict[str, Any]]:
        return [
            dict(item) for item in self.video_elements
            if scan_shadow_dom or not item.get("shadow")
        ]


class InfiniteScrollSite(FakeSite):
    """Appends ``batch`` images whenever a scroll reaches the bottom, up to ``total``."""

    def __init__(self, total: int = 50, batch: int = 10, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.total = total
        self.batch = batch
        self.loaded = batch
        self._all = [f"https://cdn.example.com/img/{i}.jpg" for i in range(total)]

    @property
    def images(self) -> list[str]:
        return self._all[: self.loaded]

    @property
    def document_height(self) -> int:
        return max(self.viewport_height, self.loaded * 100)

    def scroll(self, page: "FakePage", amount: int) -> None:
        super().scroll(page, amount)
        at_bottom = page.scroll_y + self.viewport_height >= self.document_height - 2
        if at_bottom and self.loaded < self.total:
            self.loaded = min(self.total, self.loaded + self.batch)


class FakePage:
    """Playwright Page stand-in driven by a FakeSite."""

    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.url = "about:blank"
        self.scroll_y = 0
        self.closed = False
        self.listeners: dict[str, list] = defaultdict(list)
        self.bindings: dict[str, Any] = {}
        self.init_scripts: list[str] = []
        self.gotos: list[str] = []
        self.waits: list[int] = []
        self.evaluations: list[str] = []

    # Driver events

    def on(self, event: str, handler: Any) -> None:
        self.listeners[event].append(handler)

    def remove_listener(self, event: str, handler: Any) -> None:
        self.listeners[event].remove(handler)

    def fire(self, event: str, payload: Any) -> None:
        for handler in list(self.listeners[event]):
            handler(payload)

    def emit_response(
        self,
        url: str,
        content_type: str | None = None,
        status: int = 200,
        resource_type: str = "other",
    ) -> None:
        request = FakeRequest(url, resource_type=resource_type)
        headers = {"content-type": content_type} if content_type else {}
        self.fire("request", request)
        self.fire("response", FakeResponse(url, status, headers, request))
        self.fire("requestfinished", request)

    def emit_console(self, level: str, text: str) -> None:
        self.fire("console", FakeConsoleMessage(level, text))

    async def expose_function(self, name: str, fn: Any) -> None:
        self.bindings[name] = fn

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    # Page API

    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None) -> FakeResponse:
        self.gotos.append(url)
        status = self.site.navigate(self, url)
        self.url = url
        return FakeResponse(url, status)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluations.append(script)
        site = self.site

        if script == actions.PAGE_SIGNALS_JS:
            return site.signals(self)
        if script == actions.COLLECT_DISCOVERIES_JS:
            return site.discoveries(self)
        if script == actions.COLLECT_MEDIA_JS:
            return site.media(self, bool(arg))
        if script == actions.SCAN_VIDEO_ELEMENTS_JS:
            return site.scan_videos(self, bool(arg))
        if script == actions.SCROLL_BY_JS:
            site.scroll(self, int(arg))
            return {
                "scrollY": self.scroll_y,
                "documentHeight": site.document_height,
                "viewportHeight": site.viewport_height,
            }
        if script == actions.RESOLVE_HREF_JS:
            return None
        if script == actions.MARK_ACTIVATED_JS:
            site.activated.add(arg)
            return True
        raise PlaywrightError("Evaluation failed: unknown script")

    async def content(self) -> str:
        return self.site.html

    async def title(self) -> str:
        return "Fake"

    async def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)
        await asyncio.sleep(0)

    async def click(self, selector: str, timeout: int | None = None) -> None:
        self.site.click(self, selector)

    async def hover(self, selector: str, timeout: int | None = None) -> None:
        return None

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True
        self.fire("close", self)


class FakeBrowserContext:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self.site)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeSession(BrowserSession):
    """BrowserSession that "launches" a FakeBrowserContext."""

    def __init__(
        self,
        site: FakeSite | None = None,
        settings: BrowserSettings | None = None,
        fail_open: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings or BrowserSettings(), **kwargs)
        self.site = site or FakeSite()
        self.fail_open = fail_open
        self.fake_context: FakeBrowserContext | None = None
        self.open_calls = 0
        self.close_calls = 0

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise LaunchError("Failed to launch browser: fake failure")
        if self._context is None:
            self.fake_context = FakeBrowserContext(self.site)
            self._context = self.fake_context

    async def close(self) -> None:
        self.close_calls += 1
        await super().close()

    @property
    def pages(self) -> list[FakePage]:
        return self.fake_context.pages if self.fake_context else []


def robots_transport(body: str | None = None, status: int = 200) -> httpx.MockTransport:
    """MockTransport serving one robots.txt (404 when body is None)."""

    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(404)
        return httpx.Response(status, text=body)

    return httpx.MockTransport(handler)
