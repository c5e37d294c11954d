"""
Common extractor machinery.

Every extractor owns one BrowserSession for one run, deduplicates the
items it finds by canonical URL, and reports progress through the
same event names:

    extractionStart     {url}
    itemFound           {item, metadata}
    extractionComplete  {url, stats}
    extractionError     {reason, error, ...}
    downloadProgress    {item}
    downloadComplete    {stats}
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, TypeVar

import httpx

from web_harvest.browser.session import BrowserSession
from web_harvest.config.settings import CrawlConfig
from web_harvest.core.events import EventEmitter
from web_harvest.core.exceptions import HarvestError, RobotsDenied
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.crawler.robots import RobotsPolicy
from web_harvest.download.downloader import DownloadReport, MediaDownloader, MediaItem
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import canonicalize_url

logger = get_logger(__name__)

ResultT = TypeVar("ResultT")


class BaseExtractor(ABC, Generic[ResultT]):
    """
    Base class for the text, media and traffic extractors.

    Subclasses implement extract(); run() wraps it with events, stats and
    session cleanup. An instance runs once.
    """

    def __init__(
        self,
        config: CrawlConfig,
        session: BrowserSession,
        rate_limiter: RateLimiter,
        robots: RobotsPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            config: Validated configuration
            session: Browser session, owned and closed by the extractor
            rate_limiter: Shared outbound limiter
            robots: robots.txt policy (None disables the gate)
            transport: httpx transport for media downloads (tests inject a MockTransport)
        """
        self.config = config
        self.session = session
        self.rate_limiter = rate_limiter
        self.robots = robots
        self.transport = transport
        self.events = EventEmitter()
        self.warnings: list[str] = []

        self._items: dict[str, dict[str, Any]] = {}
        self._started = False
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._errors = 0
        self._downloaded = 0

    def on(self, event: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Subscribe to an extractor event. Returns an unsubscribe function."""
        return self.events.on(event, handler)

    @property
    def items(self) -> list[dict[str, Any]]:
        """Found items in discovery order (url plus metadata)."""
        return [{"url": url, **metadata} for url, metadata in self._items.items()]

    def add_item(self, url: str, metadata: dict[str, Any] | None = None) -> bool:
        """
        Record an item unless its canonical URL was already seen.

        Emits itemFound for new items.

        Returns:
            True if the item was new
        """
        key = canonicalize_url(url)
        if key in self._items:
            return False
        self._items[key] = dict(metadata or {})
        self.events.emit("itemFound", {"item": key, "metadata": self._items[key]})
        return True

    def get_stats(self) -> dict[str, Any]:
        duration = None
        if self._start_time is not None and self._end_time is not None:
            duration = round(self._end_time - self._start_time, 3)
        return {
            "items_found": len(self._items),
            "errors": self._errors,
            "downloaded": self._downloaded,
            "warnings": len(self.warnings),
            "duration": duration,
        }

    async def run(self, url: str) -> ResultT:
        """
        Run the extraction against one URL.

        The browser session is opened if needed and always closed at the
        end, whether extraction succeeds or fails.

        Raises:
            HarvestError: If the extractor was already used
            LaunchError, NavigationError, SessionLostError: Fatal failures
        """
        if self._started:
            raise HarvestError("Extractor has already run")
        self._started = True
        self._start_time = time.monotonic()
        self.events.emit("extractionStart", {"url": url})
        logger.info(f"{type(self).__name__} starting: {url}")

        try:
            if not self.session.is_open:
                await self.session.open()
            result = await self.extract(url)
        except Exception as e:
            self._errors += 1
            self._end_time = time.monotonic()
            logger.error(f"Extraction failed for {url}: {e}")
            self.events.emit("extractionError", {"reason": "fatal", "error": str(e), "url": url})
            raise
        finally:
            await self.close()

        self._end_time = time.monotonic()
        stats = self.get_stats()
        self.events.emit("extractionComplete", {"url": url, "stats": stats})
        logger.info(f"{type(self).__name__} finished: {stats['items_found']} items in {stats['duration']}s")
        return result

    @abstractmethod
    async def extract(self, url: str) -> ResultT:
        """Extract from an already open session."""

    async def close(self) -> None:
        """Release the browser session. Idempotent."""
        await self.session.close()

    async def __aenter__(self) -> "BaseExtractor[ResultT]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def add_warning(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    async def start_allowed(self, url: str) -> bool:
        """Check the start URL against robots.txt, recording a warning if denied."""
        if self.robots is None:
            return True
        allowed = await self.robots.allowed(url, self.session.user_agent)
        for warning in self.robots.drain_warnings():
            self.warnings.append(warning)
        if not allowed:
            denied = RobotsDenied("Start URL disallowed by robots.txt", url=url)
            self.add_warning(f"{denied.message}: {url}")
            self._emit_robots_denied(denied)
        return allowed

    def _emit_robots_denied(self, denied: RobotsDenied) -> None:
        self.events.emit("extractionError", {"reason": "robots-denied", "error": denied.message, "url": denied.url})

    async def download(self, items: list[MediaItem]) -> DownloadReport:
        """Download media items with the configured downloader, relaying progress events."""

        def progress(item: MediaItem) -> None:
            self.events.emit("downloadProgress", {"item": item.to_dict()})

        downloader = MediaDownloader.from_settings(
            self.config.media,
            user_agent=self.session.user_agent,
            rate_limiter=self.rate_limiter,
            on_progress=progress,
            transport=self.transport,
        )
        report = await downloader.download(items)
        self._downloaded += report.stats.successful
        self.events.emit("downloadComplete", {"stats": report.stats.to_dict()})
        return report
