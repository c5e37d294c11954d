"""
Facade factories.

Each factory validates the configuration, builds the shared rate
limiter and robots policy, launches the browser session and returns a
run-capable handle. If anything fails after the browser started, the
session is closed before the error propagates.

Example:
    >>> crawler = await create_crawler({"crawler": {"max_phases": 20}})
    >>> crawler.on("phaseComplete", print)
    >>> report = await crawler.run("https://example.com")
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping, TypeVar

import httpx

from web_harvest.browser.session import BrowserSession
from web_harvest.config.settings import CrawlConfig
from web_harvest.crawler.adaptive import AdaptiveCrawler
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.crawler.robots import RobotsPolicy
from web_harvest.extractors.media import MediaExtractor
from web_harvest.extractors.text import TextExtractor
from web_harvest.extractors.traffic import TrafficExtractor
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

Options = CrawlConfig | Mapping[str, Any] | None
T = TypeVar("T")


@dataclass
class Components:
    """The shared pieces every pipeline is built from."""

    config: CrawlConfig
    rate_limiter: RateLimiter
    robots: RobotsPolicy
    session: BrowserSession


def build_components(
    options: Options = None,
    session: BrowserSession | None = None,
    robots_transport: httpx.AsyncBaseTransport | None = None,
) -> Components:
    """
    Validate options and build limiter, robots policy and (unopened) session.

    Raises:
        ConfigError: If the configuration is invalid
    """
    config = CrawlConfig.from_options(options)
    browser = config.browser

    rate_limiter = RateLimiter.from_settings(browser.rate_limit)
    if session is None:
        session = BrowserSession(
            browser,
            rate_limiter=rate_limiter,
            observer_buffer_size=config.crawler.observer_buffer_size,
        )
    robots = RobotsPolicy(
        user_agent=session.user_agent,
        respect_robots=browser.respect_robots,
        timeout_seconds=browser.robots_timeout_ms / 1000.0,
        rate_limiter=rate_limiter,
        transport=robots_transport,
    )
    return Components(config=config, rate_limiter=rate_limiter, robots=robots, session=session)


async def _launch(components: Components, build: Callable[[Components], T]) -> T:
    """Open the session, then build the handle; close the session on any failure."""
    try:
        if not components.session.is_open:
            await components.session.open()
        return build(components)
    except BaseException:
        await components.session.close()
        raise


async def create_crawler(
    options: Options = None,
    *,
    session: BrowserSession | None = None,
    robots_transport: httpx.AsyncBaseTransport | None = None,
) -> AdaptiveCrawler:
    """
    Create an adaptive crawler with a launched browser.

    Args:
        options: CrawlConfig or nested mapping; unknown keys are rejected
        session: Pre-built session (embedding and tests)
        robots_transport: httpx transport for robots.txt fetches

    Raises:
        ConfigError: Invalid configuration
        LaunchError: The browser failed to start
    """
    components = build_components(options, session, robots_transport)
    logger.debug("Creating adaptive crawler")
    return await _launch(components, lambda c: AdaptiveCrawler(
        c.config, c.session, c.rate_limiter, robots=c.robots))


async def create_text_extractor(
    options: Options = None,
    *,
    session: BrowserSession | None = None,
    robots_transport: httpx.AsyncBaseTransport | None = None,
) -> TextExtractor:
    """Create a TextExtractor with a launched browser (see create_crawler)."""
    components = build_components(options, session, robots_transport)
    return await _launch(components, lambda c: TextExtractor(
        c.config, c.session, c.rate_limiter, robots=c.robots))


async def create_mft_extractor(
    options: Options = None,
    *,
    session: BrowserSession | None = None,
    robots_transport: httpx.AsyncBaseTransport | None = None,
    download_transport: httpx.AsyncBaseTransport | None = None,
) -> MediaExtractor:
    """Create a media (MFT) extractor with a launched browser (see create_crawler)."""
    components = build_components(options, session, robots_transport)
    return await _launch(components, lambda c: MediaExtractor(
        c.config, c.session, c.rate_limiter, robots=c.robots, transport=download_transport))


async def create_tbr_extractor(
    options: Options = None,
    *,
    session: BrowserSession | None = None,
    robots_transport: httpx.AsyncBaseTransport | None = None,
) -> TrafficExtractor:
    """Create a traffic (TBR) extractor with a launched browser (see create_crawler)."""
    components = build_components(options, session, robots_transport)
    return await _launch(components, lambda c: TrafficExtractor(
        c.config, c.session, c.rate_limiter, robots=c.robots))
