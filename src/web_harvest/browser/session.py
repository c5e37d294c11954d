"""
Browser lifecycle management using Playwright.

A BrowserSession owns one Playwright instance, one browser and one
context. Pages are handed out as PageContext objects with an Observer
already attached.
"""

from typing import TYPE_CHECKING, Any

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from web_harvest.browser.observer import Observer
from web_harvest.browser.page_context import PageContext
from web_harvest.config.settings import BrowserSettings
from web_harvest.core.exceptions import BrowserError, LaunchError
from web_harvest.utils.logging import get_logger

if TYPE_CHECKING:
    from web_harvest.crawler.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "WebHarvest/1.0"


class BrowserSession:
    """
    Manages the Playwright browser lifecycle.

    Example:
        >>> async with BrowserSession(settings, rate_limiter=limiter) as session:
        ...     page = await session.new_page()
        ...     await page.navigate("https://example.com")
    """

    def __init__(
        self,
        settings: BrowserSettings,
        rate_limiter: "RateLimiter | None" = None,
        observer_buffer_size: int = 10_000,
    ) -> None:
        """
        Initialize session with configuration.

        Args:
            settings: Browser configuration
            rate_limiter: Shared limiter handed to every page
            observer_buffer_size: Per-feed buffer size of page observers
        """
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.observer_buffer_size = observer_buffer_size
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: list[PageContext] = []
        self.pages_opened = 0

    @property
    def user_agent(self) -> str:
        return self.settings.user_agent or DEFAULT_USER_AGENT

    @property
    def is_open(self) -> bool:
        return self._context is not None

    async def open(self) -> None:
        """
        Start Playwright, launch the browser and create the context.

        Raises:
            LaunchError: If any step fails (resources are released first)
        """
        if self._context is not None:
            logger.warning("Browser session already open, skipping launch")
            return

        try:
            logger.info(
                f"Starting {self.settings.browser_type} browser "
                f"(headless={self.settings.headless})"
            )
            self._playwright = await async_playwright().start()
            browser_type = getattr(self._playwright, self.settings.browser_type)

            launch_options: dict[str, Any] = {"headless": self.settings.headless}
            proxy = self.settings.resolved_proxy()
            if proxy:
                launch_options["proxy"] = {"server": proxy}
            self._browser = await browser_type.launch(**launch_options)

            self._context = await self._browser.new_context(
                viewport={
                    "width": self.settings.viewport_width,
                    "height": self.settings.viewport_height,
                },
                user_agent=self.user_agent,
                ignore_https_errors=self.settings.ignore_https_errors,
            )
            self._context.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
            logger.info("Browser started successfully")

        except Exception as e:
            await self._cleanup()
            raise LaunchError(
                f"Failed to launch browser: {e}",
                details={"browser_type": self.settings.browser_type},
            ) from e

    async def new_page(self) -> PageContext:
        """
        Open a page with an attached Observer.

        Raises:
            BrowserError: If the session is not open
        """
        if self._context is None:
            raise BrowserError("Browser session not open. Call open() first.")

        page = await self._context.new_page()
        observer = Observer(buffer_size=self.observer_buffer_size)
        await observer.attach(page)

        ctx = PageContext(
            page,
            observer,
            rate_limiter=self.rate_limiter,
            navigation_timeout_ms=self.settings.navigation_timeout_ms,
        )
        self._pages.append(ctx)
        self.pages_opened += 1
        return ctx

    def stats(self) -> dict[str, Any]:
        """Counters for the crawl report."""
        observer_stats: dict[str, int] = {}
        for ctx in self._pages:
            for key, value in ctx.observer.stats.items():
                observer_stats[key] = observer_stats.get(key, 0) + value
        return {
            "browser_type": self.settings.browser_type,
            "pages_opened": self.pages_opened,
            "navigations": sum(ctx.navigation_count for ctx in self._pages),
            **observer_stats,
        }

    async def close(self) -> None:
        """Close pages, context, browser and Playwright. Idempotent."""
        was_open = self._context is not None or self._playwright is not None
        await self._cleanup()
        if was_open:
            logger.info("Browser stopped")

    async def _cleanup(self) -> None:
        for ctx in self._pages:
            await ctx.close()

        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
