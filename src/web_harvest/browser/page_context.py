"""
Page context wrapper.

Couples a Playwright page with its Observer and the shared RateLimiter,
and maps navigation failures onto NavigationError / SessionLostError.
"""

import time
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

from web_harvest.browser.actions import classify_driver_error
from web_harvest.browser.observer import Observer
from web_harvest.core.exceptions import NavigationError, SessionLostError
from web_harvest.utils.logging import get_logger

if TYPE_CHECKING:
    from web_harvest.crawler.rate_limiter import RateLimiter

logger = get_logger(__name__)


class PageContext:
    """
    Wrapper around a Playwright Page with its observer.

    Example:
        >>> ctx = await session.new_page()
        >>> await ctx.navigate("https://example.com")
        >>> settled = await ctx.wait_for_settled()
        >>> html = await ctx.content()
    """

    def __init__(
        self,
        page: Page,
        observer: Observer,
        rate_limiter: "RateLimiter | None" = None,
        navigation_timeout_ms: int = 30_000,
    ) -> None:
        """
        Initialize page context.

        Args:
            page: Playwright Page instance
            observer: Observer already attached to the page
            rate_limiter: Shared limiter gating navigations
            navigation_timeout_ms: Timeout for page.goto()
        """
        self.page = page
        self.observer = observer
        self.rate_limiter = rate_limiter
        self.navigation_timeout_ms = navigation_timeout_ms
        self.navigation_count = 0
        self._last_response: Response | None = None

    @property
    def current_url(self) -> str:
        return self.page.url

    @property
    def is_closed(self) -> bool:
        return self.page.is_closed()

    @property
    def last_status(self) -> int | None:
        return self._last_response.status if self._last_response else None

    async def navigate(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
    ) -> Response | None:
        """
        Navigate to URL and wait for the load state.

        Args:
            url: Target URL
            wait_until: "domcontentloaded", "load" or "networkidle"

        Returns:
            Response object if available

        Raises:
            NavigationError: If navigation fails, times out or returns >= 400
            SessionLostError: If the page or browser went away
        """
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        start_time = time.perf_counter()
        self.navigation_count += 1

        try:
            logger.debug(f"Navigating to: {url}")
            response = await self.page.goto(
                url,
                wait_until=wait_until,
                timeout=self.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            error_msg = str(e)
            lowered = error_msg.lower()

            if isinstance(classify_driver_error(e), SessionLostError):
                raise SessionLostError(f"Browser session lost during navigation: {error_msg}") from e

            if "timeout" in lowered:
                raise NavigationError(
                    f"Navigation timeout: {error_msg}",
                    url=url,
                ) from e

            if any(x in lowered for x in ["net::", "dns", "connection"]):
                raise NavigationError(
                    f"Network error: {error_msg}",
                    url=url,
                ) from e

            raise NavigationError(f"Navigation failed: {error_msg}", url=url) from e

        self._last_response = response
        elapsed = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Navigation complete in {elapsed:.0f}ms")

        if response is not None and response.status >= 400:
            raise NavigationError(
                f"HTTP {response.status} error",
                url=url,
                status_code=response.status,
            )

        return response

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            if arg is None:
                return await self.page.evaluate(script)
            return await self.page.evaluate(script, arg)
        except PlaywrightError as e:
            raise classify_driver_error(e) from e

    async def content(self) -> str:
        """Serialized HTML of the current document."""
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise classify_driver_error(e) from e

    async def title(self) -> str:
        try:
            return await self.page.title()
        except PlaywrightError as e:
            raise classify_driver_error(e) from e

    async def wait(self, ms: int) -> None:
        try:
            await self.page.wait_for_timeout(ms)
        except PlaywrightError as e:
            raise classify_driver_error(e) from e

    async def wait_for_settled(self, quiet_ms: int = 250, timeout_ms: int = 10_000) -> bool:
        """Wait for network and DOM quiet (see Observer.wait_for_settled)."""
        return await self.observer.wait_for_settled(quiet_ms=quiet_ms, timeout_ms=timeout_ms)

    async def close(self) -> None:
        """Detach the observer and close the page."""
        self.observer.detach()
        if self.page.is_closed():
            return
        try:
            await self.page.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing page: {e}")
