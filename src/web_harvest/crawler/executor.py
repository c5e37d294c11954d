"""
Interaction execution.

Runs one planned Interaction against a page. Interactions that load a
new document (Navigate, or a Click on a link) go through robots.txt and
the shared RateLimiter first.
"""

import asyncio
from typing import TYPE_CHECKING

from web_harvest.browser import actions
from web_harvest.core.exceptions import InteractionError
from web_harvest.crawler.models import Click, Hover, Interaction, Navigate, Scroll, Wait
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.crawler.robots import RobotsPolicy
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import is_http_url

if TYPE_CHECKING:
    from web_harvest.browser.page_context import PageContext

logger = get_logger(__name__)


class InteractionExecutor:
    """
    Executes interactions with a timeout.

    Example:
        >>> executor = InteractionExecutor(robots=policy, rate_limiter=limiter)
        >>> await executor.execute(page_ctx, Scroll(900))
    """

    def __init__(
        self,
        robots: RobotsPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        timeout_ms: int = 15_000,
        user_agent: str | None = None,
    ) -> None:
        self.robots = robots
        self.rate_limiter = rate_limiter
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent

    async def _check_robots(self, url: str) -> None:
        if self.robots is not None and is_http_url(url):
            await self.robots.check_or_raise(url, self.user_agent)

    async def execute(self, page: "PageContext", interaction: Interaction) -> None:
        """
        Perform one interaction.

        Raises:
            RobotsDenied: If the interaction would load a disallowed URL
            InteractionError: If the interaction fails or times out
            NavigationError: If a Navigate interaction fails to load
            SessionLostError: If the page went away
        """
        try:
            await asyncio.wait_for(self._dispatch(page, interaction), self.timeout_ms / 1000.0)
        except asyncio.TimeoutError as e:
            raise InteractionError(
                f"Interaction timed out after {self.timeout_ms}ms: {interaction.describe()}",
                selector=getattr(interaction, "selector", None),
            ) from e

    async def _dispatch(self, page: "PageContext", interaction: Interaction) -> None:
        timeout_ms = self.timeout_ms

        if isinstance(interaction, Scroll):
            await actions.scroll_by(page.page, interaction.amount)

        elif isinstance(interaction, Click):
            href = await actions.resolve_href(page.page, interaction.selector)
            navigates = bool(href) and is_http_url(href)
            if navigates:
                await self._check_robots(href)
                if self.rate_limiter is not None:
                    await self.rate_limiter.acquire()
            await actions.click(page.page, interaction.selector, timeout_ms=timeout_ms)
            if not navigates:
                await actions.mark_activated(page.page, interaction.selector)

        elif isinstance(interaction, Hover):
            await actions.hover(page.page, interaction.selector, timeout_ms=timeout_ms)

        elif isinstance(interaction, Navigate):
            await self._check_robots(interaction.url)
            await page.navigate(interaction.url)

        elif isinstance(interaction, Wait):
            await page.wait(interaction.ms)

        else:
            raise InteractionError(f"Unsupported interaction: {interaction!r}")

        logger.debug(f"Executed {interaction.describe()}")

