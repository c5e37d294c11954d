"""
robots.txt compliance.

Fetches /robots.txt once per origin (through the shared RateLimiter),
parses User-agent / Allow / Disallow / Crawl-delay, and answers
allowed(url, user_agent) with longest-match-wins semantics. A failed
fetch fails open and leaves a warning for the extraction log.
"""

import asyncio
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from web_harvest.core.exceptions import RobotsDenied
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import is_http_url, origin_of

logger = get_logger(__name__)


@dataclass(frozen=True)
class RobotsRule:
    """One Allow/Disallow line."""

    path: str
    allow: bool

    @property
    def specificity(self) -> int:
        """Pattern length used for longest-match precedence."""
        return len(self.path)

    def matches(self, target: str) -> bool:
        """Match a path (with query) against this rule's pattern."""
        return _compile_pattern(self.path).match(target) is not None


@dataclass
class RobotsGroup:
    """Rules that apply to a set of user-agent tokens."""

    agents: list[str] = field(default_factory=list)
    rules: list[RobotsRule] = field(default_factory=list)
    crawl_delay: float | None = None


_PATTERN_CACHE: dict[str, re.Pattern] = {}


def _compile_pattern(path: str) -> re.Pattern:
    """Translate a robots path pattern ('*' wildcard, '$' anchor) to a regex."""
    compiled = _PATTERN_CACHE.get(path)
    if compiled is None:
        anchored = path.endswith("$")
        body = path[:-1] if anchored else path
        regex = ".*".join(re.escape(part) for part in body.split("*"))
        compiled = re.compile(regex + ("$" if anchored else ""))
        _PATTERN_CACHE[path] = compiled
    return compiled


class RobotsRuleset:
    """
    Parsed robots.txt.

    Example:
        >>> rules = RobotsRuleset.parse("User-agent: *\\nDisallow: /private")
        >>> rules.is_allowed("/private/x", "MyBot")
        False
    """

    def __init__(self, groups: list[RobotsGroup]) -> None:
        self.groups = groups

    @classmethod
    def parse(cls, text: str) -> "RobotsRuleset":
        """
        Parse robots.txt content.

        Consecutive User-agent lines open one group; the group collects
        rules until the next User-agent line that follows a rule.
        Unknown directives and malformed lines are ignored.
        """
        groups: list[RobotsGroup] = []
        current: RobotsGroup | None = None
        last_was_agent = False

        for raw_line in text.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue

            key, _, value = line.partition(":")
            key = key.strip().lower()
            value = value.strip()

            if key == "user-agent":
                if current is None or not last_was_agent:
                    current = RobotsGroup()
                    groups.append(current)
                current.agents.append(value.lower())
                last_was_agent = True
                continue

            last_was_agent = False
            if current is None:
                continue

            if key in ("allow", "disallow"):
                # "Disallow:" with no path means nothing is disallowed
                if value:
                    current.rules.append(RobotsRule(path=value, allow=key == "allow"))
            elif key == "crawl-delay":
                try:
                    current.crawl_delay = float(value)
                except ValueError:
                    logger.debug(f"Ignoring invalid Crawl-delay: {value!r}")

        return cls(groups)

    def _groups_for(self, user_agent: str) -> list[RobotsGroup]:
        """
        Select the groups that apply to a user agent.

        The longest agent token contained in the user agent wins; groups
        sharing that token are merged. Falls back to '*'.
        """
        ua = user_agent.lower()
        best_len = 0
        best: list[RobotsGroup] = []

        for group in self.groups:
            for agent in group.agents:
                if agent == "*" or not agent or agent not in ua:
                    continue
                if len(agent) > best_len:
                    best_len = len(agent)
                    best = [group]
                elif len(agent) == best_len and group not in best:
                    best.append(group)

        if best:
            return best

        return [g for g in self.groups if "*" in g.agents]

    def is_allowed(self, path: str, user_agent: str) -> bool:
        """
        Decide whether a path is allowed.

        Longest matching rule wins; on a tie Allow wins.

        Args:
            path: URL path, including "?query" when present
            user_agent: Crawler user agent

        Returns:
            True if the path may be fetched
        """
        decision: RobotsRule | None = None

        for group in self._groups_for(user_agent):
            for rule in group.rules:
                if not rule.matches(path):
                    continue
                if (
                    decision is None
                    or rule.specificity > decision.specificity
                    or (rule.specificity == decision.specificity and rule.allow)
                ):
                    decision = rule

        return decision is None or decision.allow

    def crawl_delay(self, user_agent: str) -> float | None:
        """Crawl-delay for the matching group, if any."""
        for group in self._groups_for(user_agent):
            if group.crawl_delay is not None:
                return group.crawl_delay
        return None


class RobotsPolicy:
    """
    Per-origin robots.txt gate.

    Example:
        >>> policy = RobotsPolicy(user_agent="WebHarvest/1.0", rate_limiter=limiter)
        >>> await policy.allowed("https://example.com/page")
        True
    """

    def __init__(
        self,
        user_agent: str = "WebHarvest/1.0",
        respect_robots: bool = True,
        timeout_seconds: float = 5.0,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize robots policy.

        Args:
            user_agent: Default user agent for matching and fetching
            respect_robots: If False, every URL is allowed and nothing is fetched
            timeout_seconds: Timeout for fetching robots.txt
            rate_limiter: Shared outbound limiter
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.user_agent = user_agent
        self.respect_robots = respect_robots
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._rulesets: dict[str, RobotsRuleset | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._warnings: list[str] = []
        self.fetch_count = 0

    async def _fetch(self, origin: str) -> RobotsRuleset | None:
        """Fetch and parse robots.txt for an origin. None means allow all."""
        robots_url = f"{origin}/robots.txt"

        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        self.fetch_count += 1
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = await client.get(robots_url)
        except httpx.HTTPError as e:
            self._record_warning(f"robots.txt fetch failed for {origin}: {e!r}; allowing all")
            return None

        if response.status_code == 200:
            logger.debug(f"Loaded robots.txt from {robots_url}")
            return RobotsRuleset.parse(response.text)

        if 400 <= response.status_code < 500:
            logger.debug(f"No robots.txt at {robots_url} ({response.status_code})")
            return None

        self._record_warning(
            f"robots.txt fetch for {origin} returned {response.status_code}; allowing all"
        )
        return None

    def _record_warning(self, message: str) -> None:
        logger.warning(message)
        self._warnings.append(message)

    async def _ruleset_for(self, url: str) -> RobotsRuleset | None:
        origin = origin_of(url)
        if origin in self._rulesets:
            return self._rulesets[origin]

        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            if origin not in self._rulesets:
                self._rulesets[origin] = await self._fetch(origin)
        return self._rulesets[origin]

    async def allowed(self, url: str, user_agent: str | None = None) -> bool:
        """
        Check whether a URL may be fetched.

        Args:
            url: Absolute URL
            user_agent: Overrides the policy's default user agent

        Returns:
            True if allowed (or robots is disabled, or the fetch failed)
        """
        if not self.respect_robots or not is_http_url(url):
            return True

        ruleset = await self._ruleset_for(url)
        if ruleset is None:
            return True

        parts = urlsplit(url)
        target = parts.path or "/"
        if parts.query:
            target = f"{target}?{parts.query}"

        allowed = ruleset.is_allowed(target, user_agent or self.user_agent)
        if not allowed:
            logger.debug(f"Blocked by robots.txt: {url}")
        return allowed

    async def check_or_raise(self, url: str, user_agent: str | None = None) -> None:
        """
        Raise RobotsDenied if the URL is disallowed.

        Raises:
            RobotsDenied: If URL is blocked by robots.txt
        """
        if not await self.allowed(url, user_agent):
            raise RobotsDenied("URL disallowed by robots.txt", url=url)

    def crawl_delay(self, url: str, user_agent: str | None = None) -> float | None:
        """Crawl-delay for an already-fetched origin (None if unknown)."""
        if not self.respect_robots:
            return None
        ruleset = self._rulesets.get(origin_of(url))
        if ruleset is None:
            return None
        return ruleset.crawl_delay(user_agent or self.user_agent)

    def drain_warnings(self) -> list[str]:
        """Return and clear warnings recorded since the last drain."""
        warnings, self._warnings = self._warnings, []
        return warnings

    def clear_cache(self, url: str | None = None) -> None:
        """Forget cached rulesets (one origin, or all)."""
        if url is None:
            self._rulesets.clear()
        else:
            self._rulesets.pop(origin_of(url), None)
