"""
Rate limiting for outbound requests.

One sliding-window limiter is shared by browser navigations, robots.txt
fetches and media downloads, so the configured budget holds for the
whole pipeline rather than per component.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass

from web_harvest.config.settings import RateLimitSettings
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitStatus:
    """
    Snapshot of limiter state.

    Attributes:
        active_requests: Grants inside the current window
        available_slots: Grants that would complete immediately
        is_limited: True when the next acquire() would wait
        waiting: Callers currently queued in acquire()
        total_acquired: Grants since creation or last reset()
    """

    active_requests: int
    available_slots: int
    is_limited: bool
    waiting: int
    total_acquired: int

    def to_dict(self) -> dict:
        return {
            "active_requests": self.active_requests,
            "available_slots": self.available_slots,
            "is_limited": self.is_limited,
            "waiting": self.waiting,
            "total_acquired": self.total_acquired,
        }


class RateLimiter:
    """
    Sliding-window rate limiter.

    At most ``max_requests`` acquisitions complete within any window of
    ``interval_ms``. Waiters are served FIFO (asyncio.Lock hands the lock
    to waiters in arrival order). A waiter cancelled while queued or
    sleeping leaves without consuming a slot, since a slot is recorded
    only at the moment it is granted.

    Example:
        >>> limiter = RateLimiter(max_requests=5, interval_ms=1000)
        >>> await limiter.acquire()
        >>> # issue one request...
    """

    # Never sleep for less than this; avoids busy loops on tiny remainders
    MIN_WAIT_MS = 100

    def __init__(
        self,
        max_requests: int = 5,
        interval_ms: int = 1000,
        min_wait_ms: int | None = None,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests: Acquisitions allowed per window
            interval_ms: Window length in milliseconds
            min_wait_ms: Sleep granularity (defaults to MIN_WAIT_MS, capped at interval)
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")

        self.max_requests = max_requests
        self.interval = interval_ms / 1000.0
        min_wait = self.MIN_WAIT_MS if min_wait_ms is None else min_wait_ms
        self.min_wait = min(min_wait, interval_ms) / 1000.0

        self._grants: deque[float] = deque()
        self._lock = asyncio.Lock()
        self._waiting = 0
        self._total_acquired = 0

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "RateLimiter":
        """Build a limiter from the browser.rate_limit config section."""
        return cls(
            max_requests=settings.max_requests,
            interval_ms=settings.interval_ms,
        )

    def _prune(self, now: float) -> None:
        """Forget grants that have left the window."""
        while self._grants and now - self._grants[0] >= self.interval:
            self._grants.popleft()

    async def acquire(self) -> float:
        """
        Wait until one outbound request is permitted.

        Returns:
            Time waited in seconds
        """
        start = time.monotonic()
        self._waiting += 1

        try:
            async with self._lock:
                while True:
                    now = time.monotonic()
                    self._prune(now)

                    if len(self._grants) < self.max_requests:
                        self._grants.append(now)
                        self._total_acquired += 1
                        waited = now - start
                        if waited > 0.5:
                            logger.debug(f"Rate limiter delayed request by {waited:.2f}s")
                        return waited

                    wait_time = self._grants[0] + self.interval - now
                    await asyncio.sleep(max(wait_time, self.min_wait))
        finally:
            self._waiting -= 1

    def time_until_available(self) -> float:
        """Seconds until a slot frees up (0.0 if one is free now)."""
        now = time.monotonic()
        self._prune(now)
        if len(self._grants) < self.max_requests:
            return 0.0
        return max(0.0, self._grants[0] + self.interval - now)

    def get_status(self) -> RateLimitStatus:
        """Current limiter state."""
        self._prune(time.monotonic())
        active = len(self._grants)
        return RateLimitStatus(
            active_requests=active,
            available_slots=max(0, self.max_requests - active),
            is_limited=active >= self.max_requests,
            waiting=self._waiting,
            total_acquired=self._total_acquired,
        )

    def reset(self) -> None:
        """Forget all recorded grants. Queued waiters are not affected."""
        self._grants.clear()
        self._total_acquired = 0

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None
