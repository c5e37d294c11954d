"""
Browser event observer.

Attaches to a page and turns driver callbacks into three typed feeds:
network (requests and responses), dom (nodes added by a MutationObserver
installed in the page) and console (errors and warnings). Each feed keeps
a bounded buffer; when it fills, the oldest events are dropped and
counted. Subscribers receive events as they arrive.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from playwright.async_api import Error as PlaywrightError

from web_harvest.browser.actions import MUTATION_BINDING, MUTATION_OBSERVER_JS
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)


class Feed(str, Enum):
    NETWORK = "network"
    DOM = "dom"
    CONSOLE = "console"


@dataclass
class NetworkEvent:
    """
    One network observation.

    ``phase`` is "request", "response", "finished" or "failed"; status and
    content_type are only known for responses.
    """

    phase: str
    url: str
    method: str = "GET"
    resource_type: str = "other"
    status: int | None = None
    content_type: str | None = None
    failure: str | None = None
    timestamp: float = field(default_factory=time.monotonic)


@dataclass
class DomEvent:
    """A media/link node added to the DOM, or a "settled" marker."""

    kind: str
    tag: str | None = None
    url: str | None = None
    size: int = 0
    timestamp: float = field(default_factory=time.monotonic)


@dataclass
class ConsoleEvent:
    level: str
    text: str
    timestamp: float = field(default_factory=time.monotonic)


Event = NetworkEvent | DomEvent | ConsoleEvent
Handler = Callable[[Any], None]
Predicate = Callable[[Any], bool]

# Added nodes that are reported as DomEvents; other nodes only count as activity
_OBSERVED_TAGS = frozenset({"a", "img", "source", "video", "audio", "iframe", "track"})


@dataclass
class _Subscription:
    feed: Feed
    handler: Handler
    predicate: Predicate | None = None


class Observer:
    """
    Event hub for one page.

    Example:
        >>> observer = Observer(buffer_size=1000)
        >>> await observer.attach(page)
        >>> unsubscribe = observer.subscribe(Feed.NETWORK, print,
        ...     predicate=lambda e: e.phase == "response")
        >>> settled = await observer.wait_for_settled(quiet_ms=250, timeout_ms=10000)
    """

    POLL_INTERVAL = 0.05

    def __init__(self, buffer_size: int = 10_000) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.buffer_size = buffer_size
        self._buffers: dict[Feed, deque] = {feed: deque() for feed in Feed}
        self._dropped: dict[Feed, int] = {feed: 0 for feed in Feed}
        self._dropped_unreported = 0
        self._subscriptions: list[_Subscription] = []
        self._pending: set[int] = set()
        self._last_activity = time.monotonic()
        self._page: Any = None
        self._listeners: list[tuple[str, Callable]] = []
        self.stats: dict[str, int] = {
            "requests": 0,
            "responses": 0,
            "failed_requests": 0,
            "mutations": 0,
            "console_messages": 0,
        }

    # -------------------------------------------------------------------------
    # Attachment
    # -------------------------------------------------------------------------

    @property
    def attached(self) -> bool:
        return self._page is not None

    async def attach(self, page: Any) -> None:
        """
        Register driver callbacks on a page and install the DOM observer.

        The DOM observer takes effect from the next document load, so attach
        before the first navigation.
        """
        if self._page is not None:
            raise RuntimeError("Observer is already attached")

        self._page = page
        self._listeners = [
            ("request", self._on_request),
            ("response", self._on_response),
            ("requestfinished", self._on_request_finished),
            ("requestfailed", self._on_request_failed),
            ("console", self._on_console),
            ("close", self._on_close),
        ]
        for event, handler in self._listeners:
            page.on(event, handler)

        try:
            await page.expose_function(MUTATION_BINDING, self._on_mutations)
            await page.add_init_script(MUTATION_OBSERVER_JS)
        except PlaywrightError as e:
            logger.warning(f"DOM observer unavailable, dom feed disabled: {e}")

    def detach(self) -> None:
        """Remove driver callbacks and subscribers. Safe to call repeatedly."""
        page, self._page = self._page, None
        if page is not None:
            for event, handler in self._listeners:
                try:
                    page.remove_listener(event, handler)
                except (KeyError, ValueError):
                    pass
        self._listeners = []
        self._subscriptions.clear()
        self._pending.clear()

    # -------------------------------------------------------------------------
    # Feeds
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        feed: Feed | str,
        handler: Handler,
        predicate: Predicate | None = None,
    ) -> Callable[[], None]:
        """
        Receive events from a feed as they arrive.

        Returns:
            Function that cancels the subscription
        """
        subscription = _Subscription(Feed(feed), handler, predicate)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def publish(self, feed: Feed, event: Event) -> None:
        """Buffer an event and deliver it to matching subscribers."""
        buffer = self._buffers[feed]
        if len(buffer) >= self.buffer_size:
            buffer.popleft()
            if self._dropped[feed] == 0:
                logger.warning(f"Observer {feed.value} buffer full, dropping oldest events")
            self._dropped[feed] += 1
            self._dropped_unreported += 1
        buffer.append(event)

        for subscription in list(self._subscriptions):
            if subscription.feed != feed:
                continue
            if subscription.predicate is not None and not subscription.predicate(event):
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.warning(f"Observer {feed.value} subscriber failed: {e!r}")

    def drain(self, feed: Feed | str) -> list[Event]:
        """Return and clear the buffered events of a feed."""
        buffer = self._buffers[Feed(feed)]
        events = list(buffer)
        buffer.clear()
        return events

    def take_dropped(self) -> int:
        """Events dropped (all feeds) since the previous call."""
        dropped, self._dropped_unreported = self._dropped_unreported, 0
        return dropped

    @property
    def dropped_events(self) -> dict[str, int]:
        return {feed.value: count for feed, count in self._dropped.items()}

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Settling
    # -------------------------------------------------------------------------

    def mark_activity(self) -> None:
        self._last_activity = time.monotonic()

    async def wait_for_settled(self, quiet_ms: int = 250, timeout_ms: int = 10_000) -> bool:
        """
        Wait until no request is in flight and nothing happened for quiet_ms.

        Returns:
            True if the page settled, False if timeout_ms elapsed first
        """
        quiet = quiet_ms / 1000.0
        deadline = time.monotonic() + timeout_ms / 1000.0

        while True:
            now = time.monotonic()
            if not self._pending and now - self._last_activity >= quiet:
                self.publish(Feed.DOM, DomEvent(kind="settled"))
                return True
            if now >= deadline:
                logger.debug(f"Page did not settle within {timeout_ms}ms "
                             f"({len(self._pending)} requests pending)")
                return False
            await asyncio.sleep(min(self.POLL_INTERVAL, max(0.0, deadline - now)))

    # -------------------------------------------------------------------------
    # Driver callbacks
    # -------------------------------------------------------------------------

    def _on_request(self, request: Any) -> None:
        self.stats["requests"] += 1
        self._pending.add(id(request))
        self.mark_activity()
        self.publish(Feed.NETWORK, NetworkEvent(
            phase="request",
            url=request.url,
            method=request.method,
            resource_type=request.resource_type,
        ))

    def _on_response(self, response: Any) -> None:
        self.stats["responses"] += 1
        self.mark_activity()
        request = response.request
        headers = response.headers or {}
        self.publish(Feed.NETWORK, NetworkEvent(
            phase="response",
            url=response.url,
            method=request.method,
            resource_type=request.resource_type,
            status=response.status,
            content_type=headers.get("content-type"),
        ))

    def _on_request_finished(self, request: Any) -> None:
        self._pending.discard(id(request))
        self.mark_activity()

    def _on_request_failed(self, request: Any) -> None:
        self.stats["failed_requests"] += 1
        self._pending.discard(id(request))
        self.mark_activity()
        self.publish(Feed.NETWORK, NetworkEvent(
            phase="failed",
            url=request.url,
            method=request.method,
            resource_type=request.resource_type,
            failure=request.failure,
        ))

    def _on_console(self, message: Any) -> None:
        level = message.type
        if level not in ("error", "warning"):
            return
        self.stats["console_messages"] += 1
        self.publish(Feed.CONSOLE, ConsoleEvent(level=level, text=message.text))

    def _on_mutations(self, batch: list[dict[str, Any]]) -> None:
        self.mark_activity()
        for entry in batch or []:
            self.stats["mutations"] += 1
            tag = (entry.get("tag") or "").lower()
            if tag in _OBSERVED_TAGS:
                self.publish(Feed.DOM, DomEvent(
                    kind="added",
                    tag=tag,
                    url=entry.get("url"),
                    size=int(entry.get("size") or 0),
                ))

    def _on_close(self, _page: Any = None) -> None:
        logger.debug("Page closed, detaching observer")
        self.detach()
