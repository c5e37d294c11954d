"""
Synchronous publish/subscribe used by crawlers and extractors.

Handlers run in subscription order on the emitting task. A failing
handler is logged and skipped; it never reaches the emitter.
"""

from collections import defaultdict
from typing import Any, Callable

from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class EventEmitter:
    """
    Named-event dispatcher with unsubscribe handles.

    Example:
        >>> emitter = EventEmitter()
        >>> off = emitter.on("phaseComplete", lambda e: print(e["tension"]))
        >>> emitter.emit("phaseComplete", {"tension": 0.4})
        0.4
        >>> off()
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Unsubscribe:
        """
        Subscribe to an event.

        Args:
            event: Event name
            handler: Callable receiving the event payload

        Returns:
            Callable that removes this subscription (safe to call twice)
        """
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def once(self, event: str, handler: Handler) -> Unsubscribe:
        """Subscribe a handler that is removed after its first call."""
        unsubscribe: Unsubscribe

        def wrapper(payload: dict[str, Any]) -> None:
            unsubscribe()
            handler(payload)

        unsubscribe = self.on(event, wrapper)
        return unsubscribe

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """
        Deliver an event to its handlers.

        Args:
            event: Event name
            payload: Event payload (defaults to an empty dict)

        Returns:
            Number of handlers that completed without raising
        """
        payload = payload if payload is not None else {}
        delivered = 0

        # Copy so handlers may unsubscribe while we iterate
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Listener for '{event}' raised: {e!r}")

        return delivered

    def listener_count(self, event: str) -> int:
        """Number of handlers currently subscribed to an event."""
        return len(self._handlers.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Drop every handler, or only those of one event."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event, None)
