"""
Tests for the event emitter.
"""

from web_harvest.core.events import EventEmitter


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_emit_in_subscription_order(self):
        """Handlers should run in the order they subscribed."""
        emitter = EventEmitter()
        calls = []
        emitter.on("phaseComplete", lambda e: calls.append(("a", e["phase"])))
        emitter.on("phaseComplete", lambda e: calls.append(("b", e["phase"])))

        delivered = emitter.emit("phaseComplete", {"phase": 1})

        assert delivered == 2
        assert calls == [("a", 1), ("b", 1)]

    def test_unsubscribe(self):
        """The returned function should remove the handler, even twice."""
        emitter = EventEmitter()
        calls = []
        off = emitter.on("discovery", calls.append)

        off()
        off()
        emitter.emit("discovery", {"url": "https://x.com"})

        assert calls == []
        assert emitter.listener_count("discovery") == 0

    def test_failing_handler_isolated(self):
        """A raising handler should not stop later handlers or reach the emitter."""
        emitter = EventEmitter()
        calls = []

        def broken(_payload):
            raise RuntimeError("boom")

        emitter.on("crawlEnd", broken)
        emitter.on("crawlEnd", calls.append)

        delivered = emitter.emit("crawlEnd", {"ok": True})

        assert delivered == 1
        assert calls == [{"ok": True}]

    def test_once(self):
        """once() handlers should fire a single time."""
        emitter = EventEmitter()
        calls = []
        emitter.once("crawlStart", calls.append)

        emitter.emit("crawlStart", {"n": 1})
        emitter.emit("crawlStart", {"n": 2})

        assert calls == [{"n": 1}]

    def test_emit_without_payload(self):
        """Missing payloads should be delivered as empty dicts."""
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", calls.append)

        emitter.emit("tick")

        assert calls == [{}]

    def test_remove_all_listeners(self):
        emitter = EventEmitter()
        emitter.on("a", lambda e: None)
        emitter.on("b", lambda e: None)

        emitter.remove_all_listeners("a")
        assert emitter.listener_count("a") == 0
        assert emitter.listener_count("b") == 1

        emitter.remove_all_listeners()
        assert emitter.listener_count("b") == 0
