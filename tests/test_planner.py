"""
Tests for interaction planning.
"""

import pytest

from web_harvest.crawler import (
    Click,
    Interaction,
    InteractionPlanner,
    Navigate,
    PageSignals,
    PlannerInput,
    Scroll,
    ScrollOnlyPlanner,
    Wait,
)


def make_signals(**overrides) -> PageSignals:
    """Signals of a tall page scrolled to the top."""
    values = {
        "dom_signature": "sig-a",
        "dom_size": 5000,
        "scroll_y": 0,
        "viewport_height": 1000,
        "document_height": 5000,
    }
    values.update(overrides)
    return PageSignals(**values)


def make_input(phase: int, signals: PageSignals, dom_grew: bool = False) -> PlannerInput:
    return PlannerInput(
        phase_index=phase,
        last_interaction=None,
        last_tension=None,
        discoveries_so_far=0,
        signals=signals,
        dom_grew=dom_grew,
    )


class TestInteractions:
    """Tests for the interaction variants."""

    def test_describe_and_key(self):
        assert Scroll(800).describe() == "scroll(800)"
        assert Click("#more").key() == ("click", "#more")

    def test_dict_round_trip(self):
        for interaction in (Scroll(800), Click("a.next"), Navigate("https://x.com/f"), Wait(500)):
            assert Interaction.from_dict(interaction.to_dict()) == interaction

    def test_unknown_variant(self):
        with pytest.raises(ValueError):
            Interaction.from_dict({"type": "teleport", "value": 1})


class TestPageSignals:
    """Tests for PageSignals."""

    def test_from_dict(self):
        """Browser snapshots should map onto signals."""
        signals = PageSignals.from_dict({
            "counts": {"links": 3, "images": 2},
            "textLength": 400,
            "domSize": 9000,
            "scrollY": 0,
            "viewportHeight": 900,
            "documentHeight": 3000,
            "pagination": ["a.next"],
            "activators": ["#tab"],
        })

        assert signals.dom_size == 9000
        assert signals.viewport_height == 900
        assert signals.pagination == ["a.next"]
        assert signals.sentinels == []
        assert len(signals.dom_signature) == 16
        assert not signals.at_end

    def test_signature_tracks_scroll_position(self):
        """Scrolling alone should yield a new signature."""
        base = {"counts": {"links": 1}, "textLength": 10, "documentHeight": 3000, "viewportHeight": 1000}

        top = PageSignals.from_dict({**base, "scrollY": 0})
        lower = PageSignals.from_dict({**base, "scrollY": 1000})
        again = PageSignals.from_dict({**base, "scrollY": 0})

        assert top.dom_signature != lower.dom_signature
        assert top.dom_signature == again.dom_signature

    def test_at_end(self):
        assert make_signals(scroll_y=4000).at_end
        assert make_signals(document_height=1000).at_end


class TestInteractionPlanner:
    """Tests for the default planner."""

    @pytest.fixture
    def planner(self) -> InteractionPlanner:
        return InteractionPlanner(wait_ms=500)

    def test_first_phase_scrolls_one_viewport(self, planner: InteractionPlanner):
        assert planner.next(make_input(0, make_signals())) == Scroll(1000)

    def test_fixed_scroll_amount(self):
        planner = InteractionPlanner(scroll_amount=300)

        assert planner.next(make_input(0, make_signals())) == Scroll(300)

    def test_click_priority_order(self, planner: InteractionPlanner):
        """Pagination comes before sentinels, sentinels before activators."""
        signals = make_signals(
            pagination=["a.next"],
            sentinels=["#load-more"],
            activators=["#tab-2"],
        )

        planned = [planner.next(make_input(i, signals)) for i in range(1, 5)]

        assert planned == [Click("a.next"), Click("#load-more"), Click("#tab-2"), Wait(500)]

    def test_no_repeat_on_same_signature(self, planner: InteractionPlanner):
        """An interaction is planned once per DOM signature, again on a new one."""
        first = planner.next(make_input(1, make_signals(pagination=["a.next"])))
        second = planner.next(make_input(2, make_signals(pagination=["a.next"])))
        changed = planner.next(make_input(3, make_signals(dom_signature="sig-b", pagination=["a.next"])))

        assert first == Click("a.next")
        assert second == Wait(500)
        assert changed == Click("a.next")

    def test_scroll_when_dom_grew(self, planner: InteractionPlanner):
        """Growth away from the page end should lead to another scroll."""
        assert planner.next(make_input(1, make_signals(), dom_grew=True)) == Scroll(1000)

    def test_no_scroll_at_end(self, planner: InteractionPlanner):
        signals = make_signals(scroll_y=4000)

        assert planner.next(make_input(1, signals, dom_grew=True)) == Wait(500)

    def test_no_scroll_without_growth(self, planner: InteractionPlanner):
        assert planner.next(make_input(1, make_signals())) == Wait(500)

    def test_iframe_visited_once(self, planner: InteractionPlanner):
        """Each iframe is navigated at most once per crawl."""
        frame = "https://example.com/frame"

        first = planner.next(make_input(1, make_signals(iframes=[frame])))
        later = planner.next(make_input(2, make_signals(dom_signature="sig-b", iframes=[frame])))

        assert first == Navigate(frame)
        assert later == Wait(500)

    def test_wait_can_repeat(self, planner: InteractionPlanner):
        """Waiting is always available, even on an unchanged DOM."""
        signals = make_signals()

        assert planner.next(make_input(1, signals)) == Wait(500)
        assert planner.next(make_input(2, signals)) == Wait(500)

    def test_reset(self, planner: InteractionPlanner):
        signals = make_signals(pagination=["a.next"])
        planner.next(make_input(1, signals))

        planner.reset()

        assert planner.next(make_input(1, signals)) == Click("a.next")


class TestScrollOnlyPlanner:
    """Tests for the media harvesting planner."""

    def test_scrolls_until_signature_repeats(self):
        planner = ScrollOnlyPlanner(step=800, wait_ms=0)

        assert planner.next(make_input(0, make_signals())) == Scroll(800)
        assert planner.next(make_input(1, make_signals())) == Wait(0)
        assert planner.next(make_input(2, make_signals(dom_signature="sig-b"))) == Scroll(800)

    def test_never_clicks(self):
        planner = ScrollOnlyPlanner()
        signals = make_signals(pagination=["a.next"], activators=["#tab"])

        assert isinstance(planner.next(make_input(1, signals)), Scroll)
