"""
Interaction planning.

The planner looks at the page's current signals and picks the next
interaction, preferring what is most likely to reveal new content:

1. Phase 0 scrolls one viewport.
2. Visible, not yet activated controls are clicked, in order:
   pagination, infinite-scroll sentinels ("load more"), other in-page
   activators (hash or javascript links, buttons, collapsed toggles).
3. If the DOM grew during the last phase and the page is not at its
   end, scroll again.
4. Navigate into an iframe not visited yet.
5. Otherwise wait.

No interaction is planned twice against the same DOM signature. Waiting
is exempt so the planner always has a move.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Protocol

from web_harvest.crawler.models import Click, Interaction, Navigate, Scroll, Wait
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PageSignals:
    """
    What the page looks like right now, as reported by the browser.

    ``dom_signature`` hashes the element counts, text length, document
    height and scroll position, so scrolling to a new position yields a
    new signature even when no nodes were added.
    """

    dom_signature: str = ""
    dom_size: int = 0
    scroll_y: int = 0
    viewport_height: int = 0
    document_height: int = 0
    pagination: list[str] = field(default_factory=list)
    sentinels: list[str] = field(default_factory=list)
    activators: list[str] = field(default_factory=list)
    iframes: list[str] = field(default_factory=list)

    @property
    def at_end(self) -> bool:
        """True when the viewport already shows the bottom of the document."""
        return self.scroll_y + self.viewport_height >= self.document_height - 2

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageSignals":
        """Build signals from the browser-side snapshot (see actions.PAGE_SIGNALS_JS)."""
        counts = data.get("counts") or {}
        scroll_y = int(data.get("scrollY") or 0)
        document_height = int(data.get("documentHeight") or 0)
        text_length = int(data.get("textLength") or 0)

        fingerprint = "|".join(
            [f"{k}={counts[k]}" for k in sorted(counts)]
            + [f"text={text_length}", f"height={document_height}", f"y={scroll_y}"]
        )

        return cls(
            dom_signature=hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:16],
            dom_size=int(data.get("domSize") or 0),
            scroll_y=scroll_y,
            viewport_height=int(data.get("viewportHeight") or 0),
            document_height=document_height,
            pagination=list(data.get("pagination") or []),
            sentinels=list(data.get("sentinels") or []),
            activators=list(data.get("activators") or []),
            iframes=list(data.get("iframes") or []),
        )


@dataclass
class PlannerInput:
    """Everything the planner may base its decision on."""

    phase_index: int
    last_interaction: Interaction | None
    last_tension: float | None
    discoveries_so_far: int
    signals: PageSignals
    dom_grew: bool = False


class Planner(Protocol):
    def next(self, ctx: PlannerInput) -> Interaction: ...


class InteractionPlanner:
    """
    Default planner for the adaptive crawler.

    Example:
        >>> planner = InteractionPlanner()
        >>> planner.next(PlannerInput(0, None, None, 0, PageSignals(viewport_height=900)))
        Scroll(amount=900)
    """

    DEFAULT_SCROLL = 800

    def __init__(self, wait_ms: int = 500, scroll_amount: int | None = None) -> None:
        """
        Initialize planner.

        Args:
            wait_ms: Duration of the fallback Wait interaction
            scroll_amount: Scroll distance; defaults to the viewport height
        """
        self.wait_ms = wait_ms
        self.scroll_amount = scroll_amount
        self._used: dict[str, set[tuple]] = {}
        self._visited_frames: set[str] = set()

    def _scroll(self, signals: PageSignals) -> Scroll:
        return Scroll(self.scroll_amount or signals.viewport_height or self.DEFAULT_SCROLL)

    def _choose(self, ctx: PlannerInput, used: set[tuple]) -> Interaction:
        signals = ctx.signals

        def fresh(interaction: Interaction) -> bool:
            return interaction.key() not in used

        scroll = self._scroll(signals)
        if ctx.phase_index == 0 and fresh(scroll):
            return scroll

        for selector in [*signals.pagination, *signals.sentinels, *signals.activators]:
            click = Click(selector)
            if fresh(click):
                return click

        if ctx.dom_grew and not signals.at_end and fresh(scroll):
            return scroll

        for src in signals.iframes:
            if src in self._visited_frames:
                continue
            navigate = Navigate(src)
            if fresh(navigate):
                return navigate

        return Wait(self.wait_ms)

    def next(self, ctx: PlannerInput) -> Interaction:
        """
        Pick the next interaction.

        Args:
            ctx: Current phase index, last interaction and page signals

        Returns:
            The interaction to execute this phase
        """
        used = self._used.setdefault(ctx.signals.dom_signature, set())
        interaction = self._choose(ctx, used)

        if not isinstance(interaction, Wait):
            used.add(interaction.key())
        if isinstance(interaction, Navigate):
            self._visited_frames.add(interaction.url)

        logger.debug(f"Phase {ctx.phase_index}: planned {interaction.describe()}")
        return interaction

    def reset(self) -> None:
        self._used.clear()
        self._visited_frames.clear()


class ScrollOnlyPlanner:
    """
    Planner for media harvesting: scroll by a fixed step, never click.

    When scrolling no longer changes the DOM signature (bottom reached and
    nothing lazily appended) it waits instead.
    """

    def __init__(self, step: int = 800, wait_ms: int = 1000) -> None:
        self.step = step
        self.wait_ms = wait_ms
        self._used: set[str] = set()

    def next(self, ctx: PlannerInput) -> Interaction:
        signature = ctx.signals.dom_signature
        if signature in self._used:
            return Wait(self.wait_ms)
        self._used.add(signature)
        return Scroll(self.step)

    def reset(self) -> None:
        self._used.clear()
