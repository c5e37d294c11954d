"""
Tension scoring.

Tension is a scalar in [0, 1] summarizing how productive the last phase
was. A run of low-tension phases is stasis, which ends the crawl.
"""

from collections import deque
from dataclasses import dataclass


@dataclass
class PhaseObservation:
    """
    Raw yield of one phase, before normalization.

    Attributes:
        new_discoveries: Discoveries added to the log this phase
        new_network_hosts: Hosts not seen in any earlier phase
        dom_growth_bytes: Growth of the serialized DOM (never negative)
        duplicated_discoveries: Already-known URLs that resurfaced
    """

    new_discoveries: int = 0
    new_network_hosts: int = 0
    dom_growth_bytes: int = 0
    duplicated_discoveries: int = 0


@dataclass(frozen=True)
class TensionWeights:
    """Weights of the tension components. Positive weights sum to 1."""

    discoveries: float = 0.6
    hosts: float = 0.2
    dom_growth: float = 0.2
    duplicates: float = 0.3

    def __post_init__(self) -> None:
        positive = self.discoveries + self.hosts + self.dom_growth
        if abs(positive - 1.0) > 1e-6:
            raise ValueError(f"Positive tension weights must sum to 1, got {positive}")
        if min(self.discoveries, self.hosts, self.dom_growth, self.duplicates) < 0:
            raise ValueError("Tension weights must be non-negative")


class TensionMeter:
    """
    Turns a PhaseObservation into a tension score.

    Each component is normalized against the running maximum seen so far
    in this crawl, so the first productive phase scores high and later
    phases are measured against the best one.

    Example:
        >>> meter = TensionMeter()
        >>> meter.score(PhaseObservation(new_discoveries=10, new_network_hosts=1))
        0.8
        >>> meter.score(PhaseObservation())
        0.0
    """

    # A phase that found nothing new can never look productive
    ZERO_YIELD_CAP = 0.05

    def __init__(self, weights: TensionWeights | None = None) -> None:
        self.weights = weights or TensionWeights()
        self._maxima = {"discoveries": 0, "hosts": 0, "dom_growth": 0, "duplicates": 0}

    def _normalize(self, component: str, value: int) -> float:
        value = max(0, value)
        if value > self._maxima[component]:
            self._maxima[component] = value
        peak = self._maxima[component]
        return value / peak if peak else 0.0

    def score(self, observation: PhaseObservation) -> float:
        """
        Score one phase.

        Args:
            observation: Raw phase yield

        Returns:
            Tension clamped to [0, 1]
        """
        w = self.weights
        tension = (
            w.discoveries * self._normalize("discoveries", observation.new_discoveries)
            + w.hosts * self._normalize("hosts", observation.new_network_hosts)
            + w.dom_growth * self._normalize("dom_growth", observation.dom_growth_bytes)
            - w.duplicates * self._normalize("duplicates", observation.duplicated_discoveries)
        )
        tension = min(1.0, max(0.0, tension))

        if observation.new_discoveries <= 0:
            tension = min(tension, self.ZERO_YIELD_CAP)

        return round(tension, 6)

    def reset(self) -> None:
        for key in self._maxima:
            self._maxima[key] = 0


class TensionState:
    """
    Sliding window of recent tensions plus the full history.

    Stasis holds when the window is full and every value in it is at or
    below the threshold.
    """

    def __init__(self, window: int = 3) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window
        self._recent: deque[float] = deque(maxlen=window)
        self.history: list[float] = []

    def push(self, tension: float) -> None:
        self._recent.append(tension)
        self.history.append(tension)

    def is_stasis(self, threshold: float) -> bool:
        return len(self._recent) == self.window and all(t <= threshold for t in self._recent)

    @property
    def recent(self) -> list[float]:
        return list(self._recent)

    @property
    def average(self) -> float:
        if not self.history:
            return 0.0
        return sum(self.history) / len(self.history)
