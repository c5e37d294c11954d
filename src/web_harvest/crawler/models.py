"""
Data model for the adaptive crawler.

Interactions are small frozen dataclasses (one class per variant).
Discoveries, phases and the extraction log serialize to plain dicts
with a fixed key order so reports are reproducible.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Iterator

from web_harvest.core.exceptions import HarvestError
from web_harvest.utils.urls import canonicalize_url


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Interactions
# =============================================================================


@dataclass(frozen=True)
class Interaction:
    """Base class of the interaction variants."""

    kind: ClassVar[str] = "interaction"

    @property
    def argument(self) -> Any:
        """The variant's single parameter."""
        raise NotImplementedError

    def key(self) -> tuple[str, Any]:
        """Identity used to avoid repeating an interaction on one DOM."""
        return (self.kind, self.argument)

    def describe(self) -> str:
        return f"{self.kind}({self.argument})"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "value": self.argument}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Interaction":
        variants = {cls.kind: cls for cls in (Scroll, Click, Hover, Navigate, Wait)}
        try:
            return variants[data["type"]](data["value"])
        except KeyError as e:
            raise ValueError(f"Unknown interaction: {data!r}") from e


@dataclass(frozen=True)
class Scroll(Interaction):
    """Scroll the window down by ``amount`` pixels."""

    amount: int
    kind: ClassVar[str] = "scroll"

    @property
    def argument(self) -> int:
        return self.amount


@dataclass(frozen=True)
class Click(Interaction):
    """Click the first element matching ``selector``."""

    selector: str
    kind: ClassVar[str] = "click"

    @property
    def argument(self) -> str:
        return self.selector


@dataclass(frozen=True)
class Hover(Interaction):
    """Move the pointer over the first element matching ``selector``."""

    selector: str
    kind: ClassVar[str] = "hover"

    @property
    def argument(self) -> str:
        return self.selector


@dataclass(frozen=True)
class Navigate(Interaction):
    """Load ``url`` in the current page."""

    url: str
    kind: ClassVar[str] = "navigate"

    @property
    def argument(self) -> str:
        return self.url


@dataclass(frozen=True)
class Wait(Interaction):
    """Idle for ``ms`` milliseconds to let late requests land."""

    ms: int
    kind: ClassVar[str] = "wait"

    @property
    def argument(self) -> int:
        return self.ms


# =============================================================================
# Discoveries
# =============================================================================


class DiscoveryKind(str, Enum):
    """What a discovered URL points at."""

    LINK = "link"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    REQUEST = "request"


@dataclass
class Discovery:
    """
    A canonicalized URL first observed during a phase.

    Attributes:
        url: Canonical URL (dedup key)
        kind: Discovery kind
        source: Index of the phase that first observed it
        metadata: Free-form details (text, title, alt, content_type, ...)
    """

    url: str
    kind: DiscoveryKind
    source: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with fixed key order and sorted metadata keys."""
        return {
            "url": self.url,
            "kind": self.kind.value,
            "source": self.source,
            "metadata": {k: self.metadata[k] for k in sorted(self.metadata)},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Discovery":
        return cls(
            url=data["url"],
            kind=DiscoveryKind(data["kind"]),
            source=int(data["source"]),
            metadata=dict(data.get("metadata") or {}),
        )


# =============================================================================
# Phases
# =============================================================================


@dataclass
class Phase:
    """
    One iteration of the crawl loop.

    Invariants: ended_at >= started_at, 0 <= tension <= 1,
    discovered_delta >= 0.
    """

    index: int
    interaction: Interaction | None
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None
    tension: float = 0.0
    discovered_delta: int = 0
    duplicates: int = 0
    new_hosts: int = 0
    dom_growth_bytes: int = 0
    dropped_events: int = 0
    settled: bool = False
    skipped: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)

    def record_error(self, error: BaseException) -> dict[str, Any]:
        """Append an error entry and return it."""
        entry = {
            "type": type(error).__name__,
            "message": getattr(error, "message", None) or str(error),
        }
        details = getattr(error, "details", None)
        if details:
            entry["details"] = {k: str(v) for k, v in details.items()}
        self.errors.append(entry)
        return entry

    def finish(self) -> None:
        """Stamp ended_at, never earlier than started_at."""
        now = _utcnow()
        self.ended_at = now if now >= self.started_at else self.started_at

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "interaction": self.interaction.to_dict() if self.interaction else None,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "tension": self.tension,
            "discovered_delta": self.discovered_delta,
            "duplicates": self.duplicates,
            "new_hosts": self.new_hosts,
            "dom_growth_bytes": self.dom_growth_bytes,
            "dropped_events": self.dropped_events,
            "settled": self.settled,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


# =============================================================================
# Extraction log
# =============================================================================


class ExtractionLog:
    """
    Ordered, canonical-URL-deduplicated discoveries plus phase history.

    Append-only while a run is in progress; freeze() makes it read-only.

    Example:
        >>> log = ExtractionLog()
        >>> log.add(Discovery("https://a.com/#x", DiscoveryKind.LINK, 0))
        True
        >>> log.add(Discovery("HTTPS://A.com/", DiscoveryKind.LINK, 1))
        False
    """

    def __init__(self) -> None:
        self._discoveries: list[Discovery] = []
        self._by_url: dict[str, Discovery] = {}
        self.phases: list[Phase] = []
        self.warnings: list[str] = []
        self.errors: list[dict[str, Any]] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self) -> None:
        if self._frozen:
            raise HarvestError("Extraction log is frozen")

    def add(self, discovery: Discovery) -> bool:
        """
        Add a discovery unless its canonical URL is already known.

        Returns:
            True if the discovery was new
        """
        self._check_writable()
        canonical = canonicalize_url(discovery.url)
        if canonical in self._by_url:
            return False

        if canonical != discovery.url:
            discovery = replace(discovery, url=canonical)

        self._by_url[canonical] = discovery
        self._discoveries.append(discovery)
        return True

    def add_phase(self, phase: Phase) -> None:
        self._check_writable()
        self.phases.append(phase)

    def add_warning(self, message: str) -> None:
        self._check_writable()
        self.warnings.append(message)

    def add_error(self, entry: dict[str, Any]) -> None:
        self._check_writable()
        self.errors.append(entry)

    def freeze(self) -> None:
        self._frozen = True

    def contains(self, url: str) -> bool:
        return canonicalize_url(url) in self._by_url

    def get(self, url: str) -> Discovery | None:
        return self._by_url.get(canonicalize_url(url))

    @property
    def discoveries(self) -> tuple[Discovery, ...]:
        return tuple(self._discoveries)

    def by_kind(self, kind: DiscoveryKind) -> list[Discovery]:
        return [d for d in self._discoveries if d.kind == kind]

    def count_by_kind(self) -> dict[str, int]:
        counts = {kind.value: 0 for kind in DiscoveryKind}
        for d in self._discoveries:
            counts[d.kind.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._discoveries)

    def __iter__(self) -> Iterator[Discovery]:
        return iter(list(self._discoveries))

    def to_dict(self) -> dict[str, Any]:
        return {
            "discoveries": [d.to_dict() for d in self._discoveries],
            "phases": [p.to_dict() for p in self.phases],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }

    @classmethod
    def from_discoveries(cls, discoveries: list[Discovery]) -> "ExtractionLog":
        """Build a log from discoveries (used by tests and re-synthesis)."""
        log = cls()
        for discovery in discoveries:
            log.add(discovery)
        return log


# =============================================================================
# Crawl state and report
# =============================================================================


class CrawlState(str, Enum):
    """Crawler lifecycle states."""

    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    STASIS = "stasis"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class StopReason(str, Enum):
    """Why a crawl left the Running state."""

    STASIS = "stasis"
    MAX_PHASES = "max_phases"
    CANCELLED = "cancelled"
    ROBOTS = "robots"
    FATAL = "fatal"


@dataclass
class Report:
    """
    Summary of a crawl.

    ``phases`` is the number of phases run; the phase records themselves
    live in ``extraction_log.phases``.
    """

    url: str
    duration: float
    total_discoveries: int
    phases: int
    avg_tension: float
    extraction_log: ExtractionLog
    started_at: datetime
    ended_at: datetime
    stopped_reason: StopReason | None = None
    cancelled: bool = False
    browser_stats: dict[str, Any] = field(default_factory=dict)

    @property
    def warnings(self) -> list[str]:
        return self.extraction_log.warnings

    @property
    def errors(self) -> list[dict[str, Any]]:
        return self.extraction_log.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "duration": self.duration,
            "total_discoveries": self.total_discoveries,
            "phases": self.phases,
            "avg_tension": self.avg_tension,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "stopped_reason": self.stopped_reason.value if self.stopped_reason else None,
            "cancelled": self.cancelled,
            "discoveries_by_kind": self.extraction_log.count_by_kind(),
            "browser_stats": dict(self.browser_stats),
            "extraction_log": self.extraction_log.to_dict(),
        }
