"""
Adaptive crawler.

Drives a single page through a sequence of phases. Each phase plans one
interaction, executes it, waits for the page to settle, collects new
discoveries and scores the phase's tension. The crawl ends on stasis
(a window of low-tension phases), at max_phases, on cancel, or on a
fatal error.

Events (payloads are plain dicts):
    crawlStart      {url}
    phaseStart      {phase, interaction}
    discovery       {phase, discovery}
    phaseComplete   {phase, tension, discovered}
    phaseError      {phase, error, type}
    crawlEnd        {url, report}
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from web_harvest.browser import actions
from web_harvest.browser.observer import Feed
from web_harvest.browser.page_context import PageContext
from web_harvest.browser.session import BrowserSession
from web_harvest.config.settings import CrawlConfig
from web_harvest.core.events import EventEmitter
from web_harvest.core.exceptions import (
    CancelRequested,
    HarvestError,
    ObserverOverflow,
    RobotsDenied,
    is_fatal,
)
from web_harvest.crawler.collectors import Collector, DiscoveryCollector
from web_harvest.crawler.executor import InteractionExecutor
from web_harvest.crawler.models import (
    CrawlState,
    ExtractionLog,
    Interaction,
    Phase,
    Report,
    StopReason,
)
from web_harvest.crawler.planner import InteractionPlanner, PageSignals, Planner, PlannerInput
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.crawler.robots import RobotsPolicy
from web_harvest.crawler.tension import PhaseObservation, TensionMeter, TensionState
from web_harvest.utils.fs import atomic_write_text
from web_harvest.utils.logging import get_logger, get_logger_with_context
from web_harvest.utils.urls import canonicalize_url, host_of

logger = get_logger(__name__)

REPORT_FILE = "report.json"
PARTIAL_REPORT_FILE = "report.partial.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AdaptiveCrawler:
    """
    Phase-driven crawler for one start URL.

    One instance runs one crawl; the browser session is closed when the
    crawl ends.

    Example:
        >>> crawler = AdaptiveCrawler(config, session, rate_limiter, robots)
        >>> crawler.on("phaseComplete", lambda e: print(e["phase"], e["tension"]))
        >>> report = await crawler.run("https://example.com")
        >>> report.total_discoveries
        42
    """

    def __init__(
        self,
        config: CrawlConfig,
        session: BrowserSession,
        rate_limiter: RateLimiter,
        robots: RobotsPolicy | None = None,
        planner: Planner | None = None,
        collector: Collector | None = None,
        tension_meter: TensionMeter | None = None,
        pause_after_interaction_ms: int = 0,
        persist: bool = True,
    ) -> None:
        """
        Initialize crawler.

        Args:
            config: Validated configuration
            session: Open (or openable) browser session; owned by the crawler
            rate_limiter: Shared outbound limiter
            robots: robots.txt policy (None disables the gate)
            planner: Interaction planner (defaults to InteractionPlanner)
            collector: Discovery collector (defaults to DiscoveryCollector)
            tension_meter: Tension scorer (defaults to TensionMeter)
            pause_after_interaction_ms: Fixed pause after each interaction
            persist: Write report.json, checkpoints and exports to output_dir
        """
        self.config = config
        self.settings = config.crawler
        self.session = session
        self.rate_limiter = rate_limiter
        self.robots = robots
        self.planner: Planner = planner or InteractionPlanner(wait_ms=self.settings.wait_ms)
        self.collector: Collector = collector or DiscoveryCollector(
            track_requests=self.settings.track_requests)
        self.tension_meter = tension_meter or TensionMeter()
        self.tension_state = TensionState(window=self.settings.stasis_window)
        self.pause_after_interaction_ms = pause_after_interaction_ms
        self.persist = persist

        self.executor = InteractionExecutor(
            robots=robots,
            rate_limiter=rate_limiter,
            timeout_ms=self.settings.interaction_timeout_ms,
            user_agent=session.user_agent,
        )
        self.events = EventEmitter()
        self.log = ExtractionLog()
        self.report: Report | None = None

        self._state = CrawlState.IDLE
        self._cancel_requested = False
        self._url: str | None = None
        self._page: PageContext | None = None
        self._signals = PageSignals()
        self._dom_grew = False
        self._seen_hosts: set[str] = set()
        self._last_collected: set[str] = set()
        self._started_at: datetime | None = None
        self._start_time = 0.0
        self._stop_reason: StopReason | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CrawlState:
        return self._state

    @property
    def output_dir(self) -> Path:
        return self.settings.output_dir

    def on(self, event: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Subscribe to a crawl event. Returns an unsubscribe function."""
        return self.events.on(event, handler)

    def cancel(self) -> None:
        """
        Request cooperative termination.

        The in-flight interaction completes, its phase is recorded, and the
        crawl finalizes with ``cancelled=True``.
        """
        if self._state in (CrawlState.FINALIZING, CrawlState.CLOSED):
            return
        logger.info("Crawl cancellation requested")
        self._cancel_requested = True

    async def close(self) -> None:
        """Release the browser session. Idempotent."""
        await self.session.close()
        if self._state != CrawlState.FINALIZING:
            self._state = CrawlState.CLOSED

    async def run(self, url: str) -> Report:
        """
        Crawl from ``url`` until stasis, max_phases, cancel or a fatal error.

        Args:
            url: Absolute start URL

        Returns:
            The crawl report (also written to output_dir/report.json)

        Raises:
            HarvestError: If the crawler was already used
            LaunchError, SessionLostError, NavigationError: Fatal errors,
                raised after the report has been finalized
        """
        if self._state != CrawlState.IDLE:
            raise HarvestError("Crawler has already run", details={"state": self._state.value})

        self._url = url
        self._state = CrawlState.LAUNCHING
        self._started_at = _utcnow()
        self._start_time = time.monotonic()
        self._emit("crawlStart", {"url": url})
        logger.info(f"Starting crawl: {url}")

        fatal: BaseException | None = None
        try:
            if not self.session.is_open:
                await self.session.open()
            self._page = await self.session.new_page()

            if await self._start_allowed(url):
                await self._page.navigate(url)
                await self._page.wait_for_settled(
                    quiet_ms=self.settings.settle_quiet_ms,
                    timeout_ms=self.settings.settle_timeout_ms,
                )
                self._signals = await self._read_signals()
                self._state = CrawlState.RUNNING
                await self._phase_loop()

        except CancelRequested:
            self._stop_reason = StopReason.CANCELLED
        except asyncio.CancelledError:
            self._cancel_requested = True
            self._stop_reason = StopReason.CANCELLED
            await self._finalize()
            raise
        except Exception as e:
            fatal = e
            self._stop_reason = StopReason.FATAL
            entry = {"type": type(e).__name__, "message": str(e), "phase": len(self.log.phases)}
            self.log.add_error(entry)
            logger.error(f"Crawl aborted: {e}")

        report = await self._finalize()
        if fatal is not None:
            raise fatal
        return report

    async def export(self, formats: list[str] | None = None, output_dir: Path | None = None) -> list[Path]:
        """
        Write the extraction log in the given formats.

        Args:
            formats: Any of json, jsonl, csv, txt, md (defaults to config)
            output_dir: Target directory (defaults to crawler.output_dir)

        Returns:
            Paths written
        """
        from web_harvest.synthesis.synthesizer import DataSynthesizer

        synthesizer = DataSynthesizer(self.log, self.report)
        return synthesizer.write(
            output_dir or self.output_dir,
            formats if formats is not None else list(self.settings.export_formats),
        )

    async def __aenter__(self) -> "AdaptiveCrawler":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Phase loop
    # -------------------------------------------------------------------------

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.emit(event, payload)

    def _check_cancel(self) -> None:
        if self._cancel_requested:
            raise CancelRequested("Crawl cancelled")

    async def _start_allowed(self, url: str) -> bool:
        if self.robots is None or await self.robots.allowed(url, self.session.user_agent):
            return True

        denied = RobotsDenied("Start URL disallowed by robots.txt", url=url)
        message = f"{denied.message}: {url}"
        logger.warning(message)
        self.log.add_warning(message)
        self.log.add_error({"type": "RobotsDenied", "message": denied.message, "url": url})
        self._stop_reason = StopReason.ROBOTS
        return False

    async def _read_signals(self) -> PageSignals:
        return PageSignals.from_dict(await actions.collect_page_signals(self._page.page))

    async def _phase_loop(self) -> None:
        last_interaction: Interaction | None = None
        last_tension: float | None = None

        for index in range(self.settings.max_phases):
            self._check_cancel()

            phase = await self._run_phase(index, last_interaction, last_tension)
            last_interaction, last_tension = phase.interaction, phase.tension
            self.tension_state.push(phase.tension)

            if self.persist and (index + 1) % self.settings.save_interval == 0:
                self._checkpoint()

            self._check_cancel()

            if self.tension_state.is_stasis(self.settings.tension_threshold):
                logger.info(f"Stasis reached after {index + 1} phases")
                self._state = CrawlState.STASIS
                self._stop_reason = StopReason.STASIS
                return

        logger.info(f"Reached max_phases ({self.settings.max_phases})")
        self._stop_reason = StopReason.MAX_PHASES

    async def _run_phase(
        self,
        index: int,
        last_interaction: Interaction | None,
        last_tension: float | None,
    ) -> Phase:
        page = self._page
        interaction = self.planner.next(PlannerInput(
            phase_index=index,
            last_interaction=last_interaction,
            last_tension=last_tension,
            discoveries_so_far=len(self.log),
            signals=self._signals,
            dom_grew=self._dom_grew,
        ))
        phase = Phase(index=index, interaction=interaction)
        phase_logger = get_logger_with_context(__name__, url=self._url, phase=index)
        self._emit("phaseStart", {"phase": index, "interaction": interaction.to_dict()})

        observation = PhaseObservation()
        try:
            try:
                await self.executor.execute(page, interaction)
            except RobotsDenied as e:
                phase.skipped = True
                phase.record_error(e)
                self.log.add_warning(f"Skipped {interaction.describe()}: disallowed by robots.txt")
                phase_logger.info(f"{interaction.describe()} blocked by robots.txt")

            if not phase.skipped:
                if self.pause_after_interaction_ms:
                    await page.wait(self.pause_after_interaction_ms)
                if not self._cancel_requested:
                    phase.settled = await page.wait_for_settled(
                        quiet_ms=self.settings.settle_quiet_ms,
                        timeout_ms=self.settings.settle_timeout_ms,
                    )
                observation = await self._collect(phase)

        except Exception as e:
            entry = phase.record_error(e)
            self._emit("phaseError", {"phase": index, "error": entry["message"], "type": entry["type"]})
            if is_fatal(e, index):
                phase.finish()
                self.log.add_phase(phase)
                raise
            phase_logger.warning(f"Phase failed: {e}")
            observation = PhaseObservation()

        dropped = page.observer.take_dropped()
        if dropped:
            phase.dropped_events = dropped
            phase.record_error(ObserverOverflow(
                "Observer buffer overflow", feed="all", dropped=dropped))

        for warning in self._drain_robots_warnings():
            self.log.add_warning(warning)

        phase.tension = self.tension_meter.score(observation)
        phase.discovered_delta = observation.new_discoveries
        phase.duplicates = observation.duplicated_discoveries
        phase.new_hosts = observation.new_network_hosts
        phase.dom_growth_bytes = observation.dom_growth_bytes
        phase.finish()

        self._emit("phaseComplete", {
            "phase": index,
            "tension": phase.tension,
            "discovered": phase.discovered_delta,
        })
        self.log.add_phase(phase)
        phase_logger.debug(
            f"{interaction.describe()}: +{phase.discovered_delta} "
            f"tension={phase.tension:.3f}"
        )
        return phase

    async def _collect(self, phase: Phase) -> PhaseObservation:
        """Read signals, collect candidates and merge them into the log."""
        page = self._page
        previous = self._signals
        signals = await self._read_signals()
        network_events = page.observer.drain(Feed.NETWORK)
        page.observer.drain(Feed.DOM)
        for event in page.observer.drain(Feed.CONSOLE):
            logger.debug(f"Console {event.level}: {event.text[:200]}")

        candidates = await self.collector.collect(page, phase.index, network_events)

        new = 0
        duplicates = 0
        collected: set[str] = set()
        hosts: set[str] = {host_of(e.url) for e in network_events if e.url}

        for discovery in candidates:
            canonical = canonicalize_url(discovery.url)
            if canonical in collected:
                continue
            collected.add(canonical)
            hosts.add(host_of(canonical))

            if self.log.add(discovery):
                new += 1
                stored = self.log.get(canonical)
                self._emit("discovery", {"phase": phase.index, "discovery": stored.to_dict()})
            elif canonical not in self._last_collected:
                duplicates += 1

        hosts.discard("")
        new_hosts = hosts - self._seen_hosts
        self._seen_hosts |= new_hosts
        self._last_collected = collected

        growth = max(0, signals.dom_size - previous.dom_size)
        self._signals = signals
        self._dom_grew = growth > 0

        return PhaseObservation(
            new_discoveries=new,
            new_network_hosts=len(new_hosts),
            dom_growth_bytes=growth,
            duplicated_discoveries=duplicates,
        )

    def _drain_robots_warnings(self) -> list[str]:
        if self.robots is None:
            return []
        return self.robots.drain_warnings()

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _build_report(self) -> Report:
        tensions = [p.tension for p in self.log.phases]
        stats = self.session.stats()
        stats["dropped_events"] = sum(p.dropped_events for p in self.log.phases)
        stats["rate_limiter"] = self.rate_limiter.get_status().to_dict()
        if self.robots is not None:
            stats["robots_fetches"] = self.robots.fetch_count

        return Report(
            url=self._url or "",
            duration=round(time.monotonic() - self._start_time, 3),
            total_discoveries=len(self.log),
            phases=len(self.log.phases),
            avg_tension=round(sum(tensions) / len(tensions), 6) if tensions else 0.0,
            extraction_log=self.log,
            started_at=self._started_at or _utcnow(),
            ended_at=_utcnow(),
            stopped_reason=self._stop_reason,
            cancelled=self._stop_reason == StopReason.CANCELLED,
            browser_stats=stats,
        )

    def _checkpoint(self) -> None:
        path = self.output_dir / PARTIAL_REPORT_FILE
        atomic_write_text(path, json.dumps(self._build_report().to_dict(), indent=2, ensure_ascii=False))
        logger.debug(f"Checkpoint written: {path}")

    async def _finalize(self) -> Report:
        self._state = CrawlState.FINALIZING
        try:
            for warning in self._drain_robots_warnings():
                self.log.add_warning(warning)

            self.log.freeze()
            self.report = self._build_report()
            self._emit("crawlEnd", {"url": self._url, "report": self.report.to_dict()})

            if self.persist:
                self._write_report()
                if self.settings.export_formats:
                    await self.export()
        finally:
            await self.session.close()
            self._state = CrawlState.CLOSED

        logger.info(
            f"Crawl finished ({self.report.stopped_reason.value if self.report.stopped_reason else 'unknown'}): "
            f"{self.report.total_discoveries} discoveries in {self.report.phases} phases"
        )
        return self.report

    def _write_report(self) -> None:
        path = self.output_dir / REPORT_FILE
        atomic_write_text(path, json.dumps(self.report.to_dict(), indent=2, ensure_ascii=False))
        partial = self.output_dir / PARTIAL_REPORT_FILE
        if partial.exists():
            partial.unlink()
        logger.info(f"Report written: {path}")
