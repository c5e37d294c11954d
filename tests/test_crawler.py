"""
Tests for the adaptive crawler.

Runs complete crawls against fake sites: stasis detection, robots.txt
gating, error handling per phase, cancellation and persisted output.
"""

import json
import logging
from typing import Any

import pytest

from web_harvest import create_crawler
from web_harvest.core.exceptions import HarvestError, LaunchError, NavigationError, SessionLostError
from web_harvest.crawler import AdaptiveCrawler, DiscoveryKind, Navigate, StopReason
from tests.fakes import FakeSession, FakeSite, InfiniteScrollSite, robots_transport

START_URL = "https://example.com/"
LINKS = [
    "https://example.com/a",
    "https://example.com/b",
    "https://example.com/c",
]


async def make_crawler(
    options: dict[str, Any],
    site: FakeSite,
    robots_txt: str | None = None,
) -> tuple[AdaptiveCrawler, FakeSession]:
    """Create a crawler over a fake site; robots.txt is absent unless given."""
    session = FakeSession(site)
    crawler = await create_crawler(
        options,
        session=session,
        robots_transport=robots_transport(robots_txt),
    )
    return crawler, session


def record(crawler: AdaptiveCrawler, *events: str) -> dict[str, list[dict]]:
    """Collect payloads of the given crawler events."""
    seen: dict[str, list[dict]] = {event: [] for event in events}
    for event in events:
        crawler.on(event, seen[event].append)
    return seen


class TestCrawlerStasis:
    """Tests for phase loop termination."""

    @pytest.mark.asyncio
    async def test_static_page_reaches_stasis(self, fast_options):
        """A page that yields everything at once should stop after one window of quiet."""
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))

        report = await crawler.run(START_URL)

        assert report.stopped_reason == StopReason.STASIS
        assert report.phases == 4
        assert report.total_discoveries == 3
        assert [p.tension for p in report.extraction_log.phases] == [0.8, 0.0, 0.0, 0.0]
        assert not report.cancelled

    @pytest.mark.asyncio
    async def test_infinite_scroll_collects_all_batches(self, fast_options):
        """Scrolling should keep loading batches until the feed is exhausted."""
        fast_options["crawler"].update(max_phases=20, tension_threshold=0.1, stasis_window=3)
        site = InfiniteScrollSite(total=50, batch=10)
        crawler, _ = await make_crawler(fast_options, site)

        report = await crawler.run(START_URL)

        assert report.stopped_reason == StopReason.STASIS
        assert report.total_discoveries == 50
        assert report.phases == 7
        assert len(report.extraction_log.by_kind(DiscoveryKind.IMAGE)) == 50
        tensions = [p.tension for p in report.extraction_log.phases]
        assert all(t <= 0.1 for t in tensions[-3:])
        assert tensions[0] == 1.0

    @pytest.mark.asyncio
    async def test_max_phases(self, fast_options):
        fast_options["crawler"].update(max_phases=3, tension_threshold=0.0)
        crawler, _ = await make_crawler(fast_options, InfiniteScrollSite(total=200, batch=10))

        report = await crawler.run(START_URL)

        assert report.stopped_reason == StopReason.MAX_PHASES
        assert report.phases == 3

    @pytest.mark.asyncio
    async def test_phase_invariants(self, fast_options):
        """Phases are indexed in order with bounded tension and ordered timestamps."""
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))

        report = await crawler.run(START_URL)

        for i, phase in enumerate(report.extraction_log.phases):
            assert phase.index == i
            assert 0.0 <= phase.tension <= 1.0
            assert phase.discovered_delta >= 0
            assert phase.ended_at >= phase.started_at
        assert report.ended_at >= report.started_at
        assert report.avg_tension == pytest.approx(0.2)


class TestCrawlerEvents:
    """Tests for emitted events."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, fast_options):
        """Every phaseStart should be matched by a phaseComplete."""
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))
        seen = record(crawler, "crawlStart", "phaseStart", "phaseComplete", "discovery", "crawlEnd")

        report = await crawler.run(START_URL)

        assert seen["crawlStart"] == [{"url": START_URL}]
        assert len(seen["phaseStart"]) == len(seen["phaseComplete"]) == report.phases
        assert seen["phaseStart"][0]["interaction"] == {"type": "scroll", "value": 1000}
        assert [e["discovery"]["url"] for e in seen["discovery"]] == LINKS
        assert len(seen["crawlEnd"]) == 1
        assert seen["crawlEnd"][0]["report"]["total_discoveries"] == 3

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_crawl(self, fast_options):
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))

        def broken(_event):
            raise RuntimeError("handler bug")

        crawler.on("phaseComplete", broken)
        report = await crawler.run(START_URL)

        assert report.stopped_reason == StopReason.STASIS


class TestCrawlerRobots:
    """Tests for robots.txt gating."""

    @pytest.mark.asyncio
    async def test_disallowed_start_url(self, fast_options):
        """A disallowed start URL ends the crawl before any navigation."""
        site = FakeSite(links=LINKS)
        crawler, session = await make_crawler(fast_options, site, "User-agent: *\nDisallow: /\n")

        report = await crawler.run(START_URL)

        assert report.stopped_reason == StopReason.ROBOTS
        assert report.total_discoveries == 0
        assert report.phases == 0
        assert report.warnings
        assert report.errors[0]["type"] == "RobotsDenied"
        assert all(page.gotos == [] for page in session.pages)

    @pytest.mark.asyncio
    async def test_disallowed_iframe_skipped(self, fast_options):
        """Navigating into a disallowed iframe marks the phase skipped."""
        frame = "https://example.com/private/frame"
        site = FakeSite(links=LINKS, iframes=[frame])
        crawler, session = await make_crawler(fast_options, site, "User-agent: *\nDisallow: /private\n")

        report = await crawler.run(START_URL)

        phase = report.extraction_log.phases[1]
        assert phase.interaction == Navigate(frame)
        assert phase.skipped
        assert phase.errors[0]["type"] == "RobotsDenied"
        assert session.pages[0].gotos == [START_URL]
        assert any("robots.txt" in w for w in report.warnings)

    @pytest.mark.asyncio
    async def test_robots_server_error_warns(self, fast_options):
        """An unreachable robots.txt allows crawling and leaves a warning."""
        session = FakeSession(FakeSite(links=LINKS))
        crawler = await create_crawler(
            fast_options,
            session=session,
            robots_transport=robots_transport("down", status=500),
        )

        report = await crawler.run(START_URL)

        assert report.total_discoveries == 3
        assert any("500" in w for w in report.warnings)


class TestCrawlerErrors:
    """Tests for error handling."""

    @pytest.mark.asyncio
    async def test_start_navigation_failure_is_fatal(self, fast_options):
        """A failed first navigation raises after the report is finalized."""
        site = FakeSite(navigation_error="net::ERR_NAME_NOT_RESOLVED")
        crawler, session = await make_crawler(fast_options, site)
        seen = record(crawler, "crawlEnd")

        with pytest.raises(NavigationError):
            await crawler.run(START_URL)

        assert len(seen["crawlEnd"]) == 1
        assert crawler.report.stopped_reason == StopReason.FATAL
        assert crawler.report.errors[0]["type"] == "NavigationError"
        assert session.close_calls >= 1
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_click_failure_is_phase_error(self, fast_options):
        """A failed click is recorded against its phase and the crawl goes on."""
        site = FakeSite(links=LINKS, activators=["#more"], click_error="Element is not visible")
        crawler, _ = await make_crawler(fast_options, site)
        seen = record(crawler, "phaseError")

        report = await crawler.run(START_URL)

        assert seen["phaseError"][0]["phase"] == 1
        assert seen["phaseError"][0]["type"] == "InteractionError"
        assert report.extraction_log.phases[1].errors
        assert report.phases > 2
        assert report.stopped_reason == StopReason.STASIS

    @pytest.mark.asyncio
    async def test_phase_warnings_carry_url_and_phase(self, fast_options, caplog):
        site = FakeSite(links=LINKS, activators=["#more"], click_error="Element is not visible")
        crawler, _ = await make_crawler(fast_options, site)

        with caplog.at_level(logging.WARNING, logger="web_harvest"):
            await crawler.run(START_URL)

        failed = [r.getMessage() for r in caplog.records if "Phase failed" in r.getMessage()]
        assert failed
        assert f"[url={START_URL}]" in failed[0]
        assert "[phase=1]" in failed[0]

    @pytest.mark.asyncio
    async def test_session_lost_mid_crawl(self, fast_options):
        """A fatal error inside a phase ends the crawl with that phase left incomplete."""
        site = FakeSite(
            links=LINKS,
            activators=["#more"],
            click_error="Target page, context or browser has been closed",
        )
        crawler, session = await make_crawler(fast_options, site)
        seen = record(crawler, "phaseStart", "phaseComplete", "phaseError", "crawlEnd")

        with pytest.raises(SessionLostError):
            await crawler.run(START_URL)

        assert len(seen["phaseStart"]) == len(seen["phaseComplete"]) + 1
        assert seen["phaseError"][-1]["type"] == "SessionLostError"
        assert len(seen["crawlEnd"]) == 1
        assert crawler.report.stopped_reason == StopReason.FATAL
        assert crawler.report.phases == len(seen["phaseStart"])
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_malformed_link_skipped(self, fast_options):
        """One unparsable href must not hide the valid links beside it."""
        site = FakeSite(links=["http://[oops/", *LINKS])
        crawler, _ = await make_crawler(fast_options, site)
        seen = record(crawler, "phaseError")

        report = await crawler.run(START_URL)

        assert seen["phaseError"] == []
        assert report.total_discoveries == 3
        assert [d.url for d in report.extraction_log.by_kind(DiscoveryKind.LINK)] == LINKS

    @pytest.mark.asyncio
    async def test_activator_clicked_once(self, fast_options):
        site = FakeSite(links=LINKS, activators=["#more", "#tab-2"])
        crawler, _ = await make_crawler(fast_options, site)

        await crawler.run(START_URL)

        assert site.clicked == ["#more", "#tab-2"]
        assert site.activated == {"#more", "#tab-2"}

    @pytest.mark.asyncio
    async def test_crawler_runs_once(self, fast_options):
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))
        await crawler.run(START_URL)

        with pytest.raises(HarvestError):
            await crawler.run(START_URL)

    @pytest.mark.asyncio
    async def test_launch_failure_closes_session(self, fast_options):
        """create_crawler should release the session when launch fails."""
        session = FakeSession(fail_open=True)

        with pytest.raises(LaunchError):
            await create_crawler(fast_options, session=session, robots_transport=robots_transport(None))

        assert session.close_calls == 1


class TestCrawlerCancel:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_after_first_phase(self, fast_options):
        """Cancelling finishes the current phase and then stops."""
        crawler, session = await make_crawler(fast_options, InfiniteScrollSite())
        crawler.on("phaseComplete", lambda _event: crawler.cancel())

        report = await crawler.run(START_URL)

        assert report.cancelled
        assert report.stopped_reason == StopReason.CANCELLED
        assert report.phases == 1
        assert not session.is_open


class TestCrawlerOutput:
    """Tests for persisted reports and exports."""

    @pytest.mark.asyncio
    async def test_report_and_exports_written(self, fast_options, temp_dir):
        fast_options["crawler"]["export_formats"] = ["jsonl", "md"]
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))

        report = await crawler.run(START_URL)

        output = temp_dir / "output"
        assert (output / "report.json").exists()
        assert (output / "links.jsonl").exists()
        assert (output / "report.md").exists()
        assert not (output / "report.partial.json").exists()

        saved = json.loads((output / "report.json").read_text())
        assert saved["total_discoveries"] == report.total_discoveries
        assert saved["stopped_reason"] == "stasis"
        assert len(saved["extraction_log"]["phases"]) == report.phases

        lines = (output / "links.jsonl").read_text().splitlines()
        assert [json.loads(line)["url"] for line in lines] == LINKS

    @pytest.mark.asyncio
    async def test_report_dict_shape(self, fast_options):
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))

        data = (await crawler.run(START_URL)).to_dict()

        assert data["url"] == START_URL
        assert data["discoveries_by_kind"]["link"] == 3
        assert data["browser_stats"]["pages_opened"] == 1
        assert data["browser_stats"]["navigations"] == 1

    @pytest.mark.asyncio
    async def test_checkpoint_written_each_interval(self, fast_options, temp_dir):
        """With save_interval=1 every finished phase is in report.partial.json by the next start."""
        fast_options["crawler"]["save_interval"] = 1
        partial = temp_dir / "output" / "report.partial.json"
        crawler, _ = await make_crawler(fast_options, FakeSite(links=LINKS))
        checkpoints: list[int | None] = []

        def read_checkpoint(event: dict) -> None:
            if partial.exists():
                checkpoints.append(len(json.loads(partial.read_text())["extraction_log"]["phases"]))
            else:
                checkpoints.append(None)

        crawler.on("phaseStart", read_checkpoint)

        report = await crawler.run(START_URL)

        assert report.phases == 4
        assert checkpoints == [None, 1, 2, 3]
        assert not partial.exists()
