"""
Shared pytest fixtures for Web Harvest tests.

Provides reusable fixtures for:
- Fast configuration (no settle delays, generous rate limit)
- Fake browser sessions and sites
- Sample HTML
- Temporary resources
"""

import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest

from web_harvest.utils.logging import reset_logging
from tests.fakes import FakeSite, FakeSession, robots_transport


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Keep logging handlers from leaking between tests."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_options(temp_dir: Path) -> dict[str, Any]:
    """
    Options that keep fake-browser runs instant.

    Settling is immediate, waits are zero and the rate limit is high
    enough never to delay a test.
    """
    return {
        "browser": {"rate_limit": {"max_requests": 1000, "interval_ms": 1000}},
        "crawler": {
            "settle_quiet_ms": 0,
            "settle_timeout_ms": 0,
            "wait_ms": 0,
            "output_dir": str(temp_dir / "output"),
        },
        "text": {"wait_for_dynamic_content_ms": 0},
        "media": {"scroll_delay_ms": 0, "download_dir": str(temp_dir / "downloads")},
        "traffic": {"observation_window_ms": 1000},
    }


@pytest.fixture
def fake_session() -> FakeSession:
    """A fake session over an empty site."""
    return FakeSession(FakeSite())


@pytest.fixture
def allow_all_robots():
    """robots.txt transport answering 404 (everything allowed)."""
    return robots_transport(None)


@pytest.fixture
def sample_html() -> str:
    """Provide sample HTML for extraction tests."""
    return """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="description" content="A field guide to garden birds">
        <meta name="author" content="Jane Doe">
        <meta property="og:title" content="Garden Birds">
        <meta property="article:published_time" content="2024-03-01T09:30:00Z">
        <link rel="canonical" href="https://example.com/birds">
        <title>Garden Birds of Europe</title>
        <script type="application/ld+json">
        {"@type": "Article", "headline": "Garden Birds", "publisher": {"name": "Bird Press"}}
        </script>
    </head>
    <body>
        <header>
            <nav class="menu">
                <a href="/home">Home</a>
                <a href="/guides">Guides</a>
                <a href="/about">About Us</a>
            </nav>
        </header>
        <main>
            <article class="post-content">
                <h1>Garden Birds of Europe</h1>
                <p>Robins, blackbirds and wrens visit most European gardens during the
                year. Each species has its own habits, songs and feeding preferences.</p>
                <p>The robin is easy to spot thanks to its orange breast. It often
                follows gardeners around, hoping to catch worms turned up by the spade.</p>
                <h2>Feeding</h2>
                <p>Offer seeds, suet and fresh water. Clean feeders regularly to stop
                disease from spreading between visiting birds.</p>
                <ul>
                    <li>Sunflower hearts</li>
                    <li>Mealworms</li>
                </ul>
                <p>Read more in our <a href="/guides/feeding">feeding guide</a>.</p>
            </article>
        </main>
        <aside class="sidebar"><p>Subscribe to our newsletter!</p></aside>
        <footer><p>&copy; 2024 Bird Press</p></footer>
    </body>
    </html>
    """
