"""
Tests for exceptions module.

Tests the exception hierarchy, details formatting and fatality rules.
"""

import pytest

from web_harvest.core.exceptions import (
    BrowserError,
    CancelRequested,
    ConfigError,
    DownloadError,
    ExtractionError,
    HarvestError,
    InteractionError,
    LaunchError,
    NavigationError,
    ObserverOverflow,
    PermanentDownloadError,
    RetryableError,
    RobotsDenied,
    SessionLostError,
    TransientDownloadError,
    get_retry_delay,
    is_fatal,
    is_retryable,
)


class TestHarvestError:
    """Tests for the base exception."""

    def test_message_only(self):
        """Errors without details should render the bare message."""
        error = HarvestError("Something broke")

        assert str(error) == "Something broke"
        assert error.details == {}

    def test_message_with_details(self):
        """Details should be appended to the string form."""
        error = HarvestError("Something broke", details={"url": "https://x.com"})

        assert str(error) == "Something broke (url='https://x.com')"
        assert "HarvestError" in repr(error)

    @pytest.mark.parametrize("cls", [
        ConfigError, BrowserError, LaunchError, SessionLostError,
        DownloadError, CancelRequested,
    ])
    def test_hierarchy(self, cls):
        """Every package exception should derive from HarvestError."""
        assert issubclass(cls, HarvestError)


class TestSpecificErrors:
    """Tests for errors carrying extra attributes."""

    def test_navigation_error_details(self):
        """NavigationError should record url and status code."""
        error = NavigationError("HTTP 503 error", url="https://x.com", status_code=503)

        assert error.url == "https://x.com"
        assert error.status_code == 503
        assert error.details["status_code"] == 503
        assert isinstance(error, BrowserError)
        assert is_retryable(error)

    def test_interaction_error_selector(self):
        """InteractionError should keep the selector."""
        error = InteractionError("Click intercepted", selector="#more")

        assert error.selector == "#more"
        assert error.details == {"selector": "#more"}

    def test_observer_overflow(self):
        """ObserverOverflow should report feed and dropped count."""
        error = ObserverOverflow("Observer buffer overflow", feed="network", dropped=12)

        assert error.feed == "network"
        assert error.dropped == 12

    def test_download_error_transience(self):
        """Transient and permanent download errors should be distinguishable."""
        transient = TransientDownloadError("HTTP 503", url="https://x.com/a.jpg", status_code=503)
        permanent = PermanentDownloadError("HTTP 404", url="https://x.com/a.jpg", status_code=404)

        assert transient.transient is True
        assert permanent.transient is False
        assert isinstance(transient, RetryableError)
        assert not is_retryable(permanent)
        assert get_retry_delay(transient, default=1.0) == 1.0
        assert get_retry_delay(TransientDownloadError("HTTP 429", retry_after=2.0)) == 2.0

    def test_robots_denied(self):
        """RobotsDenied should carry the URL."""
        error = RobotsDenied("URL disallowed by robots.txt", url="https://x.com/private")

        assert error.url == "https://x.com/private"
        assert "private" in str(error)

    def test_extraction_error_reason(self):
        """ExtractionError should carry a machine-readable reason."""
        error = ExtractionError("Too short", reason="below-min-length", url="https://x.com")

        assert error.reason == "below-min-length"
        assert error.details["reason"] == "below-min-length"

    def test_retry_delay_default(self):
        """Non-retryable errors should fall back to the default delay."""
        assert get_retry_delay(HarvestError("x"), default=2.5) == 2.5


class TestIsFatal:
    """Tests for the fatality rule applied at phase boundaries."""

    def test_session_lost_always_fatal(self):
        assert is_fatal(SessionLostError("gone"), 7)

    def test_launch_error_fatal(self):
        assert is_fatal(LaunchError("no browser"))

    def test_memory_error_fatal(self):
        assert is_fatal(MemoryError())

    def test_navigation_fatal_only_on_phase_zero(self):
        """Navigation failures abort only the first phase."""
        error = NavigationError("Navigation timeout", url="https://x.com")

        assert is_fatal(error, 0)
        assert not is_fatal(error, 3)

    def test_interaction_error_not_fatal(self):
        assert not is_fatal(InteractionError("missing"), 0)
