"""
Custom exceptions for Web Harvest.

Provides a hierarchy of exceptions for precise error handling across
all subsystems. All exceptions inherit from HarvestError.

Exception Hierarchy:
    HarvestError (base)
    ├── ConfigError
    ├── BrowserError
    │   ├── LaunchError
    │   ├── NavigationError
    │   ├── SessionLostError
    │   └── InteractionError
    ├── ObserverOverflow
    ├── DownloadError
    │   ├── TransientDownloadError
    │   └── PermanentDownloadError
    ├── RobotsDenied
    ├── CancelRequested
    └── ExtractionError
"""

from typing import Any


class HarvestError(Exception):
    """
    Base exception for all Web Harvest errors.

    All custom exceptions inherit from this class, allowing for
    catch-all handling when needed.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(
                f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details!r})"


class RetryableError(HarvestError):
    """
    Marker class for errors that can be retried.

    Attributes:
        retry_after: Suggested delay in seconds before retry (optional)
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(HarvestError):
    """
    Invalid CrawlConfig.

    Raised at construction time when:
    - A configuration file is missing or malformed
    - An unknown key is present
    - A value fails validation
    """

    pass


# =============================================================================
# Browser Errors
# =============================================================================


class BrowserError(HarvestError):
    """Base error for browser driver operations."""

    pass


class LaunchError(BrowserError):
    """
    BrowserSession failed to start.

    Always fatal; surfaces from the facade factory.
    """

    pass


class NavigationError(BrowserError, RetryableError):
    """
    Error during page navigation.

    Raised when:
    - URL is unreachable
    - Navigation times out
    - The server answers with an error status

    Fatal only when it happens on phase 0.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class SessionLostError(BrowserError):
    """
    The browser, context or page went away underneath us.

    Always fatal.
    """

    pass


class InteractionError(BrowserError):
    """
    An interaction could not be performed.

    Raised when:
    - Selector not found
    - Click intercepted by another element
    - JavaScript exception inside the page

    Non-fatal: the phase proceeds with zero discoveries.
    """

    def __init__(
        self,
        message: str,
        selector: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if selector:
            details["selector"] = selector
        super().__init__(message, details)
        self.selector = selector


# =============================================================================
# Observer Errors
# =============================================================================


class ObserverOverflow(HarvestError):
    """
    An observer feed buffer saturated and dropped its oldest events.

    Non-fatal; the dropped counter is surfaced in the Phase.
    """

    def __init__(
        self,
        message: str,
        feed: str,
        dropped: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["feed"] = feed
        details["dropped"] = dropped
        super().__init__(message, details)
        self.feed = feed
        self.dropped = dropped


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(HarvestError):
    """
    Error fetching a media item.

    Attributes:
        url: URL of the item
        transient: Whether retrying may succeed
    """

    transient = False

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class TransientDownloadError(DownloadError, RetryableError):
    """
    Network failure, 5xx or 429. Retried with backoff.

    retry_after carries the server's Retry-After hint when one was sent.
    """

    transient = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, url=url, status_code=status_code, details=details)
        self.retry_after = retry_after


class PermanentDownloadError(DownloadError):
    """4xx (except 429) or unsupported URL. Marks the item failed."""

    pass


# =============================================================================
# Policy and Control Flow
# =============================================================================


class RobotsDenied(HarvestError):
    """
    URL is disallowed by robots.txt.

    Not retryable; the URL is skipped and logged.
    """

    def __init__(
        self,
        message: str,
        url: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["url"] = url
        super().__init__(message, details)
        self.url = url


class CancelRequested(HarvestError):
    """Cooperative termination path for a running crawl or extraction."""

    pass


class ExtractionError(HarvestError):
    """
    Error extracting an artifact from a rendered page.

    Attributes:
        reason: Short machine-readable reason (e.g. "below-min-length")
    """

    def __init__(
        self,
        message: str,
        reason: str,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["reason"] = reason
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.reason = reason
        self.url = url


# =============================================================================
# Utility Functions
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """
    Check if an error is retryable.

    Args:
        error: The exception to check

    Returns:
        True if the error indicates a retryable condition
    """
    return isinstance(error, RetryableError)


def get_retry_delay(error: Exception, default: float = 5.0) -> float:
    """
    Get the recommended retry delay for an error.

    Args:
        error: The exception to check
        default: Default delay if not specified by error

    Returns:
        Recommended delay in seconds before retry
    """
    if isinstance(error, RetryableError) and error.retry_after is not None:
        return error.retry_after
    return default


def is_fatal(error: BaseException, phase_index: int | None = None) -> bool:
    """
    Decide whether an error must abort a running crawl.

    Session loss, memory exhaustion and launch failures are always fatal.
    Navigation errors are fatal only on phase 0.

    Args:
        error: The exception caught at the phase boundary
        phase_index: Index of the phase it occurred in

    Returns:
        True if the crawl must stop and the error propagate out of run()
    """
    if isinstance(error, (SessionLostError, LaunchError, MemoryError)):
        return True
    if isinstance(error, NavigationError):
        return phase_index == 0
    return False
