"""
Pydantic settings models for Web Harvest.

CrawlConfig is a closed, immutable record: unknown keys are rejected and
instances cannot be mutated after validation.
"""

import os
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from web_harvest.core.exceptions import ConfigError

_CLOSED = {
    "extra": "forbid",
    "validate_default": True,
    "frozen": True,
}

ExportFormat = Literal["json", "jsonl", "csv", "txt", "md"]


class RateLimitSettings(BaseModel):
    """Sliding-window limit shared by every outbound request."""

    max_requests: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="Maximum acquisitions completed per interval",
    )
    interval_ms: int = Field(
        default=1000,
        ge=1,
        le=600000,
        description="Length of the sliding window in milliseconds",
    )

    model_config = _CLOSED


class BrowserSettings(BaseModel):
    """Playwright browser configuration."""

    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    user_agent: str | None = Field(
        default="WebHarvest/1.0",
        description="User agent for the browser and robots.txt matching. None uses browser default.",
    )
    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use",
    )
    viewport_width: int = Field(
        default=1920,
        ge=320,
        le=3840,
        description="Browser viewport width in pixels",
    )
    viewport_height: int = Field(
        default=1080,
        ge=240,
        le=2160,
        description="Browser viewport height in pixels",
    )
    rate_limit: RateLimitSettings = Field(
        default_factory=RateLimitSettings,
        description="Outbound request rate limit",
    )
    respect_robots: bool = Field(
        default=True,
        description="Whether to honour robots.txt directives",
    )
    navigation_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=300000,
        description="Timeout for page navigation in milliseconds",
    )
    robots_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Timeout for fetching robots.txt in milliseconds",
    )
    ignore_https_errors: bool = Field(
        default=False,
        description="Whether to ignore HTTPS certificate errors",
    )
    proxy: str | None = Field(
        default=None,
        description="Proxy server URL. None falls back to HTTPS_PROXY / HTTP_PROXY.",
    )

    model_config = _CLOSED

    def resolved_proxy(self) -> str | None:
        """Explicit proxy, else the standard proxy environment variables."""
        if self.proxy:
            return self.proxy
        for name in ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"):
            value = os.environ.get(name)
            if value:
                return value
        return None


class CrawlerSettings(BaseModel):
    """Adaptive crawler phase loop configuration."""

    max_phases: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Hard upper bound on the number of phases",
    )
    tension_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Tension at or below which a phase counts toward stasis",
    )
    stasis_window: int = Field(
        default=3,
        ge=1,
        le=1000,
        description="Number of consecutive low-tension phases that trigger stasis",
    )
    output_dir: Path = Field(
        default=Path("./output"),
        description="Directory for reports and checkpoints",
    )
    save_interval: int = Field(
        default=10,
        ge=1,
        le=10000,
        description="Write report.partial.json every N phases",
    )
    settle_timeout_ms: int = Field(
        default=10000,
        ge=0,
        le=120000,
        description="Hard cap on waiting for document-settled",
    )
    settle_quiet_ms: int = Field(
        default=250,
        ge=0,
        le=10000,
        description="Quiet period (no mutations, no pending requests) that counts as settled",
    )
    interaction_timeout_ms: int = Field(
        default=15000,
        ge=100,
        le=120000,
        description="Per-interaction timeout",
    )
    wait_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Duration of the idle Wait interaction",
    )
    track_requests: bool = Field(
        default=True,
        description="Record document/xhr/fetch requests as 'request' discoveries",
    )
    observer_buffer_size: int = Field(
        default=10000,
        ge=10,
        le=1000000,
        description="Events buffered per observer feed before the oldest are dropped",
    )
    export_formats: list[ExportFormat] = Field(
        default_factory=list,
        description="Formats written at the end of a run (empty = on demand only)",
    )

    model_config = _CLOSED

    @field_validator("output_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v


class TextSettings(BaseModel):
    """Text extractor configuration."""

    min_text_length: int = Field(
        default=100,
        ge=0,
        le=1000000,
        description="Minimum characters of main-content text",
    )
    extract_markdown: bool = Field(
        default=True,
        description="Serialize main content to Markdown",
    )
    wait_for_dynamic_content_ms: int = Field(
        default=2000,
        ge=0,
        le=30000,
        description="Extra wait after settle for late client-side rendering",
    )
    words_per_minute: int = Field(
        default=200,
        ge=50,
        le=1000,
        description="Reading speed used for reading-time estimates",
    )

    model_config = _CLOSED


class MediaSettings(BaseModel):
    """Media (MFT) extractor and downloader configuration."""

    max_scrolls: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum scroll phases",
    )
    scroll_step: int = Field(
        default=800,
        ge=50,
        le=10000,
        description="Pixels scrolled per phase",
    )
    scroll_delay_ms: int = Field(
        default=1000,
        ge=0,
        le=30000,
        description="Pause after each scroll before collecting",
    )
    download_media: bool = Field(
        default=False,
        description="Download discovered media after the scan",
    )
    download_dir: Path = Field(
        default=Path("./downloads"),
        description="Root directory for downloaded media",
    )
    organize_by_type: bool = Field(
        default=True,
        description="Place files under images/, videos/, audio/ or other/",
    )
    max_concurrent_downloads: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Download worker pool size",
    )
    download_timeout_ms: int = Field(
        default=60000,
        ge=5000,
        le=600000,
        description="Per-download timeout",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for transient download failures",
    )
    include_background_images: bool = Field(
        default=True,
        description="Collect CSS background-image URLs from visible elements",
    )

    model_config = _CLOSED

    @field_validator("download_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v


class TrafficSettings(BaseModel):
    """Traffic (TBR) extractor configuration."""

    observation_window_ms: int = Field(
        default=5000,
        ge=1000,
        le=30000,
        description="How long to keep observing the network after settle",
    )
    scan_shadow_dom: bool = Field(
        default=True,
        description="Traverse open shadow roots for <video> elements",
    )
    strip_tracking_params: bool = Field(
        default=True,
        description="Remove utm_*, ref, fbclid and gclid from stream URLs",
    )

    model_config = _CLOSED


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum logging level",
    )
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format string",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Date format for log timestamps",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path to log file. None means console only.",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of backup log files to keep",
    )
    log_to_console: bool = Field(
        default=True,
        description="Whether to output logs to console",
    )

    model_config = _CLOSED

    @field_validator("file_path", mode="before")
    @classmethod
    def convert_file_path(cls, v: str | Path | None) -> Path | None:
        """Convert string paths to Path objects."""
        if v is None:
            return None
        return Path(v) if isinstance(v, str) else v


class CrawlConfig(BaseModel):
    """
    Root configuration record.

    Holds the browser and crawler sections plus one section per
    extractor. Every section has defaults, so CrawlConfig() is valid.
    """

    browser: BrowserSettings = Field(
        default_factory=BrowserSettings,
        description="Browser/Playwright settings",
    )
    crawler: CrawlerSettings = Field(
        default_factory=CrawlerSettings,
        description="Adaptive crawler settings",
    )
    text: TextSettings = Field(
        default_factory=TextSettings,
        description="Text extractor settings",
    )
    media: MediaSettings = Field(
        default_factory=MediaSettings,
        description="Media extractor and downloader settings",
    )
    traffic: TrafficSettings = Field(
        default_factory=TrafficSettings,
        description="Traffic extractor settings",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    model_config = _CLOSED

    @classmethod
    def from_options(
        cls,
        options: "CrawlConfig | Mapping[str, Any] | None" = None,
        **overrides: Any,
    ) -> "CrawlConfig":
        """
        Build a validated config from a mapping, an instance, or nothing.

        Keyword overrides are section-level mappings merged on top,
        e.g. ``CrawlConfig.from_options(crawler={"max_phases": 5})``.

        Raises:
            ConfigError: If validation fails or unknown keys are present
        """
        if isinstance(options, CrawlConfig):
            data = options.model_dump()
        elif options is None:
            data = {}
        elif isinstance(options, Mapping):
            data = dict(options)
        else:
            raise ConfigError(
                "Configuration must be a mapping or CrawlConfig",
                details={"type": type(options).__name__},
            )

        for section, values in overrides.items():
            if isinstance(values, Mapping) and isinstance(data.get(section), Mapping):
                data[section] = {**data[section], **values}
            else:
                data[section] = values

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(
                "Invalid configuration",
                details={"errors": _summarize_errors(e)},
            ) from e


def _summarize_errors(error: ValidationError) -> list[str]:
    """Compact 'path: message' strings from a pydantic ValidationError."""
    return [
        f"{'.'.join(str(p) for p in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]
