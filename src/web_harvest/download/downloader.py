"""
Bounded-concurrency media downloader.

A fixed pool of workers drains the queued items in arrival order. Each
item gets a best-effort HEAD (size and content type), then a streamed
GET into ``<name>.part`` that is renamed into place on success.
Transient failures (network errors, 5xx, 429, timeouts) are retried
with exponential backoff, or after the server's Retry-After when it
sends one. Anything else (4xx, malformed URLs, disk errors) fails the
item immediately and the worker moves on.
"""

import asyncio
import mimetypes
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable
from urllib.parse import unquote, urlsplit

import httpx

from web_harvest.config.settings import MediaSettings
from web_harvest.core.exceptions import (
    DownloadError,
    PermanentDownloadError,
    TransientDownloadError,
    get_retry_delay,
    is_retryable,
)
from web_harvest.crawler.rate_limiter import RateLimiter
from web_harvest.utils.fs import safe_filename, unique_path
from web_harvest.utils.logging import get_logger
from web_harvest.utils.urls import is_http_url, path_extension

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "WebHarvest/1.0 (Media Downloader)"

# Sub-directories used when organize_by_type is set
TYPE_DIRS = {
    "image": "images",
    "video": "videos",
    "audio": "audio",
}
OTHER_DIR = "other"

# Preferred extensions where mimetypes is missing or ambiguous
MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
    "video/mp2t": ".ts",
    "application/vnd.apple.mpegurl": ".m3u8",
    "application/x-mpegurl": ".m3u8",
    "application/dash+xml": ".mpd",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/aac": ".aac",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/flac": ".flac",
    "audio/webm": ".weba",
}

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "avif", "svg", "ico", "bmp", "tif", "tiff"})
VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "mov", "mkv", "avi", "m4v", "m3u8", "mpd", "ogv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "m4a", "aac", "ogg", "oga", "wav", "flac", "opus", "weba"})


class MediaStatus(str, Enum):
    PENDING = "pending"
    INFLIGHT = "inflight"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MediaItem:
    """
    One URL to download and its outcome.

    Attributes:
        url: Absolute URL
        mime_hint: Content type known in advance (from the page or network)
        media_type: "image", "video" or "audio" when known
        referer: Sent as the Referer header
        bytes_expected: From Content-Length, when the server reports it
        bytes_downloaded: Bytes written by the last attempt
        status: pending, inflight, done or failed
        saved_path: Final file location once done
        error: Last error message for failed items
        attempts: Number of GET attempts made
        skipped: True when the URL could not be downloaded at all (blob:, data:)
    """

    url: str
    mime_hint: str | None = None
    media_type: str | None = None
    referer: str | None = None
    bytes_expected: int | None = None
    bytes_downloaded: int = 0
    status: MediaStatus = MediaStatus.PENDING
    saved_path: Path | None = None
    error: str | None = None
    attempts: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "mime_hint": self.mime_hint,
            "media_type": self.media_type,
            "bytes_expected": self.bytes_expected,
            "bytes_downloaded": self.bytes_downloaded,
            "status": self.status.value,
            "saved_path": str(self.saved_path) if self.saved_path else None,
            "error": self.error,
            "attempts": self.attempts,
            "skipped": self.skipped,
        }


@dataclass
class DownloadStats:
    """
    Batch counters. ``successful + failed == total`` once a batch ends;
    ``skipped`` counts the failed items that were never fetchable.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total_bytes: int = 0
    duration_ms: int = 0
    peak_in_flight: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of successful items (0.0 for an empty batch)."""
        if self.total == 0:
            return 0.0
        return round(100.0 * self.successful / self.total, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_bytes": self.total_bytes,
            "total_size": format_bytes(self.total_bytes),
            "duration_ms": self.duration_ms,
            "peak_in_flight": self.peak_in_flight,
            "success_rate": self.success_rate,
        }


@dataclass
class DownloadReport:
    items: list[MediaItem] = field(default_factory=list)
    stats: DownloadStats = field(default_factory=DownloadStats)
    cancelled: bool = False

    @property
    def saved_paths(self) -> list[Path]:
        return [item.saved_path for item in self.items if item.saved_path is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "cancelled": self.cancelled,
            "items": [item.to_dict() for item in self.items],
        }


def format_bytes(size: int | float) -> str:
    """
    Human-readable byte count.

    Example:
        >>> format_bytes(1536)
        '1.50 KB'
    """
    if size < 0:
        raise ValueError("size must be >= 0")
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} TB"


def parse_retry_after(value: str | None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def extension_for(content_type: str | None) -> str:
    """File extension (with dot) for a content type, or ""."""
    if not content_type:
        return ""
    mime = content_type.split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or ""


def media_type_for(url: str, content_type: str | None = None) -> str | None:
    """Classify as image, video or audio from content type, then extension."""
    if content_type:
        major = content_type.split("/", 1)[0].strip().lower()
        if major in TYPE_DIRS:
            return major
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in ("application/vnd.apple.mpegurl", "application/x-mpegurl", "application/dash+xml"):
            return "video"

    ext = path_extension(url)
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    return None


def filename_for(url: str, content_type: str | None = None) -> str:
    """
    File name for a URL: sanitized last path segment, with an extension
    inferred from the content type when the segment has none.
    """
    segment = unquote(urlsplit(url).path.rsplit("/", 1)[-1])
    name = safe_filename(segment, default="media")
    if "." not in name.strip("."):
        name += extension_for(content_type)
    return name


class MediaDownloader:
    """
    Downloads media items with a bounded worker pool.

    Example:
        >>> downloader = MediaDownloader("./downloads", max_concurrent=2)
        >>> report = await downloader.download(["https://example.com/a.jpg"])
        >>> report.stats.successful
        1
    """

    # Backoff before retry n (0-based) is BACKOFF_BASE_MS * 2**n
    BACKOFF_BASE_MS = 250
    # Upper bound on a server-requested Retry-After
    MAX_RETRY_AFTER_SECONDS = 60.0
    # How long in-flight downloads may finish after cancel()
    CANCEL_GRACE_SECONDS = 5.0

    def __init__(
        self,
        download_dir: Path | str = Path("./downloads"),
        organize_by_type: bool = True,
        max_concurrent: int = 5,
        timeout_ms: int = 60_000,
        max_retries: int = 3,
        user_agent: str = DEFAULT_USER_AGENT,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_progress: Callable[[MediaItem], None] | None = None,
    ) -> None:
        """
        Initialize downloader.

        Args:
            download_dir: Root directory for downloaded files
            organize_by_type: Use images/, videos/, audio/ and other/ sub-directories
            max_concurrent: Worker pool size
            timeout_ms: Per-item timeout (HEAD + GET, per attempt)
            max_retries: Retries for transient failures
            user_agent: User-Agent header
            rate_limiter: Shared outbound limiter
            transport: Optional httpx transport (tests inject a MockTransport)
            on_progress: Called with each item once it is done or failed
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")

        self.download_dir = Path(download_dir)
        self.organize_by_type = organize_by_type
        self.max_concurrent = max_concurrent
        self.timeout = timeout_ms / 1000.0
        self.max_retries = max_retries
        self.user_agent = user_agent
        self.rate_limiter = rate_limiter
        self.on_progress = on_progress
        self._transport = transport

        self._cancelled = asyncio.Event()
        self._reserved: set[Path] = set()
        self._in_flight = 0
        self._peak_in_flight = 0

    @classmethod
    def from_settings(
        cls,
        settings: MediaSettings,
        user_agent: str | None = None,
        rate_limiter: RateLimiter | None = None,
        **kwargs: Any,
    ) -> "MediaDownloader":
        """Build a downloader from the media config section."""
        return cls(
            download_dir=settings.download_dir,
            organize_by_type=settings.organize_by_type,
            max_concurrent=settings.max_concurrent_downloads,
            timeout_ms=settings.download_timeout_ms,
            max_retries=settings.max_retries,
            user_agent=user_agent or DEFAULT_USER_AGENT,
            rate_limiter=rate_limiter,
            **kwargs,
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def cancel(self) -> None:
        """
        Stop starting new items.

        In-flight items get CANCEL_GRACE_SECONDS to finish, then they are
        aborted. Items that never started are reported as failed.
        """
        logger.info("Download cancellation requested")
        self._cancelled.set()

    async def download(
        self,
        items: Iterable[MediaItem | str],
        dir: Path | str | None = None,
        organize_by_type: bool | None = None,
        max_concurrent: int | None = None,
    ) -> DownloadReport:
        """
        Download a batch of items.

        Args:
            items: MediaItems or plain URLs, processed in order
            dir: Overrides download_dir
            organize_by_type: Overrides the instance setting
            max_concurrent: Overrides the instance pool size

        Returns:
            DownloadReport with per-item outcomes and batch stats
        """
        batch = [item if isinstance(item, MediaItem) else MediaItem(url=item) for item in items]
        root = Path(dir) if dir is not None else self.download_dir
        organize = self.organize_by_type if organize_by_type is None else organize_by_type
        pool_size = max(1, max_concurrent or self.max_concurrent)

        self._cancelled.clear()
        self._peak_in_flight = 0
        start = time.monotonic()
        report = DownloadReport(items=batch)

        if batch:
            logger.info(f"Starting download of {len(batch)} items ({pool_size} workers)")
            queue: asyncio.Queue[MediaItem] = asyncio.Queue()
            for item in batch:
                queue.put_nowait(item)

            async with httpx.AsyncClient(
                headers={"User-Agent": self.user_agent},
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                workers = [
                    asyncio.create_task(self._worker(client, queue, root, organize))
                    for _ in range(min(pool_size, len(batch)))
                ]
                try:
                    report.cancelled = await self._join(workers)
                finally:
                    for task in workers:
                        task.cancel()
                    await asyncio.gather(*workers, return_exceptions=True)

        for item in batch:
            if item.status in (MediaStatus.PENDING, MediaStatus.INFLIGHT):
                item.status = MediaStatus.FAILED
                item.error = item.error or "cancelled"

        report.stats = self._stats(batch, start)
        logger.info(
            f"Download complete: {report.stats.successful}/{report.stats.total} successful "
            f"({format_bytes(report.stats.total_bytes)})"
        )
        return report

    async def _join(self, workers: list[asyncio.Task]) -> bool:
        """Wait for the pool; on cancel(), allow the grace period. Returns True if cancelled."""
        finished = asyncio.gather(*workers, return_exceptions=True)
        cancel_wait = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {finished, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if finished in done:
                for result in finished.result():
                    if isinstance(result, Exception):
                        logger.error(f"Download worker stopped unexpectedly: {result!r}")
                return self._cancelled.is_set()

            _, pending = await asyncio.wait(workers, timeout=self.CANCEL_GRACE_SECONDS)
            if pending:
                logger.warning(f"Aborting {len(pending)} downloads after cancel grace period")
                for task in pending:
                    task.cancel()
            await finished
            return True
        finally:
            cancel_wait.cancel()

    async def _worker(
        self,
        client: httpx.AsyncClient,
        queue: asyncio.Queue,
        root: Path,
        organize: bool,
    ) -> None:
        while not self._cancelled.is_set():
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._download_item(client, item, root, organize)
            finally:
                queue.task_done()
            self._notify(item)

    def _notify(self, item: MediaItem) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(item)
        except Exception as e:
            logger.warning(f"Download progress callback raised: {e!r}")

    async def _download_item(
        self,
        client: httpx.AsyncClient,
        item: MediaItem,
        root: Path,
        organize: bool,
    ) -> None:
        item.status = MediaStatus.INFLIGHT

        if not is_http_url(item.url):
            self._fail(item, PermanentDownloadError("Unsupported or malformed URL", url=item.url))
            item.skipped = True
            return

        for attempt in range(self.max_retries + 1):
            item.attempts = attempt + 1
            try:
                await asyncio.wait_for(self._fetch(client, item, root, organize), timeout=self.timeout)
                item.status = MediaStatus.DONE
                item.error = None
                logger.debug(f"Downloaded {item.url} -> {item.saved_path} "
                             f"({format_bytes(item.bytes_downloaded)})")
                return
            except asyncio.TimeoutError:
                error: DownloadError = TransientDownloadError("Download timed out", url=item.url)
            except DownloadError as e:
                error = e
            except (ValueError, httpx.InvalidURL, OSError) as e:
                error = PermanentDownloadError(f"Cannot download: {e!r}", url=item.url)
            except asyncio.CancelledError:
                item.status = MediaStatus.FAILED
                item.error = "cancelled"
                raise

            if not is_retryable(error) or attempt >= self.max_retries:
                self._fail(item, error)
                return

            delay = self._retry_delay(error, attempt)
            logger.debug(f"Attempt {attempt + 1} for {item.url} failed: {error}. Retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

    def _retry_delay(self, error: DownloadError, attempt: int) -> float:
        """Server Retry-After when given (capped), else exponential backoff."""
        backoff = self.BACKOFF_BASE_MS * (2 ** attempt) / 1000.0
        return min(get_retry_delay(error, default=backoff), self.MAX_RETRY_AFTER_SECONDS)

    def _fail(self, item: MediaItem, error: DownloadError) -> None:
        item.status = MediaStatus.FAILED
        item.error = str(error)
        logger.warning(f"Failed to download {item.url}: {error}")

    async def _acquire(self) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

    async def _head(self, client: httpx.AsyncClient, item: MediaItem, headers: dict[str, str]) -> None:
        """Best-effort size and content type lookup; failures are ignored."""
        await self._acquire()
        try:
            response = await client.head(item.url, headers=headers)
        except httpx.HTTPError as e:
            logger.debug(f"HEAD failed for {item.url}: {e!r}")
            return

        if response.status_code >= 400:
            return
        length = response.headers.get("content-length")
        if length and length.isdigit():
            item.bytes_expected = int(length)
        content_type = response.headers.get("content-type")
        if content_type:
            item.mime_hint = content_type

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        item: MediaItem,
        root: Path,
        organize: bool,
    ) -> None:
        headers = {"Referer": item.referer} if item.referer else {}
        await self._head(client, item, headers)
        await self._acquire()

        item.bytes_downloaded = 0
        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        try:
            async with client.stream("GET", item.url, headers=headers) as response:
                self._check_status(response, item.url)

                content_type = response.headers.get("content-type") or item.mime_hint
                length = response.headers.get("content-length")
                if length and length.isdigit():
                    item.bytes_expected = int(length)

                path = self._claim_path(item, root, organize, content_type)
                part = path.with_name(path.name + ".part")
                try:
                    with part.open("wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                            item.bytes_downloaded += len(chunk)
                    os.replace(part, path)
                except BaseException:
                    part.unlink(missing_ok=True)
                    self._reserved.discard(path)
                    raise
                item.saved_path = path
                self._reserved.discard(path)

        except httpx.TransportError as e:
            raise TransientDownloadError(f"Network error: {e!r}", url=item.url) from e
        except httpx.HTTPError as e:
            raise PermanentDownloadError(f"Request failed: {e!r}", url=item.url) from e
        finally:
            self._in_flight -= 1

    @staticmethod
    def _check_status(response: httpx.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429 or status >= 500:
            raise TransientDownloadError(
                f"HTTP {status}",
                url=url,
                status_code=status,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )
        raise PermanentDownloadError(f"HTTP {status}", url=url, status_code=status)

    def _claim_path(self, item: MediaItem, root: Path, organize: bool, content_type: str | None) -> Path:
        """Choose a free target path and reserve it against concurrent workers."""
        item.media_type = item.media_type or media_type_for(item.url, content_type)

        directory = root
        if organize:
            directory = root / TYPE_DIRS.get(item.media_type or "", OTHER_DIR)
        directory.mkdir(parents=True, exist_ok=True)

        path = unique_path(directory / filename_for(item.url, content_type), self._reserved)
        self._reserved.add(path)
        return path

    def _stats(self, batch: list[MediaItem], start: float) -> DownloadStats:
        done = [item for item in batch if item.status == MediaStatus.DONE]
        failed = [item for item in batch if item.status == MediaStatus.FAILED]
        return DownloadStats(
            total=len(batch),
            successful=len(done),
            failed=len(failed),
            skipped=sum(1 for item in failed if item.skipped),
            total_bytes=sum(item.bytes_downloaded for item in done),
            duration_ms=int((time.monotonic() - start) * 1000),
            peak_in_flight=self._peak_in_flight,
        )
