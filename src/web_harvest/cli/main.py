"""
Main CLI application for Web Harvest.

Thin driver over the facade factories:
- crawl: adaptive interaction crawl with reports
- text: readable text and metadata extraction
- media: image/video/audio harvesting with optional download
- traffic: network-observed video stream discovery
- config: show or initialize configuration
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from web_harvest import __version__
from web_harvest.config import CrawlConfig, dump_default_config, load_config
from web_harvest.core.exceptions import HarvestError
from web_harvest.utils.logging import get_logger, setup_logging

app = typer.Typer(
    name="web-harvest",
    help="Web Harvest - Browser-driven crawling and extraction",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)

EXPORT_FORMATS = ("json", "jsonl", "csv", "txt", "md")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Web Harvest[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        dir_okay=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Web Harvest - crawl sites adaptively and extract text, media and streams.

    Use 'web-harvest --help' for command list.
    """
    ctx.obj = {"config_file": config_file, "verbose": verbose}


def _load(ctx: typer.Context, **sections: dict[str, Any]) -> CrawlConfig:
    """Load config (file + env), apply CLI overrides and set up logging."""
    state = ctx.obj or {}
    try:
        config = load_config(state.get("config_file"))
        overrides = {name: values for name, values in sections.items() if values}
        if overrides:
            config = CrawlConfig.from_options(config, **overrides)
    except HarvestError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)

    setup_logging(config.logging, level="DEBUG" if state.get("verbose") else None)
    return config


def _run(coro: Any, label: str) -> Any:
    """Run a coroutine, mapping failures to exit codes."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{label} cancelled by user[/yellow]")
        raise typer.Exit(1)
    except HarvestError as e:
        console.print(f"[red]Error:[/red] {e}")
        logger.debug(f"{label} failed", exc_info=True)
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        logger.exception(f"{label} failed")
        raise typer.Exit(1)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    from web_harvest.utils.fs import atomic_write_text

    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False, default=str))
    console.print(f"[green]✓[/green] Results saved to: {path}")


@app.command()
def crawl(
    ctx: typer.Context,
    url: str = typer.Argument(
        ...,
        help="URL to start crawling from",
    ),
    max_phases: Optional[int] = typer.Option(
        None,
        "--max-phases",
        "-m",
        help="Maximum number of phases",
        min=1,
    ),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        help="Tension threshold for stasis",
        min=0.0,
        max=1.0,
    ),
    window: Optional[int] = typer.Option(
        None,
        "--window",
        help="Stasis window (phases)",
        min=1,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory for reports",
    ),
    formats: list[str] = typer.Option(
        [],
        "--format",
        "-f",
        help="Export format (json, jsonl, csv, txt, md); repeatable",
    ),
    headless: Optional[bool] = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run browser in headless mode",
    ),
    ignore_robots: bool = typer.Option(
        False,
        "--ignore-robots",
        help="Do not consult robots.txt",
    ),
) -> None:
    """
    Crawl a page through adaptive interactions until stasis.

    Example:
        web-harvest crawl https://example.com --max-phases 30 -f jsonl -f md
    """
    unknown = [f for f in formats if f not in EXPORT_FORMATS]
    if unknown:
        console.print(f"[red]Unknown format(s):[/red] {', '.join(unknown)}")
        raise typer.Exit(2)

    crawler_overrides: dict[str, Any] = {}
    if max_phases is not None:
        crawler_overrides["max_phases"] = max_phases
    if threshold is not None:
        crawler_overrides["tension_threshold"] = threshold
    if window is not None:
        crawler_overrides["stasis_window"] = window
    if output is not None:
        crawler_overrides["output_dir"] = str(output)
    if formats:
        crawler_overrides["export_formats"] = formats

    config = _load(ctx, crawler=crawler_overrides, browser=_browser_overrides(headless, ignore_robots))

    console.print(Panel(
        f"[bold]Crawling:[/bold] {url}\n"
        f"[dim]Max phases: {config.crawler.max_phases} | "
        f"Threshold: {config.crawler.tension_threshold} | "
        f"Window: {config.crawler.stasis_window}[/dim]",
        title="Adaptive Crawler",
        border_style="blue",
    ))

    report = _run(_crawl_async(url, config), "Crawl")
    _show_report(report)


def _browser_overrides(headless: Optional[bool], ignore_robots: bool) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if headless is not None:
        overrides["headless"] = headless
    if ignore_robots:
        overrides["respect_robots"] = False
    return overrides


async def _crawl_async(url: str, config: CrawlConfig) -> Any:
    from web_harvest.facade import create_crawler

    crawler = await create_crawler(config)
    crawler.on("phaseComplete", lambda e: console.print(
        f"  phase {e['phase']:>3}  +{e['discovered']:<4} tension {e['tension']:.3f}"))
    crawler.on("phaseError", lambda e: console.print(
        f"  [yellow]phase {e['phase']} error:[/yellow] {e['error']}"))
    return await crawler.run(url)


def _show_report(report: Any) -> None:
    table = Table(title="Crawl Report", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Stopped", report.stopped_reason.value if report.stopped_reason else "-")
    table.add_row("Phases", str(report.phases))
    table.add_row("Discoveries", str(report.total_discoveries))
    table.add_row("Avg tension", f"{report.avg_tension:.3f}")
    table.add_row("Duration", f"{report.duration:.1f}s")
    for kind, count in report.extraction_log.count_by_kind().items():
        if count:
            table.add_row(f"  {kind}", str(count))
    console.print(table)

    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


@app.command()
def text(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Page to extract"),
    min_length: Optional[int] = typer.Option(
        None,
        "--min-length",
        help="Minimum main-content length in characters",
        min=0,
    ),
    markdown: bool = typer.Option(
        True,
        "--markdown/--no-markdown",
        help="Convert main content to Markdown",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the full result as JSON",
    ),
    ignore_robots: bool = typer.Option(False, "--ignore-robots", help="Do not consult robots.txt"),
) -> None:
    """
    Extract readable text, metadata and quality metrics from a page.

    Example:
        web-harvest text https://example.com/article -o article.json
    """
    text_overrides: dict[str, Any] = {"extract_markdown": markdown}
    if min_length is not None:
        text_overrides["min_text_length"] = min_length
    config = _load(ctx, text=text_overrides, browser=_browser_overrides(None, ignore_robots))

    result = _run(_text_async(url, config), "Text extraction")

    console.print(Panel(
        f"[bold]{result.title or '(untitled)'}[/bold]\n"
        f"[dim]{result.excerpt}[/dim]",
        title="Text Extraction",
        border_style="blue",
    ))
    if result.quality is not None:
        console.print(
            f"Words: {result.quality.word_count} | "
            f"Reading ease: {result.quality.flesch_reading_ease} | "
            f"Quality: {result.quality.quality_score} | "
            f"Readability: {result.readability_score:.2f}"
        )
    if result.error:
        console.print(f"[yellow]warning:[/yellow] {result.error}")
    if output:
        _write_json(output, result.to_dict())
    elif result.markdown:
        console.print(result.markdown)


async def _text_async(url: str, config: CrawlConfig) -> Any:
    from web_harvest.facade import create_text_extractor

    extractor = await create_text_extractor(config)
    return await extractor.run(url)


@app.command()
def media(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Page to harvest media from"),
    max_scrolls: Optional[int] = typer.Option(None, "--max-scrolls", help="Maximum scroll phases", min=1),
    download: bool = typer.Option(False, "--download", "-d", help="Download found media"),
    download_dir: Optional[Path] = typer.Option(None, "--download-dir", help="Download directory"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the full result as JSON"),
    ignore_robots: bool = typer.Option(False, "--ignore-robots", help="Do not consult robots.txt"),
) -> None:
    """
    Harvest images, videos and audio while scrolling the page.

    Example:
        web-harvest media https://example.com/gallery --download
    """
    media_overrides: dict[str, Any] = {"download_media": download}
    if max_scrolls is not None:
        media_overrides["max_scrolls"] = max_scrolls
    if download_dir is not None:
        media_overrides["download_dir"] = str(download_dir)
    config = _load(ctx, media=media_overrides, browser=_browser_overrides(None, ignore_robots))

    result = _run(_media_async(url, config), "Media extraction")

    table = Table(title="Media", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Count", justify="right")
    for group, urls in result.grouped.items():
        table.add_row(group, str(len(urls)))
    console.print(table)

    if result.downloaded is not None:
        stats = result.downloaded.stats
        console.print(
            f"[green]✓[/green] Downloaded {stats.successful}/{stats.total} "
            f"({stats.to_dict()['total_size']})"
        )
    if output:
        _write_json(output, result.to_dict())


async def _media_async(url: str, config: CrawlConfig) -> Any:
    from web_harvest.facade import create_mft_extractor

    extractor = await create_mft_extractor(config)
    return await extractor.run(url)


@app.command()
def traffic(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Page to observe"),
    window: Optional[int] = typer.Option(
        None,
        "--window",
        "-w",
        help="Observation window in milliseconds",
        min=1000,
        max=30000,
    ),
    shadow_dom: bool = typer.Option(True, "--shadow-dom/--no-shadow-dom", help="Scan open shadow roots"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the full result as JSON"),
    ignore_robots: bool = typer.Option(False, "--ignore-robots", help="Do not consult robots.txt"),
) -> None:
    """
    Discover HLS, DASH and direct video streams from network traffic.

    Example:
        web-harvest traffic https://example.com/watch --window 8000
    """
    traffic_overrides: dict[str, Any] = {"scan_shadow_dom": shadow_dom}
    if window is not None:
        traffic_overrides["observation_window_ms"] = window
    config = _load(ctx, traffic=traffic_overrides, browser=_browser_overrides(None, ignore_robots))

    result = _run(_traffic_async(url, config), "Traffic extraction")

    for group, urls in result.grouped.items():
        if urls:
            console.print(f"[bold cyan]{group}[/bold cyan]")
            for stream_url in urls:
                console.print(f"  {stream_url}")
    if not result.items:
        console.print("[yellow]No streams found[/yellow]")
    if output:
        _write_json(output, result.to_dict())


async def _traffic_async(url: str, config: CrawlConfig) -> Any:
    from web_harvest.facade import create_tbr_extractor

    extractor = await create_tbr_extractor(config)
    return await extractor.run(url)


@app.command()
def config(
    ctx: typer.Context,
    show: bool = typer.Option(
        False,
        "--show",
        "-s",
        help="Show current configuration",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Create default configuration file",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path for config file",
    ),
) -> None:
    """
    Configuration management.

    Examples:
        web-harvest config --show
        web-harvest config --init --output ./harvest.yaml
    """
    if init:
        _init_config(output)
    elif show:
        _show_config(ctx)
    else:
        console.print("Use --show to view config or --init to create default config")


def _show_config(ctx: typer.Context) -> None:
    settings = _load(ctx)

    console.print(Panel("[bold]Current Configuration[/bold]", border_style="blue"))
    for section, values in settings.model_dump(mode="json").items():
        console.print(f"\n[bold cyan]{section}:[/bold cyan]")
        for key, value in values.items():
            console.print(f"  {key}: [dim]{value}[/dim]")


def _init_config(output: Optional[Path]) -> None:
    output_path = output or Path("web-harvest.yaml")

    if output_path.exists():
        if not typer.confirm(f"File {output_path} exists. Overwrite?"):
            raise typer.Exit(0)

    output_path.write_text(dump_default_config(), encoding="utf-8")
    console.print(f"[green]✓[/green] Configuration saved to: {output_path}")


if __name__ == "__main__":
    app()
