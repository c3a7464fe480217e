"""Command-line interface for SiteAudit."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from siteaudit import __version__
from siteaudit.config import Config, find_config_file
from siteaudit.crawler import HttpPageFetcher
from siteaudit.observability import configure_logging, start_metrics_server
from siteaudit.plugins import build_registry
from siteaudit.protocols import ScanOutcome
from siteaudit.scanner import ScanOrchestrator
from siteaudit.storage import JsonResultStore

console = Console()
logger = structlog.get_logger(__name__)


def load_config(config_path: Optional[Path]) -> Config:
    """Load the given YAML file, else a siteaudit.yaml in the working directory, else defaults."""
    config_path = config_path or find_config_file()
    if config_path:
        return Config.from_yaml(config_path)
    return Config()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides configuration)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """SiteAudit - audit pages for broken links and other problems."""
    ctx.ensure_object(dict)
    loaded = load_config(Path(config) if config else None)
    if log_level:
        loaded.monitoring.log_level = log_level
    configure_logging(loaded.monitoring)
    ctx.obj["config"] = loaded


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory for JSON results")
@click.option("--workers", type=click.IntRange(min=1), help="Concurrent link probes per page")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Per-request link probe timeout in seconds")
@click.option("--max-redirects", type=click.IntRange(min=0), help="Maximum redirect hops per link")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON instead of tables")
@click.pass_context
def scan(
    ctx: click.Context,
    urls: tuple[str, ...],
    output_dir: Optional[str],
    workers: Optional[int],
    timeout: Optional[float],
    max_redirects: Optional[int],
    as_json: bool,
) -> None:
    """Fetch and scan one or more pages."""
    config: Config = ctx.obj["config"]
    if workers is not None:
        config.links.max_workers = workers
    if timeout is not None:
        config.links.timeout = timeout
    if max_redirects is not None:
        config.links.max_redirects = max_redirects
    if output_dir:
        config.storage.output_dir = Path(output_dir)

    outcomes = asyncio.run(run_scan(config, list(urls)))

    if as_json:
        click.echo(json.dumps([outcome_to_dict(outcome) for outcome in outcomes], indent=2))
    else:
        for outcome in outcomes:
            render_outcome(outcome)

    if not all(outcome.delivered for outcome in outcomes):
        sys.exit(1)


async def run_scan(config: Config, urls: List[str]) -> List[ScanOutcome]:
    """Fetch, scan and store the given pages, cancelling cleanly on SIGINT/SIGTERM."""
    start_metrics_server(config.monitoring)

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support keep the default handler
            pass

    registry = build_registry(config)
    orchestrator = ScanOrchestrator(registry, JsonResultStore(config.storage), config=config.scan)

    async with HttpPageFetcher(config.fetcher) as fetcher:
        return await orchestrator.scan_urls(fetcher, urls, cancel_event=cancel_event)


@cli.command()
@click.pass_context
def plugins(ctx: click.Context) -> None:
    """List the plugins a scan would run, in order."""
    registry = build_registry(ctx.obj["config"])

    table = Table(title="Plugins")
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Description")
    for plugin in registry.get_active_plugins():
        table.add_row(plugin.name, str(plugin.version), plugin.description)
    console.print(table)


def outcome_to_dict(outcome: ScanOutcome) -> dict:
    data = {"url": outcome.url, "state": outcome.state.value}
    if outcome.result is not None:
        data.update(outcome.result.to_dict())
    if outcome.error is not None:
        data["error"] = f"{type(outcome.error).__name__}: {outcome.error}"
    return data


def render_outcome(outcome: ScanOutcome) -> None:
    """Print a page's marks the way the scan report shows them."""
    if outcome.result is None:
        console.print(f"[red]✗ {outcome.url}[/red] {type(outcome.error).__name__}: {outcome.error}")
        return

    result = outcome.result
    title = f" - {result.title}" if result.title else ""
    console.print(f"[green]✓ {outcome.url}[/green]{title}")

    if result.usages:
        table = Table(title="Marks")
        table.add_column("Mark Name")
        table.add_column("Count", justify="right")
        for usage in sorted(result.usages, key=lambda u: u.name):
            table.add_row(usage.name, str(usage.count))
        console.print(table)
    else:
        console.print("  No marks")

    for error in result.plugin_errors:
        console.print(f"  [yellow]plugin {error.plugin_name} failed:[/yellow] {error.cause or error}")
    for warning in result.warnings:
        console.print(f"  [yellow]warning:[/yellow] {warning}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
