"""Command-line interface for VstupCore."""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from vstupcore import __version__
from vstupcore.cancellation import CancellationToken
from vstupcore.config import Config, load_config
from vstupcore.container import DependencyContainer
from vstupcore.crawler.proxy_pool import load_proxy_file
from vstupcore.errors import ConfigurationError, CrawlCancelled, VstupError
from vstupcore.observability.observers import CompositeObserver, LoggingObserver
from vstupcore.progress import STAGE_NAMES
from vstupcore.protocols import ProgressSnapshot, RequestLogEntry

console = Console()
logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class RichProgressObserver:
    """Mirrors progress snapshots onto one rich progress bar per stage."""

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self._tasks: Dict[str, TaskID] = {name: progress.add_task(name, total=None) for name in STAGE_NAMES}

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        counts = {
            "Cities": (snapshot.parsed_cities, snapshot.total_cities),
            "Universities": (snapshot.parsed_universities, snapshot.total_universities),
            "Offers": (snapshot.parsed_offers, snapshot.total_offers),
            "Applications": (snapshot.parsed_applications, snapshot.total_applications),
        }
        for name, (parsed, total) in counts.items():
            self.progress.update(self._tasks[name], completed=parsed, total=total or None)

    def on_request_log(self, entry: RequestLogEntry) -> None:
        pass


def _load(ctx: click.Context) -> Config:
    try:
        return load_config(ctx.obj["config_path"])
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(EXIT_FAILURE)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """VstupCore - resumable crawler for Ukrainian admissions data."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--proxies", type=click.Path(dir_okay=False), help="Proxy credentials file")
@click.option("--db", type=click.Path(dir_okay=False), help="SQLite database file")
@click.option("--all-cities", is_flag=True, help="Crawl universities of every city, not only the capital")
@click.pass_context
def crawl(ctx: click.Context, proxies: Optional[str], db: Optional[str], all_cities: bool) -> None:
    """Run the crawl, resuming from whatever is already stored."""
    config = _load(ctx)
    crawler_updates: Dict[str, Any] = {}
    if proxies:
        crawler_updates["proxies_file"] = Path(proxies)
    if all_cities:
        crawler_updates["capital_city"] = None
    config = config.model_copy(
        update={
            "crawler": config.crawler.model_copy(update=crawler_updates),
            "storage": config.storage.model_copy(update={"db_path": Path(db)}) if db else config.storage,
            "monitoring": config.monitoring.model_copy(update={"log_level": ctx.obj["log_level"]})
            if ctx.obj["log_level"]
            else config.monitoring,
        }
    )

    console.print(
        Panel.fit(
            f"[bold blue]VstupCore crawl[/bold blue]\n"
            f"Proxies: {config.crawler.proxies_file}\n"
            f"Database: {config.storage.db_path}\n"
            f"City filter: {config.crawler.capital_city or 'all cities'}",
            title="Starting",
        )
    )
    sys.exit(asyncio.run(_crawl(ctx.obj["config_path"], config)))


async def _crawl(config_path: Optional[Path], config: Config) -> int:
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int, frame: Any) -> None:
        console.print(f"\n[yellow]Received signal {signum}, stopping after the current request...[/yellow]")
        loop.call_soon_threadsafe(cancel.cancel)

    previous = {sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            observer = CompositeObserver([LoggingObserver(), RichProgressObserver(progress)])
            container = DependencyContainer(config_path, config=config, observer=observer)
            async with container.lifecycle():
                pipeline = await container.get_pipeline()
                snapshot = await pipeline.run(cancel)
    except CrawlCancelled:
        console.print("[yellow]Crawl cancelled. Re-run to resume.[/yellow]")
        return EXIT_CANCELLED
    except VstupError as e:
        logger.error("Crawl failed", error=str(e), error_type=type(e).__name__)
        console.print(f"[red]Crawl failed:[/red] {e}")
        return EXIT_FAILURE
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    console.print(f"[green]Crawl {snapshot.current_stage.lower()}[/green] ({snapshot.overall_percentage:.1f}%)")
    return EXIT_OK


@cli.command()
@click.option("--db", type=click.Path(dir_okay=False), help="SQLite database file")
@click.pass_context
def status(ctx: click.Context, db: Optional[str]) -> None:
    """Print how many records of each kind are stored."""
    config = _load(ctx)
    if db:
        config = config.model_copy(update={"storage": config.storage.model_copy(update={"db_path": Path(db)})})

    async def collect() -> Dict[str, int]:
        container = DependencyContainer(ctx.obj["config_path"], config=config)
        async with container.lifecycle():
            stores = await container.get_stores()
            return await stores.counts()

    counts = asyncio.run(collect())
    table = Table(title=f"Records in {config.storage.db_path}")
    table.add_column("Entity", style="cyan")
    table.add_column("Count", justify="right", style="magenta")
    for entity, count in counts.items():
        table.add_row(entity, str(count))
    console.print(table)


@cli.command("check-proxies")
@click.option("--proxies", type=click.Path(dir_okay=False), help="Proxy credentials file")
@click.pass_context
def check_proxies(ctx: click.Context, proxies: Optional[str]) -> None:
    """Validate the proxy file without touching the network."""
    config = _load(ctx)
    path = Path(proxies) if proxies else config.crawler.proxies_file
    try:
        credentials = load_proxy_file(path)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_FAILURE)

    if not credentials:
        console.print(f"[red]No valid proxies in {path}[/red]")
        sys.exit(EXIT_FAILURE)
    console.print(f"[green]{len(credentials)} valid proxies[/green] in {path}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
