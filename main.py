#!/usr/bin/env python3
"""
CastFeed - Podcast Feed Ingestion Worker
=======================================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                       # Show all commands
    python main.py check-config                 # Validate configuration
    python main.py init-db                      # Initialize database
    python main.py add-podcast ID URL           # Register a podcast feed
    python main.py fetch-feed URL               # Parse a feed without storing it
    python main.py ingest ID                    # Ingest one podcast now
    python main.py run-worker                   # Start queue workers and scheduler
    python main.py status                       # Show podcast scrape health
"""

import sys
import asyncio
import signal

import click
from rich.console import Console
from rich.table import Table

from castfeed.config.settings import get_settings
from castfeed.database.connection import DatabaseConnection
from castfeed.database.models import Podcast
from castfeed.database.schema import DatabaseSchema
from castfeed.ingestion.feed_fetcher import FeedFetcher
from castfeed.storage.podcast_repository import PodcastRepository
from castfeed.utils.exceptions import CastFeedError
from castfeed.utils.logging import configure_application_logging
from castfeed.utils.validators import URLValidator, validate_podcast_id
from castfeed.worker.podcast_worker import PodcastWorker

console = Console()


def _setup_logging(debug: bool) -> None:
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


def _open_database() -> DatabaseConnection:
    settings = get_settings()
    DatabaseSchema(settings.database.path).create_tables()
    return DatabaseConnection(settings.database.path, pool_size=settings.database.pool_size)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """CastFeed - podcast feed ingestion worker."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking CastFeed Configuration[/bold blue]")

    try:
        settings = get_settings()
    except CastFeedError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Details")

    table.add_row("Mode", "production" if settings.is_production_mode() else "development")
    table.add_row("Database", f"{settings.database.path} (pool {settings.database.pool_size})")
    table.add_row("Logging", f"{settings.get_effective_log_level()}, file: {settings.logging.file_path or 'none'}")
    table.add_row("Fetch", f"timeout {settings.fetch.request_timeout}s, max {settings.fetch.max_feed_bytes} bytes")
    table.add_row(
        "Activity feed",
        f"{settings.activity.base_url} group '{settings.activity.feed_group}', "
        f"batch {settings.activity.batch_size}, key {'set' if settings.activity.api_key else 'missing'}",
    )
    table.add_row(
        "Queue",
        f"{settings.queue.attempts} attempts, {settings.queue.backoff_strategy.value} backoff "
        f"{settings.queue.backoff_delay}s, concurrency {settings.queue.concurrency}",
    )
    table.add_row(
        "Scheduler",
        f"every {settings.scheduler.scrape_interval_minutes}m, poll {settings.scheduler.poll_interval_seconds}s",
    )

    console.print(table)
    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.option('--reset', is_flag=True, help='Drop existing tables before creating them')
def init_db(reset):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing CastFeed Database[/bold blue]")

    settings = get_settings()
    schema = DatabaseSchema(settings.database.path)
    if reset:
        if not click.confirm("Drop all podcasts and episodes?"):
            return
        schema.drop_tables()
    schema.create_tables()

    if not schema.verify_schema():
        console.print("[bold red]❌ Database schema verification failed[/bold red]")
        sys.exit(1)

    db = DatabaseConnection(settings.database.path, pool_size=1)
    info = db.get_database_info()
    db.close_all_connections()

    info_table = Table(title="Database Information")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Database Path", settings.database.path)
    info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
    for table_name, count in info['table_counts'].items():
        info_table.add_row(f"{table_name} rows", str(count))

    console.print("[bold green]✅ Database initialized successfully![/bold green]")
    console.print(info_table)


@cli.command()
@click.argument('podcast_id')
@click.argument('url')
@click.option('--title', help='Podcast title (taken from the feed when omitted)')
def add_podcast(podcast_id, url, title):
    """Register a podcast feed for scheduled ingestion."""
    try:
        podcast = Podcast(
            id=validate_podcast_id(podcast_id),
            feed_url=URLValidator.validate_feed_url(url),
            title=title,
        )
        db = _open_database()
        PodcastRepository(db).create_podcast(podcast)
        db.close_all_connections()
    except CastFeedError as e:
        console.print(f"[bold red]❌ Could not add podcast: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Added podcast {podcast.id}: {podcast.feed_url}[/bold green]")


@cli.command()
@click.argument('url')
def fetch_feed(url):
    """Fetch and parse a single feed without storing anything."""
    console.print(f"[bold blue]📡 Fetching Feed: {url}[/bold blue]")

    async def run_fetch():
        fetcher = FeedFetcher()
        return await fetcher.parse_feed(URLValidator.validate_feed_url(url))

    try:
        document = asyncio.run(run_fetch())
    except CastFeedError as e:
        console.print(f"[bold red]❌ Feed fetch error: {e}[/bold red]")
        sys.exit(1)

    info_table = Table(title="Feed Information")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Title", document.title or "Unknown")
    info_table.add_row("Entries", str(len(document.entries)))
    info_table.add_row("Warnings", document.warning or "None")
    console.print(info_table)

    for i, entry in enumerate(document.entries[:3], 1):
        console.print(f"\n{i}. [bold]{entry.title or 'Untitled'}[/bold]")
        console.print(f"   📅 Published: {entry.published_at or 'No date'}")
        console.print(f"   🔗 Link: {entry.link or 'None'}")
        console.print(f"   🎧 Audio: {entry.enclosure_url or 'None'}")


@cli.command()
@click.argument('podcast_id')
@click.option('--url', help='Feed URL (defaults to the stored one)')
@click.option('--enrich', is_flag=True, help='Run queued enrichment jobs before exiting')
@click.pass_context
def ingest(ctx, podcast_id, url, enrich):
    """Run one ingestion for a podcast immediately.

    Enrichment jobs stay queued for run-worker unless --enrich is given.
    """
    _setup_logging(ctx.obj.get('debug', False))
    console.print(f"[bold blue]🎙️ Ingesting podcast {podcast_id}[/bold blue]")

    async def run_ingest():
        worker = PodcastWorker()
        try:
            result = await worker.ingest_once(podcast_id, url)
            enriched = await worker.enrichment_queue.run_until_empty() if enrich else 0
            return result, enriched
        finally:
            await worker.activity_client.close()
            worker.db.close_all_connections()

    try:
        result, enriched = asyncio.run(run_ingest())
    except CastFeedError as e:
        console.print(f"[bold red]❌ Ingestion failed: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Ingestion Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Entries in feed", str(result.entries))
    table.add_row("Created", str(result.created))
    table.add_row("Updated", str(result.updated))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Activity batches", str(result.activity_batches))
    table.add_row("Enrichment jobs", str(result.enrichment_jobs))
    if enrich:
        table.add_row("Enrichment jobs run", str(enriched))
    table.add_row("Post count", str(result.post_count))
    table.add_row("Duration", f"{result.duration_seconds or 0:.2f}s")
    console.print(table)


@cli.command()
@click.pass_context
def run_worker(ctx):
    """Start podcast queue workers and the feed scheduler."""
    _setup_logging(ctx.obj.get('debug', False))
    console.print("[bold blue]🚀 Starting CastFeed worker[/bold blue]")

    async def run():
        worker = PodcastWorker()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.shutdown()))
        await worker.run()

    asyncio.run(run())
    console.print("[yellow]👋 CastFeed worker stopped[/yellow]")


@cli.command()
def status():
    """Show all podcasts with their scrape health."""
    console.print("[bold blue]📊 Podcast Status Report[/bold blue]")

    db = _open_database()
    try:
        podcasts = PodcastRepository(db).get_all_podcasts()
    finally:
        db.close_all_connections()

    if not podcasts:
        console.print("[yellow]⚠️ No podcasts found in database[/yellow]")
        return

    table = Table(title="Podcasts")
    table.add_column("Status", style="green")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Episodes", justify="right")
    table.add_column("Failures", style="red", justify="right")
    table.add_column("Last Success")

    for podcast in podcasts:
        if not podcast.active:
            marker = "⚪"
        elif podcast.consecutive_scrape_failures == 0:
            marker = "🟢"
        elif podcast.is_healthy():
            marker = "🟡"
        else:
            marker = "🔴"
        title = podcast.title or "Untitled"

        table.add_row(
            marker,
            podcast.id,
            title[:30] + "..." if len(title) > 30 else title,
            str(podcast.post_count),
            str(podcast.consecutive_scrape_failures),
            str(podcast.last_success_at) if podcast.last_success_at else "Never",
        )

    console.print(table)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 CastFeed interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
