"""
CLI interface for jobmatch.

Maintenance commands for the parse cache, the job store and the LLM
providers.
"""

import logging
import sys
from datetime import timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from jobmatch.config.loader import AppConfig, load_config
from jobmatch.core.errors import JobMatchError
from jobmatch.llm.factory import LLMClientFactory
from jobmatch.storage.cache import ParseCache
from jobmatch.storage.db import Storage
from jobmatch.storage.job_store import JobStore
from jobmatch.storage.models import utc_now

app = typer.Typer()
cache_app = typer.Typer(help="Inspect and clean the parse cache.")
jobs_app = typer.Typer(help="Inspect monitored job postings.")
llm_app = typer.Typer(help="Check LLM provider availability.")
app.add_typer(cache_app, name="cache")
app.add_typer(jobs_app, name="jobs")
app.add_typer(llm_app, name="llm")

console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _config(ctx: typer.Context) -> AppConfig:
    return ctx.obj


def _open_cache(config: AppConfig) -> ParseCache:
    return ParseCache(
        Storage(config.storage.db_path),
        ttl=timedelta(days=config.storage.cache_ttl_days),
        enabled=config.storage.cache_enabled,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (defaults to $JOBMATCH_CONFIG or ~/.jobmatch/config.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """jobmatch CLI."""
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _configure_logging("DEBUG" if verbose else config.logging.level)
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        console.print("jobmatch - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the jobmatch database."""
    config = _config(ctx)
    try:
        Storage(config.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {config.storage.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except JobMatchError as e:
        console.print(f"[red]Error initializing database:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(ctx: typer.Context):
    """Show the effective configuration."""
    config = _config(ctx)
    table = Table(title="jobmatch status")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("LLM provider", config.llm.provider)
    table.add_row("Local model", f"{config.llm.local.model} @ {config.llm.local.base_url}")
    table.add_row("Cloud model", f"{config.llm.cloud.model} @ {config.llm.cloud.base_url}")
    table.add_row("Retries", str(config.llm.common.retry_times))
    table.add_row("Database", config.storage.db_path)
    table.add_row("Cache", f"{'enabled' if config.storage.cache_enabled else 'disabled'}, "
                           f"TTL {config.storage.cache_ttl_days} days")
    console.print(table)


@cache_app.command("stats")
def cache_stats(ctx: typer.Context):
    """Show cache entry count, size and expired entries."""
    try:
        stats = _open_cache(_config(ctx)).stats()
    except JobMatchError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Parse cache")
    table.add_column("Entries", justify="right")
    table.add_column("Size (MB)", justify="right")
    table.add_column("Expired", justify="right")
    table.add_column("TTL (days)", justify="right")
    table.add_row(
        str(stats.entry_count),
        stats.total_size_mb,
        str(stats.expired_count),
        f"{stats.ttl_days:g}",
    )
    console.print(table)
    if not stats.enabled:
        console.print("[yellow]Cache is disabled in configuration[/]")


@cache_app.command("clean")
def cache_clean(
    ctx: typer.Context,
    clear_all: bool = typer.Option(False, "--all", "-a", help="Remove every entry, not just expired ones"),
):
    """Remove expired (or all) cache entries."""
    try:
        cache = _open_cache(_config(ctx))
        removed = cache.clear() if clear_all else cache.cleanup()
    except JobMatchError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Removed {removed} cache entries")


@jobs_app.command("list")
def jobs_list(
    ctx: typer.Context,
    days: Optional[int] = typer.Option(
        None,
        "--days",
        "-d",
        help="Only show jobs first seen in the last N days"
    ),
):
    """List stored job postings."""
    try:
        store = JobStore(Storage(_config(ctx).storage.db_path))
        if days is None:
            jobs = store.list_all()
        else:
            jobs = store.list_since(utc_now() - timedelta(days=days))
    except JobMatchError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    if not jobs:
        console.print("[dim]No jobs stored yet.[/]")
        return

    table = Table(title=f"Jobs ({len(jobs)})")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Company")
    table.add_column("Salary")
    table.add_column("First seen")
    table.add_column("Status")
    for job in jobs:
        table.add_row(
            job.job_id,
            job.title,
            job.company,
            job.salary or "-",
            job.first_seen_at.strftime("%Y-%m-%d %H:%M") if job.first_seen_at else "-",
            job.status.value,
        )
    console.print(table)


@llm_app.command("check")
def llm_check(ctx: typer.Context):
    """Check whether the local and cloud providers are reachable."""
    factory = LLMClientFactory(_config(ctx).llm)
    local_ok = factory.is_local_available()
    cloud_ok = factory.is_cloud_available()

    for name, ok in (("local", local_ok), ("cloud", cloud_ok)):
        mark = "[green]✓[/]" if ok else "[red]✗[/]"
        console.print(f"{mark} {name} provider {'available' if ok else 'unavailable'}")

    sys.exit(EXIT_CODE_PASS if local_ok or cloud_ok else EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
