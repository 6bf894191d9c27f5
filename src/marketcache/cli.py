"""Click CLI for marketcache — inspect and reset the shared cache."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from marketcache.cache.manager import CacheManager
from marketcache.config.hierarchy import load_settings
from marketcache.utils.geo import haversine_km

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")


def _setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _build_manager(ctx: click.Context) -> CacheManager:
    """Build a manager from the hierarchy plus CLI overrides (patched in tests)."""
    params: dict[str, Any] = ctx.obj or {}
    settings = load_settings(key_prefix=params.get("prefix"))
    if not params.get("verbose"):
        logging.getLogger("marketcache").setLevel(settings.log_level.upper())
    return CacheManager(settings=settings)


def _run(ctx: click.Context, action: Callable[[CacheManager], Awaitable[T]]) -> T:
    manager = _build_manager(ctx)

    async def _go() -> T:
        async with manager:
            return await action(manager)

    return asyncio.run(_go())


def _exit_on_failure(result: Any, what: str) -> None:
    if not result.success:
        error_console.print(f"[red]{what} failed:[/red] {result.error}")
        sys.exit(1)


@click.group()
@click.version_option(package_name="marketcache")
@click.option("--prefix", type=str, default=None, help="Override the key namespace prefix.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
@click.pass_context
def cli(ctx: click.Context, prefix: str | None, verbose: int) -> None:
    """marketcache — shared cache for merchant documents and nearby-merchant queries."""
    _setup_logging(verbose)
    ctx.obj = {"prefix": prefix, "verbose": verbose}


@cli.command()
@click.pass_context
def ping(ctx: click.Context) -> None:
    """Check that the backing store answers."""
    status = _run(ctx, lambda m: m.health_check())
    if status.healthy:
        console.print("[green]Cache healthy.[/green]")
        return
    error_console.print(f"[red]Cache unavailable:[/red] {status.detail}")
    sys.exit(1)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show cached keys per collection."""
    result = _run(ctx, lambda m: m.documents.get_collection_stats())
    _exit_on_failure(result, "Stats")

    table = Table(title="Cached Documents", show_header=True)
    table.add_column("Collection", style="cyan")
    table.add_column("Keys", justify="right")
    for collection, count in (result.data or {}).items():
        table.add_row(collection, str(count))
    console.print(table)


@cli.command()
@click.confirmation_option(prompt="Are you sure you want to clear the cache namespace?")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Delete every key under the namespace prefix."""
    result = _run(ctx, lambda m: m.clear())
    _exit_on_failure(result, "Clear")
    console.print(f"[green]Deleted {result.data} keys.[/green]")


@cli.command("invalidate-collection")
@click.argument("collection")
@click.pass_context
def invalidate_collection(ctx: click.Context, collection: str) -> None:
    """Drop every cached document and query of COLLECTION."""
    result = _run(ctx, lambda m: m.documents.invalidate_collection(collection))
    _exit_on_failure(result, "Invalidation")
    console.print(f"[green]Invalidated {result.data} keys of '{collection}'.[/green]")


@cli.command("invalidate-area")
@click.argument("latitude", type=click.FloatRange(-90, 90))
@click.argument("longitude", type=click.FloatRange(-180, 180))
@click.argument("radius_km", type=click.FloatRange(min=0, min_open=True))
@click.pass_context
def invalidate_area(ctx: click.Context, latitude: float, longitude: float, radius_km: float) -> None:
    """Drop cached nearby-merchant queries centred within RADIUS_KM of a point."""
    result = _run(ctx, lambda m: m.geospatial.invalidate_area_cache(latitude, longitude, radius_km))
    _exit_on_failure(result, "Area invalidation")
    console.print(f"[green]Invalidated {result.data} geo queries.[/green]")


@cli.command()
@click.argument("lat1", type=float)
@click.argument("lon1", type=float)
@click.argument("lat2", type=float)
@click.argument("lon2", type=float)
def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> None:
    """Print the great-circle distance between two points, in km."""
    console.print(f"{haversine_km(lat1, lon1, lat2, lon2):.3f} km")


def main() -> None:
    """Entry point for the CLI."""
    cli()
