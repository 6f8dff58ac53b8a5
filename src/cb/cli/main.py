"""
CLI for the cache.

Commands:
    cb config - Show current configuration
    cb get KEY - Print a cached object as JSON
    cb clear KEY - Remove a cached object
    cb image URL - Fetch and cache an image
    cb clear-image URL - Remove a cached image
    cb keys [STORE] - List cached keys per store
    cb stats [URL...] - Show cache statistics, optionally after loading images
    cb version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any, Awaitable, Callable, Optional, TypeVar

import orjson
import typer
from rich.console import Console
from rich.table import Table

from cb import __version__
from cb.cache.image_cache import clear_image_cache, close_image_cache, get_cached_image
from cb.cache.kv_store import close_store, get_store
from cb.cache.object_cache import clear_cache, get_cache
from cb.config import Settings, clear_settings_cache, load_settings
from cb.exceptions import CBError, ConfigurationError
from cb.logging import log_context, setup_logging
from cb.observability.cache_stats import get_cache_stats
from cb.types import StoreName, generate_id

T = TypeVar("T")

app = typer.Typer(
    name="cb",
    help="Codbbit cache - inspect and manage the local persistent cache",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return load_settings()
    except ConfigurationError as e:
        error_console.print(f"[dim]{e}[/dim]")
        return None


def _run(make: Callable[[], Awaitable[T]]) -> T:
    """Run a cache coroutine, closing shared handles afterwards."""

    async def runner() -> T:
        try:
            return await make()
        finally:
            await close_image_cache()
            await close_store()

    with log_context(session_id=generate_id("cli")):
        return asyncio.run(runner())


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Check the CACHE_* and HTTP_* environment variables."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    return settings


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = _require_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Cache key (e.g., apexProblemsData)")],
) -> None:
    """Print a cached object as JSON."""
    _require_settings()
    value: Any = _run(lambda: get_cache(key))

    if value is None:
        error_console.print(f"[yellow]No cached value for[/yellow] {key}")
        raise typer.Exit(1)

    console.print_json(orjson.dumps(value).decode("utf-8"))


@app.command()
def clear(
    key: Annotated[str, typer.Argument(help="Cache key to remove")],
) -> None:
    """Remove a cached object."""
    _require_settings()
    _run(lambda: clear_cache(key))
    console.print(f"[green]Cleared[/green] {key}")


@app.command()
def image(
    url: Annotated[str, typer.Argument(help="Image URL to fetch and cache")],
) -> None:
    """Fetch an image into the cache (or read it from there)."""
    _require_settings()
    result = _run(lambda: get_cached_image(url))

    if result == url:
        error_console.print(f"[yellow]Not cached, falling back to[/yellow] {url}")
        raise typer.Exit(1)

    console.print(f"[green]Cached[/green] {url}")
    console.print(f"[dim]{result[:64]}...[/dim] ({len(result)} chars)")


@app.command("clear-image")
def clear_image(
    url: Annotated[str, typer.Argument(help="Image URL to evict")],
) -> None:
    """Remove a cached image so it is refetched next time."""
    _require_settings()
    _run(lambda: clear_image_cache(url))
    console.print(f"[green]Cleared image[/green] {url}")


@app.command()
def keys(
    store: Annotated[
        Optional[StoreName],
        typer.Argument(help="Store to list (default: all stores)"),
    ] = None,
) -> None:
    """List cached keys per store."""
    _require_settings()
    stores = [store] if store is not None else list(StoreName)

    async def collect() -> dict[StoreName, list[str]]:
        db = await get_store()
        return {name: await db.keys(name) for name in stores}

    try:
        listing = _run(collect)
    except CBError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Cached Keys", show_header=True)
    table.add_column("Store", style="cyan")
    table.add_column("Key", style="green")

    for name, names in listing.items():
        for key in names:
            table.add_row(name.value, key if len(key) <= 80 else f"{key[:77]}...")

    console.print(table)
    console.print(
        ", ".join(f"{name.value}: {len(names)} entries" for name, names in listing.items())
    )


@app.command()
def stats(
    urls: Annotated[
        Optional[list[str]],
        typer.Argument(help="Image URLs to load before reporting"),
    ] = None,
    keys: Annotated[
        Optional[list[str]],
        typer.Option("--key", "-k", help="Object cache keys to read before reporting"),
    ] = None,
) -> None:
    """Show cache statistics for this invocation.

    Reads the given keys and loads the given image URLs first, so the
    table reports which of them were hits, misses or failures.
    """
    _require_settings()

    async def warm() -> None:
        for key in keys or []:
            await get_cache(key)
        for url in urls or []:
            await get_cached_image(url)

    if urls or keys:
        _run(warm)

    counters = get_cache_stats().to_dict()
    stores = list(counters)

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Counter", style="cyan")
    for store in stores:
        table.add_column(store, justify="right", style="green")

    for counter in next(iter(counters.values())):
        table.add_row(counter, *(str(counters[store][counter]) for store in stores))

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"codbbit-cache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
