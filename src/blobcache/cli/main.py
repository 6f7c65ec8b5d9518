"""Main CLI entry point for blobcache.

Provides command-line access to a cache directory: storing and retrieving
entries, hashing, listing and garbage collection.
"""

import dataclasses
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from blobcache.cache import CacheConfig, FileCache, get_global_config
from blobcache.cache.validation import format_size, parse_size
from blobcache.io import ConsoleIO

# Global console for Rich output
console = Console()


def resolve_config(ctx_cache_dir: Optional[str] = None) -> CacheConfig:
    """Find the cache configuration from multiple sources.

    Priority for the cache directory:
    1. Explicit --cache-dir/-C flag
    2. BLOBCACHE_DIR environment variable
    3. Global configuration (config file or defaults)

    Args:
        ctx_cache_dir: Cache directory from CLI context

    Returns:
        CacheConfig to build the cache from
    """
    config = get_global_config()

    if ctx_cache_dir:
        return dataclasses.replace(config, cache_dir=Path(ctx_cache_dir))

    env_dir = os.environ.get("BLOBCACHE_DIR")
    if env_dir:
        return dataclasses.replace(config, cache_dir=Path(env_dir))

    return config


def open_cache(ctx, config: Optional[CacheConfig] = None) -> FileCache:
    """Build the FileCache for the current invocation.

    Raises:
        click.ClickException: If the cache directory cannot be used
    """
    if config is None:
        config = resolve_config(ctx.obj.get("cache_dir"))
    io = ConsoleIO(verbose=ctx.obj.get("verbose", False))
    cache = FileCache.from_config(config, io=io)

    if not cache.is_enabled():
        raise click.ClickException(
            f"Cache directory {cache.get_root()} is not available"
        )
    return cache


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(),
    help="Cache root directory (default: BLOBCACHE_DIR env var or config file)",
)
@click.option("--verbose", "-v", is_flag=True, help="Trace cache reads and writes")
@click.pass_context
def cli(ctx, cache_dir, verbose):
    """blobcache CLI - Store, retrieve and garbage-collect cached files.

    Use --cache-dir/-C to choose the cache, or set BLOBCACHE_DIR.
    """
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["verbose"] = verbose


# ==================== Entry Commands ====================


@cli.command("put")
@click.argument("key")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def put(ctx, key, source):
    """Copy SOURCE into the cache under KEY.

    Example:
        blobcache put vendor/pkg-1.0.zip ./pkg-1.0.zip
    """
    cache = open_cache(ctx)

    if not cache.copy_from(key, source):
        console.print(f"[red]✗[/red] Could not store '{key}'", style="red")
        sys.exit(1)

    console.print(f"[green]✓[/green] Stored '{key}' as {cache.sanitize(key)}")


@cli.command("get")
@click.argument("key")
@click.argument("target", type=click.Path(dir_okay=False))
@click.pass_context
def get(ctx, key, target):
    """Copy the entry for KEY out of the cache to TARGET.

    Example:
        blobcache get vendor/pkg-1.0.zip ./pkg-1.0.zip
    """
    cache = open_cache(ctx)

    if not cache.copy_to(key, target):
        console.print(f"[red]✗[/red] '{key}' not found in cache", style="red")
        sys.exit(1)

    console.print(f"[green]✓[/green] Copied '{key}' to {target}")


@cli.command("cat")
@click.argument("key")
@click.pass_context
def cat(ctx, key):
    """Write the entry for KEY to stdout."""
    cache = open_cache(ctx)

    contents = cache.read(key)
    if contents is None:
        console.print(f"[red]✗[/red] '{key}' not found in cache", style="red")
        sys.exit(1)

    stdout = click.get_binary_stream("stdout")
    stdout.write(contents)
    stdout.flush()


@cli.command("rm")
@click.argument("key")
@click.pass_context
def rm(ctx, key):
    """Remove the entry for KEY."""
    cache = open_cache(ctx)

    if not cache.remove(key):
        console.print(f"[red]✗[/red] '{key}' not found in cache", style="red")
        sys.exit(1)

    console.print(f"[green]✓[/green] Removed '{key}'")


@cli.command("hash")
@click.argument("key")
@click.option(
    "--algorithm",
    "-a",
    type=click.Choice(["sha1", "sha256"]),
    default="sha256",
    show_default=True,
)
@click.pass_context
def hash_entry(ctx, key, algorithm):
    """Print the digest of the entry for KEY.

    Example:
        blobcache hash vendor/pkg-1.0.zip -a sha1
    """
    cache = open_cache(ctx)

    digest = cache.sha1(key) if algorithm == "sha1" else cache.sha256(key)
    if digest is None:
        console.print(f"[red]✗[/red] '{key}' not found in cache", style="red")
        sys.exit(1)

    click.echo(digest)


# ==================== Maintenance Commands ====================


@cli.command("ls")
@click.pass_context
def ls(ctx):
    """List cache entries."""
    cache = open_cache(ctx)

    entries = cache.entries()
    if not entries:
        console.print("[yellow]Cache is empty[/yellow]")
        return

    table = Table(title=f"Entries ({len(entries)})")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Size", justify="right", style="green")
    table.add_column("Modified", style="blue")
    table.add_column("Accessed", style="magenta")

    for entry in entries:
        table.add_row(
            entry["name"],
            format_size(entry["size_bytes"]),
            entry["modified"][:19].replace("T", " "),
            entry["accessed"][:19].replace("T", " "),
        )

    console.print(table)
    console.print(f"Total: {format_size(cache.total_size())}")


@cli.command("gc")
@click.option("--ttl", type=int, help="Maximum entry age in seconds (default: config)")
@click.option(
    "--max-size",
    help="Size budget, e.g. 300MiB or 1G (default: config)",
)
@click.pass_context
def gc(ctx, ttl, max_size):
    """Expire old entries, then evict least recently used ones over budget.

    Example:
        blobcache gc --ttl 86400 --max-size 100MiB
    """
    config = resolve_config(ctx.obj.get("cache_dir"))
    cache = open_cache(ctx, config)

    try:
        budget = parse_size(max_size) if max_size is not None else config.max_size
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--max-size")
    ttl = ttl if ttl is not None else config.ttl

    count_before = len(cache.entries())
    size_before = cache.total_size()

    cache.gc(ttl, budget)

    removed = count_before - len(cache.entries())
    freed = size_before - cache.total_size()
    console.print(
        f"[green]✓[/green] Removed {removed} entries, freed {format_size(freed)}"
    )


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear(ctx, yes):
    """Delete every cache entry."""
    cache = open_cache(ctx)

    if not yes:
        if not click.confirm(f"Clear cache at {cache.get_root()}?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

    if not cache.clear():
        console.print("[red]✗[/red] Could not clear cache", style="red")
        sys.exit(1)

    console.print("[green]✓[/green] Cache cleared")


if __name__ == "__main__":
    cli()
