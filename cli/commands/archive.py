"""Archive maintenance CLI commands (operate on the snapshot files)."""

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _load_store():
    """Load the archive snapshot into a standalone store."""
    from src.repositories.snapshot_repository import JsonSnapshotRepository
    from src.services.core.time_machine import MediaTimeMachine

    repository = JsonSnapshotRepository()
    store = MediaTimeMachine(repository=repository, save_delay_seconds=0)
    store.load(triggered_by="cli")
    return store, repository


@click.command(name="stats")
def archive_stats():
    """Show archived media counts per type."""
    from datetime import datetime

    store, repository = _load_store()

    console.print(f"[bold blue]Archive:[/bold blue] {repository.archive_path}\n")

    table = Table(title="Archived Media")
    table.add_column("Type", style="cyan")
    table.add_column("Count", justify="right")

    for media_type, count in store.stats().items():
        table.add_row(media_type.value, str(count))
    table.add_row("[bold]total[/bold]", f"[bold]{store.total_count}[/bold]")

    console.print(table)

    span = store.time_span()
    if span:
        oldest, newest = (datetime.fromtimestamp(ts / 1000) for ts in span)
        console.print(
            f"\nImages from [green]{oldest:%Y-%m-%d %H:%M}[/green] "
            f"to [green]{newest:%Y-%m-%d %H:%M}[/green]"
        )
    else:
        console.print("\n[dim]No images archived yet[/dim]")


@click.command(name="periods")
@click.option("--bucket-minutes", type=click.IntRange(min=1), default=None, help="Bucket size (default: HISTOGRAM_BUCKET_MINUTES)")
@click.option("--limit", type=click.IntRange(min=1), default=24, help="Number of most recent buckets to show")
def archive_periods(bucket_minutes, limit):
    """Show the image histogram, newest bucket first."""
    store, _ = _load_store()
    buckets = store.time_buckets(bucket_minutes)

    table = Table(title="Image Periods")
    table.add_column("Period", style="cyan")
    table.add_column("Images", justify="right")

    for bucket in buckets[:limit]:
        count = f"[green]{bucket.count}[/green]" if bucket.count else "[dim]0[/dim]"
        table.add_row(bucket.label, count)

    console.print(table)
    if len(buckets) > limit:
        console.print(f"[dim]... {len(buckets) - limit} older periods not shown[/dim]")


@click.command(name="dedupe")
def archive_dedupe():
    """Remove duplicate (url, event) entries from the archive snapshot.

    Run this while the server is stopped; a running server keeps its own
    copy of the archive (use POST /api/time-machine/dedupe instead).
    """
    store, _ = _load_store()
    # Loading already drops repeats found in the snapshot file
    dropped = (store.last_run or {}).get("duplicates_dropped", {})
    removed = store.dedupe(triggered_by="cli")
    removed = {key: count + dropped.get(key, 0) for key, count in removed.items()}

    if not store.flush():
        console.print("[red]Failed to write the archive snapshot[/red]")
        raise SystemExit(1)

    table = Table(title="Duplicates Removed")
    table.add_column("Type", style="cyan")
    table.add_column("Removed", justify="right")
    table.add_column("Remaining", justify="right")

    stats = store.stats()
    for media_type, count in stats.items():
        table.add_row(media_type.value, str(removed[media_type.value]), str(count))

    console.print(table)
    console.print(f"\n[bold green]✓ Removed {sum(removed.values())} duplicates[/bold green]")


@click.command(name="clear-archive")
@click.confirmation_option(prompt="This deletes every archived media item. Continue?")
def clear_archive():
    """Empty the archive snapshot."""
    store, repository = _load_store()
    total = store.total_count
    store.clear(triggered_by="cli")

    if not store.flush():
        console.print("[red]Failed to write the archive snapshot[/red]")
        raise SystemExit(1)

    console.print(f"[bold green]✓ Cleared {total} items from {repository.archive_path}[/bold green]")
