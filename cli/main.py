"""CLI main entry point."""

import click

from cli.commands.archive import archive_dedupe, archive_periods, archive_stats, clear_archive
from cli.commands.health import check_health
from cli.commands.serve import serve
from src import __version__


@click.group()
@click.version_option(version=__version__)
def cli():
    """Nostr Media Observatory - time-navigable media feed for Nostr"""
    pass


# Add commands to CLI
cli.add_command(serve)
cli.add_command(archive_stats)
cli.add_command(archive_periods)
cli.add_command(archive_dedupe)
cli.add_command(clear_archive)
cli.add_command(check_health)


if __name__ == "__main__":
    cli()
