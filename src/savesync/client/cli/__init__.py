"""Command-line interface for savesync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- track / untrack: Manage the tracked save files of an item
- scan: Check tracked files for changes
- status: Show tracked files and stored records
- watch: Scan while the item runs and record the session
- compare: Compare local and remote progress
- push: Upload changed files
- pull: Download the remote copy
- migrate: Move a legacy remote layout into the current layout
"""

from __future__ import annotations

import click

from savesync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db_path,
    load_config,
    load_engine_config,
    require_engine_config,
    save_config,
    setup_logging,
)
from savesync.client.cli.migrate import migrate
from savesync.client.cli.sync import compare, pull, push
from savesync.client.cli.tracking import scan, status, track, untrack, watch


@click.group()
@click.version_option(package_name="savesync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """savesync - Track and synchronize application save files."""
    setup_logging(verbose)


# Tracking commands
cli.add_command(track)
cli.add_command(untrack)
cli.add_command(scan)
cli.add_command(status)
cli.add_command(watch)

# Sync commands
cli.add_command(compare)
cli.add_command(push)
cli.add_command(pull)
cli.add_command(migrate)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "get_state_db_path",
    "load_config",
    "load_engine_config",
    "require_engine_config",
    "save_config",
]
