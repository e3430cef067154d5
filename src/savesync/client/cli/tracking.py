"""Tracking commands for the savesync CLI.

Commands:
- track: Opt files into tracking
- untrack: Stop tracking a file
- scan: Run one change scan
- status: Show stored records
- watch: Scan continuously until interrupted, then record the session
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import click

from savesync.client.cli.config import (
    get_item_root,
    get_state_db_path,
    require_engine_config,
    set_item_root,
)
from savesync.client.manifest import DEFAULT_PROFILE_ID, format_timespan
from savesync.core.errors import PersistenceError, ValidationError
from savesync.core.paths import contract_path, is_portable

profile_option = click.option(
    "--profile",
    default=DEFAULT_PROFILE_ID,
    show_default=True,
    help="Profile of the item.",
)
root_option = click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Install directory of the item (remembered after 'track').",
)


def resolve_item_root(item: str, root: Path | None) -> Path:
    """Return the given root or the one remembered for the item.

    Raises:
        click.UsageError: If neither is available.
    """
    if root is not None:
        return root.expanduser().absolute()
    remembered = get_item_root(item)
    if remembered is None:
        raise click.UsageError(f"No install root known for '{item}'. Pass --root.")
    return remembered


def _tracked_entry(path: Path, install_root: Path) -> str:
    """Stored form of a tracked path: portable when possible, else absolute."""
    absolute = path.expanduser()
    if not absolute.is_absolute():
        absolute = install_root / absolute
    portable = contract_path(absolute, install_root)
    return portable if is_portable(portable) else str(absolute)


@click.command()
@click.argument("item")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@root_option
def track(item: str, paths: tuple[Path, ...], root: Path | None) -> None:
    """Track save files of ITEM.

    Relative PATHS are taken relative to the install root. Files must lie
    below the install root or the user profile.
    """
    from savesync.client.state import LocalRecordStore

    install_root = resolve_item_root(item, root)
    if root is not None:
        set_item_root(item, install_root)

    store = LocalRecordStore(get_state_db_path())
    try:
        for path in paths:
            try:
                entry = _tracked_entry(path, install_root)
            except ValidationError as e:
                click.echo(f"Error: {e}", err=True)
                sys.exit(1)
            if not is_portable(entry):
                click.echo(
                    f"Error: {entry} is outside the install root and user profile; "
                    "its remote location cannot be recorded.",
                    err=True,
                )
                sys.exit(1)
            store.add_tracked_path(item, entry)
            click.echo(f"Tracking {entry}")
    finally:
        store.close()


@click.command()
@click.argument("item")
@click.argument("path", type=click.Path(path_type=Path))
@root_option
def untrack(item: str, path: Path, root: Path | None) -> None:
    """Stop tracking PATH for ITEM. Its record is kept."""
    from savesync.client.state import LocalRecordStore

    install_root = resolve_item_root(item, root)
    candidates = {str(path)}
    try:
        candidates.add(_tracked_entry(path, install_root))
    except ValidationError:
        pass  # Remove by the literal path only

    store = LocalRecordStore(get_state_db_path())
    try:
        removed = [entry for entry in sorted(candidates) if store.remove_tracked_path(item, entry)]
    finally:
        store.close()

    if not removed:
        click.echo(f"Not tracked: {path}", err=True)
        sys.exit(1)
    for entry in removed:
        click.echo(f"Stopped tracking {entry}")


@click.command()
@click.argument("item")
@root_option
@profile_option
def scan(item: str, root: Path | None, profile: str) -> None:
    """Check tracked files of ITEM for changes."""
    from savesync.client.state import LocalRecordStore
    from savesync.client.sync.change_tracker import ChangeTracker

    install_root = resolve_item_root(item, root)
    store = LocalRecordStore(get_state_db_path())
    try:
        previous = store.load_record_set(item, profile)
        result = ChangeTracker(install_root).scan(previous, store.list_tracked_paths(item))
        if result.candidates or previous is None:
            store.save_record_set(item, profile, result.records)
    except PersistenceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    for path in result.candidates:
        click.echo(f"  * {path}")
    for portable in result.missing:
        click.echo(f"  ? {portable} (missing)")
    for portable, error in result.errors.items():
        click.echo(click.style(f"  ✗ {portable}: {error}", fg="red"))

    if not result.candidates:
        click.echo("No changes.")
    else:
        click.echo(f"{len(result.candidates)} changed file(s).")

    if not result.success:
        sys.exit(1)


@click.command()
@click.argument("item")
@profile_option
def status(item: str, profile: str) -> None:
    """Show tracked files and stored records of ITEM."""
    from savesync.client.state import LocalRecordStore

    store = LocalRecordStore(get_state_db_path())
    try:
        tracked = store.list_tracked_paths(item)
        records = store.load_record_set(item, profile)
    finally:
        store.close()

    click.echo(f"Item: {item} (profile {profile})")
    click.echo(f"Tracked files: {len(tracked)}")
    for entry in tracked:
        click.echo(f"  {entry}")

    if records is None:
        click.echo("No records yet. Run 'savesync scan'.")
        return

    click.echo(f"Play time: {format_timespan(records.play_time)}")
    click.echo(f"Last sync status: {records.last_sync_status}")
    click.echo(f"Records: {len(records)}")
    for key in sorted(records.files):
        record = records.files[key]
        marker = "*" if record.is_pending else " "
        click.echo(f"  {marker} {key}  {record.checksum}  {record.size_bytes} bytes")


@click.command()
@click.argument("item")
@root_option
@profile_option
def watch(item: str, root: Path | None, profile: str) -> None:
    """Scan ITEM continuously while it runs; Ctrl+C ends the session."""
    from savesync.client.state import LocalRecordStore
    from savesync.client.sync.change_tracker import ChangeTracker
    from savesync.client.sync.session import TrackingSession

    install_root = resolve_item_root(item, root)
    engine_config = require_engine_config()
    store = LocalRecordStore(get_state_db_path())
    session = TrackingSession(
        store,
        ChangeTracker(install_root),
        item,
        profile,
        tracked_paths=lambda: store.list_tracked_paths(item),
        interval=engine_config.scan_interval,
    )

    click.echo(f"Tracking {item}... (Ctrl+C to stop)")
    session.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nEnding session...")

    try:
        result = session.end_session()
    except PersistenceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    click.echo(f"Session recorded, {len(result.candidates)} file(s) changed in the final scan.")
