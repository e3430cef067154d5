"""Sync commands for the savesync CLI.

Commands:
- compare: Compare local and remote progress
- push: Upload changed files unless the remote is ahead
- pull: Download the remote copy unless local progress is ahead
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from savesync.client.cli.config import get_state_db_path, require_engine_config
from savesync.client.cli.tracking import profile_option, resolve_item_root, root_option
from savesync.client.manifest import LEGACY_MANIFEST_FILENAME, record_set_filename
from savesync.client.transport import join_remote_path
from savesync.core.errors import PersistenceError, TransientTransportError
from savesync.core.paths import is_portable
from savesync.core.types import SyncStatus

STATUS_COLORS = {
    SyncStatus.LOCAL_AHEAD: "green",
    SyncStatus.CLOUD_AHEAD: "yellow",
    SyncStatus.SIMILAR: "cyan",
    SyncStatus.REMOTE_NOT_FOUND: "blue",
}


def _manifest_paths(remote: str, profile: str) -> tuple[str, str]:
    """Profile manifest and legacy manifest below REMOTE."""
    return (
        join_remote_path(remote, record_set_filename(profile)),
        join_remote_path(remote, LEGACY_MANIFEST_FILENAME),
    )


@click.command()
@click.argument("item")
@click.argument("remote")
@click.option("--manual", is_flag=True, help="Use the larger interactive threshold.")
@root_option
@profile_option
def compare(item: str, remote: str, manual: bool, root: Path | None, profile: str) -> None:
    """Compare progress of ITEM with its copy below REMOTE.

    REMOTE is an rclone path such as "gdrive:SaveSync/Hollow".
    """
    from savesync.client.state import LocalRecordStore
    from savesync.client.sync.comparator import compare_with_remote
    from savesync.client.transport import RcloneTransport

    install_root = resolve_item_root(item, root)
    engine_config = require_engine_config()
    threshold = engine_config.manual_threshold if manual else engine_config.auto_threshold

    store = LocalRecordStore(get_state_db_path())
    try:
        local_records = store.load_record_set(item, profile)
    finally:
        store.close()

    transport = RcloneTransport(engine_config.rclone_executable, engine_config.rclone_config)
    manifest_path, legacy_path = _manifest_paths(remote, profile)
    comparison = compare_with_remote(
        local_records,
        transport,
        manifest_path,
        threshold,
        engine_config.remote_timeout,
        install_root=install_root,
        legacy_remote_path=legacy_path,
    )

    click.echo(click.style(comparison.status.value, fg=STATUS_COLORS[comparison.status]))
    click.echo(comparison.message)


@click.command()
@click.argument("item")
@click.argument("remote")
@click.option("--force", is_flag=True, help="Upload even if the remote is ahead.")
@root_option
@profile_option
def push(item: str, remote: str, force: bool, root: Path | None, profile: str) -> None:
    """Upload changed save files of ITEM to REMOTE.

    Files that could not be read, uploaded or found, and a manifest that
    could not be written, make the command exit with status 1. A manifest
    left over from a failed push is uploaded even if no file changed.
    """
    from savesync.client.state import LocalRecordStore
    from savesync.client.sync.change_tracker import ChangeTracker
    from savesync.client.sync.comparator import compare_with_remote
    from savesync.client.sync.uploader import (
        PushResult,
        collect_candidates,
        manifest_pending,
        push_candidates,
        resume_manifest,
    )
    from savesync.client.transport import RcloneTransport

    install_root = resolve_item_root(item, root)
    engine_config = require_engine_config()
    transport = RcloneTransport(engine_config.rclone_executable, engine_config.rclone_config)
    manifest_path, legacy_path = _manifest_paths(remote, profile)

    store = LocalRecordStore(get_state_db_path())
    try:
        previous = store.load_record_set(item, profile)
        tracked = store.list_tracked_paths(item)
        scan_result = ChangeTracker(install_root).scan(previous, tracked)
        records = scan_result.records

        comparison = compare_with_remote(
            records,
            transport,
            manifest_path,
            engine_config.auto_threshold,
            engine_config.remote_timeout,
            install_root=install_root,
            legacy_remote_path=legacy_path,
        )
        click.echo(comparison.message)

        if comparison.cloud_is_ahead and not force:
            store.save_record_set(item, profile, records)
            click.echo("Remote has more progress, not uploading. Use --force to overwrite.")
            sys.exit(1)

        candidates, unresolved = collect_candidates(records, scan_result.candidates, install_root)
        if candidates:
            result = push_candidates(
                records,
                candidates,
                transport,
                remote,
                install_root,
                engine_config.transfer_timeout,
                profile_id=profile,
            )
        elif manifest_pending(records):
            result = resume_manifest(records, transport, remote, engine_config.transfer_timeout, profile_id=profile)
        else:
            result = PushResult(records=records)
        store.save_record_set(item, profile, result.records)
    except PersistenceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    # Pending records of files untracked since their last change are ignored
    tracked_set = set(tracked)
    for portable, reason in unresolved.items():
        if portable in tracked_set or not is_portable(portable):
            result.failed.setdefault(portable, reason)

    for path, error in scan_result.errors.items():
        click.echo(click.style(f"  ✗ {path}: could not read: {error}", fg="red"))
    for portable in result.uploaded:
        click.echo(f"  ↑ {portable}")
    for portable, error in result.failed.items():
        click.echo(click.style(f"  ✗ {portable}: {error}", fg="red"))

    if result.manifest_error is not None:
        click.echo(
            click.style(f"Manifest upload failed: {result.manifest_error}. The next push retries it.", fg="red")
        )
    elif result.manifest_uploaded and not result.uploaded:
        click.echo("Uploaded manifest left over from the previous push.")
    elif not (result.uploaded or result.failed or scan_result.errors):
        click.echo("Everything is up to date.")
        return

    click.echo(f"Uploaded {len(result.uploaded)} file(s), {len(result.failed)} failed.")
    if scan_result.errors:
        click.echo(f"{len(scan_result.errors)} tracked file(s) could not be read.")
    if not result.succeeded or not scan_result.success:
        sys.exit(1)


@click.command()
@click.argument("item")
@click.argument("remote")
@click.option("--force", is_flag=True, help="Download even if local progress is ahead.")
@root_option
@profile_option
def pull(item: str, remote: str, force: bool, root: Path | None, profile: str) -> None:
    """Download the saves of ITEM from REMOTE into its install root.

    Downloaded files become tracked, and their records count as synchronized.
    """
    from savesync.client.state import LocalRecordStore
    from savesync.client.sync.comparator import compare, fetch_remote_records, local_usage_sample
    from savesync.client.sync.downloader import pull_records
    from savesync.client.transport import RcloneTransport

    install_root = resolve_item_root(item, root)
    engine_config = require_engine_config()
    transport = RcloneTransport(engine_config.rclone_executable, engine_config.rclone_config)
    manifest_path, legacy_path = _manifest_paths(remote, profile)

    try:
        remote_records = fetch_remote_records(transport, manifest_path, engine_config.remote_timeout, legacy_path)
    except TransientTransportError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if remote_records is None:
        click.echo(f"Error: No cloud save found for {item} at {remote}", err=True)
        sys.exit(1)

    store = LocalRecordStore(get_state_db_path())
    try:
        local_records = store.load_record_set(item, profile)
        comparison = compare(
            local_usage_sample(local_records, install_root),
            remote_records.usage_sample(),
            engine_config.auto_threshold,
        )
        click.echo(comparison.message)

        if comparison.status is SyncStatus.LOCAL_AHEAD and not force:
            click.echo("Local has more progress, not downloading. Use --force to overwrite.")
            sys.exit(1)

        result = pull_records(
            remote_records,
            local_records,
            transport,
            remote,
            install_root,
            engine_config.transfer_timeout,
        )
        for portable in [*result.downloaded, *result.unchanged]:
            if is_portable(portable):
                store.add_tracked_path(item, portable)
        store.save_record_set(item, profile, result.records)
    except PersistenceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    for portable in result.downloaded:
        click.echo(f"  ↓ {portable}")
    for portable, error in result.failed.items():
        click.echo(click.style(f"  ✗ {portable}: {error}", fg="red"))

    click.echo(
        f"Downloaded {len(result.downloaded)} file(s), {len(result.unchanged)} unchanged, "
        f"{len(result.failed)} failed."
    )
    if not result.succeeded:
        sys.exit(1)
