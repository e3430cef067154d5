"""Migrate command for the savesync CLI.

Commands:
- migrate: Move a legacy flat remote layout into the current layout
"""

from __future__ import annotations

import sys

import click

from savesync.client.cli.config import require_engine_config
from savesync.client.cli.tracking import profile_option
from savesync.client.manifest import LEGACY_MANIFEST_FILENAME, record_set_filename
from savesync.client.transport import join_remote_path
from savesync.core.errors import TransientTransportError
from savesync.core.types import ConflictPolicy, MigrationAction

ACTION_SYMBOLS = {
    MigrationAction.COPY: "+",
    MigrationAction.REPLACE: "~",
    MigrationAction.SKIP: "=",
}


@click.command()
@click.argument("item")
@click.argument("legacy_remote")
@click.argument("current_remote")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ConflictPolicy]),
    default=ConflictPolicy.MERGE.value,
    show_default=True,
    help="What to do when CURRENT_REMOTE already has saves.",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without copying anything.")
@profile_option
def migrate(
    item: str,
    legacy_remote: str,
    current_remote: str,
    policy: str,
    dry_run: bool,
    profile: str,
) -> None:
    """Migrate saves of ITEM from LEGACY_REMOTE to CURRENT_REMOTE."""
    from savesync.client.sync.migration import (
        MigrationPlanner,
        build_migrated_records,
        execute_plan,
    )
    from savesync.client.sync.uploader import upload_manifest
    from savesync.client.transport import RcloneTransport

    engine_config = require_engine_config()
    transport = RcloneTransport(engine_config.rclone_executable, engine_config.rclone_config)
    conflict_policy = ConflictPolicy(policy)
    current_manifest = join_remote_path(current_remote, record_set_filename(profile))

    try:
        legacy = transport.fetch_remote_record_set(
            join_remote_path(legacy_remote, LEGACY_MANIFEST_FILENAME),
            engine_config.remote_timeout,
        )
        current = transport.fetch_remote_record_set(current_manifest, engine_config.remote_timeout)
    except TransientTransportError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if legacy is None:
        click.echo(f"Error: No legacy saves found for {item} at {legacy_remote}", err=True)
        sys.exit(1)

    plan = MigrationPlanner().plan(legacy, current, conflict_policy)
    if plan.purge_destination:
        click.echo(click.style(f"Existing saves at {current_remote} will be removed.", fg="yellow"))
    for action in plan.actions:
        click.echo(f"  {ACTION_SYMBOLS[action.action]} {action.source_name} -> {action.destination}")
    click.echo(f"{plan.copy_count} to copy, {plan.skip_count} to skip.")

    if dry_run or plan.is_empty:
        if plan.is_empty:
            click.echo("Nothing to migrate.")
        return

    outcome = execute_plan(
        plan,
        transport,
        legacy_remote,
        current_remote,
        engine_config.transfer_timeout,
    )
    if outcome.purge_error:
        click.echo(f"Error: Could not remove existing saves: {outcome.purge_error}", err=True)
        sys.exit(1)

    for path, error in outcome.failed.items():
        click.echo(click.style(f"  ✗ {path}: {error}", fg="red"))

    records = build_migrated_records(legacy, current, plan, outcome)
    manifest = upload_manifest(transport, records, current_manifest, engine_config.transfer_timeout)
    if not manifest.success:
        click.echo(f"Error: Failed to upload new manifest: {manifest.error}", err=True)
        sys.exit(1)

    click.echo(f"Migration complete: {len(outcome.copied)} copied, {len(outcome.failed)} failed.")
    if not outcome.succeeded:
        sys.exit(1)
