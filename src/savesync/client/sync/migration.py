"""Conflict resolution for migrating a legacy remote layout.

This module provides:
- MigrationPlanner: Build a MigrationPlan from legacy and current record sets
- execute_plan: Run a plan through a Transport, file by file
- build_migrated_records: Record set describing the current layout afterwards

Layouts:
    Legacy layout: files stored flat below the legacy root, keyed by file
    name. Each record still carries the structured path of the file:

        legacy:/Hollow/save.dat     Path = "%GAMEPATH%/Saves/save.dat"

    Current layout: files stored below the current root with their
    directory structure restored from that path:

        current:/Hollow/Saves/save.dat

Policies (only matter when the current layout already has records):
    KEEP_EXISTING: nothing is copied.
    REPLACE_WITH_LEGACY: the current root is purged, then every legacy file is copied.
    MERGE: legacy files whose destination is not in the current layout are copied.

Execution is best-effort per file: a failed copy is recorded and the next
file is attempted. Only a failed purge aborts the whole run, since copying
into a half-purged root would mix both layouts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from savesync.client.manifest import is_manifest_file
from savesync.client.transport import join_remote_path
from savesync.core.errors import TransientTransportError
from savesync.core.paths import (
    GAMEPATH_MARKER,
    file_name,
    is_portable,
    resolve_relative_path,
)
from savesync.core.records import ChecksumRecord, RecordSet
from savesync.core.types import ActionOutcome, ConflictPolicy, MigrationAction

if TYPE_CHECKING:
    from savesync.client.sync.cancellation import CancellationToken
    from savesync.client.transport import Transport

logger = logging.getLogger(__name__)

MIGRATED_SYNC_STATUS = "Migrated"


def migrated_path(record_path: str) -> str:
    """Portable path of a legacy record in the current layout.

    Marked paths keep their marker. Anything else is re-rooted at
    %GAMEPATH%; absolute paths lose their directories:

        %GAMEPATH%/Saves/save.dat  ->  %GAMEPATH%/Saves/save.dat
        C:/Games/Hollow/save.dat   ->  %GAMEPATH%/save.dat
        Saves/save.dat             ->  %GAMEPATH%/Saves/save.dat
    """
    normalized = record_path.replace("\\", "/")
    if is_portable(normalized):
        return normalized
    return f"{GAMEPATH_MARKER}/{resolve_relative_path(normalized)}"


def _is_bookkeeping(key: str) -> bool:
    return is_manifest_file(file_name(key))


@dataclass(frozen=True)
class PlannedAction:
    """One file of a migration plan.

    Attributes:
        action: COPY, SKIP or REPLACE.
        source_name: Flat file name below the legacy root.
        destination_path: Portable path in the current layout.
        record: Legacy record of the file.
    """

    action: MigrationAction
    source_name: str
    destination_path: str
    record: ChecksumRecord

    @property
    def destination(self) -> str:
        """Destination relative to the current root (e.g. "Saves/save.dat")."""
        return resolve_relative_path(self.destination_path)

    @property
    def transfers(self) -> bool:
        return self.action is not MigrationAction.SKIP


@dataclass
class MigrationPlan:
    """Ordered list of per-file actions. Built once, executed once.

    Attributes:
        policy: Policy the plan was built under.
        actions: Actions in legacy key order.
        purge_destination: Purge the current root before copying.
        ignore_existing: Never overwrite a file already present at the destination.
    """

    policy: ConflictPolicy
    actions: list[PlannedAction] = field(default_factory=list)
    purge_destination: bool = False
    ignore_existing: bool = False

    @property
    def copy_count(self) -> int:
        return sum(1 for a in self.actions if a.transfers)

    @property
    def skip_count(self) -> int:
        return sum(1 for a in self.actions if not a.transfers)

    @property
    def is_empty(self) -> bool:
        """True when the plan copies nothing."""
        return self.copy_count == 0


class MigrationPlanner:
    """Builds migration plans.

    Usage:
        plan = MigrationPlanner().plan(legacy, current, ConflictPolicy.MERGE)
        outcome = execute_plan(plan, transport, legacy_root, current_root, timeout=60)
        records = build_migrated_records(legacy, current, plan, outcome)
    """

    def plan(
        self,
        legacy_records: RecordSet,
        current_records: RecordSet | None,
        policy: ConflictPolicy,
    ) -> MigrationPlan:
        """Plan the migration of every legacy file.

        Args:
            legacy_records: Record set of the legacy layout.
            current_records: Record set of the current layout, None if it has none.
            policy: How to treat an existing current layout.

        Returns:
            MigrationPlan.
        """
        conflict = current_records is not None

        if conflict and policy is ConflictPolicy.KEEP_EXISTING:
            logger.info("Current layout exists, keeping it (%d legacy files ignored)", len(legacy_records))
            return MigrationPlan(policy=policy)

        existing: set[str] = set()
        if current_records is not None:
            for key, record in current_records.files.items():
                existing.add(key.lower())
                existing.add(record.portable_path.lower())

        plan = MigrationPlan(
            policy=policy,
            purge_destination=conflict and policy is ConflictPolicy.REPLACE_WITH_LEGACY,
            ignore_existing=conflict and policy is ConflictPolicy.MERGE,
        )
        planned: set[str] = set()

        for key in sorted(legacy_records.files):
            record = legacy_records.files[key]
            if _is_bookkeeping(key):
                continue

            destination = migrated_path(record.portable_path)
            if not resolve_relative_path(destination):
                logger.warning("Legacy record %s has no usable path, skipping", key)
                continue

            if destination.lower() in planned:
                logger.warning("Legacy record %s duplicates destination %s, skipping", key, destination)
                action = MigrationAction.SKIP
            elif not conflict:
                action = MigrationAction.COPY
            elif policy is ConflictPolicy.REPLACE_WITH_LEGACY:
                action = MigrationAction.REPLACE if destination.lower() in existing else MigrationAction.COPY
            elif destination.lower() in existing:
                action = MigrationAction.SKIP
            else:
                action = MigrationAction.COPY

            planned.add(destination.lower())
            plan.actions.append(
                PlannedAction(
                    action=action,
                    source_name=file_name(key),
                    destination_path=destination,
                    record=record,
                )
            )

        logger.info(
            "Migration plan (%s): %d to copy, %d to skip%s",
            policy.value,
            plan.copy_count,
            plan.skip_count,
            ", purge first" if plan.purge_destination else "",
        )
        return plan


@dataclass(frozen=True)
class MigrationProgress:
    """Progress entry for one planned action."""

    index: int
    total: int
    path: str
    outcome: ActionOutcome


@dataclass
class MigrationOutcome:
    """Result of executing a migration plan.

    Attributes:
        copied: Destination paths copied successfully.
        skipped: Destination paths skipped by the plan.
        failed: Destination path -> error message.
        cancelled: Whether execution stopped early.
        purge_error: Error of the initial purge, if it failed.
        progress: One entry per action handled, in order.
    """

    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False
    purge_error: str | None = None
    progress: list[MigrationProgress] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.cancelled and self.purge_error is None

    @property
    def is_partial(self) -> bool:
        """Some files were copied but not all of the plan completed."""
        return bool(self.copied) and not self.succeeded


def execute_plan(
    plan: MigrationPlan,
    transport: Transport,
    legacy_root: str,
    current_root: str,
    timeout: float,
    cancel_token: CancellationToken | None = None,
) -> MigrationOutcome:
    """Execute a migration plan.

    Args:
        plan: Plan from MigrationPlanner.plan.
        transport: Transport performing remote copies.
        legacy_root: Remote directory of the legacy layout.
        current_root: Remote directory of the current layout.
        timeout: Timeout per remote operation in seconds.
        cancel_token: Checked before each copy.

    Returns:
        MigrationOutcome with per-file results.
    """
    outcome = MigrationOutcome()

    if plan.purge_destination:
        logger.info("Removing existing data at %s", current_root)
        result = transport.purge_remote(current_root, timeout)
        if not result.success:
            outcome.purge_error = result.error or "purge failed"
            logger.error("Purge of %s failed, nothing copied: %s", current_root, outcome.purge_error)
            return outcome

    total = len(plan.actions)
    for index, action in enumerate(plan.actions, start=1):
        if not action.transfers:
            outcome.skipped.append(action.destination_path)
            outcome.progress.append(
                MigrationProgress(index, total, action.destination_path, ActionOutcome.SKIPPED)
            )
            continue

        if cancel_token is not None and cancel_token.is_cancelled:
            logger.info("Migration cancelled after %d of %d actions", index - 1, total)
            outcome.cancelled = True
            break

        source = join_remote_path(legacy_root, action.source_name)
        target = join_remote_path(current_root, action.destination)
        logger.debug("Copying %s -> %s", source, target)

        try:
            result = transport.copy_remote(source, target, timeout, ignore_existing=plan.ignore_existing)
            error = None if result.success else (result.error or "copy failed")
        except TransientTransportError as e:
            error = str(e)

        if error is None:
            outcome.copied.append(action.destination_path)
            status = ActionOutcome.COPIED
        else:
            logger.warning("Failed to copy %s -> %s: %s", action.source_name, action.destination, error)
            outcome.failed[action.destination_path] = error
            status = ActionOutcome.FAILED
        outcome.progress.append(MigrationProgress(index, total, action.destination_path, status))

    logger.info(
        "Migration finished: %d copied, %d skipped, %d failed%s",
        len(outcome.copied),
        len(outcome.skipped),
        len(outcome.failed),
        " (cancelled)" if outcome.cancelled else "",
    )
    return outcome


def build_migrated_records(
    legacy_records: RecordSet,
    current_records: RecordSet | None,
    plan: MigrationPlan,
    outcome: MigrationOutcome,
    now: datetime | None = None,
) -> RecordSet:
    """Build the record set of the current layout after a migration.

    Records of successfully copied files are added under their destination
    path. Under a purge the current records are dropped. Usage is the
    larger of the legacy and remaining current usage.

    Args:
        legacy_records: Record set of the legacy layout.
        current_records: Record set of the current layout before migration.
        plan: Executed plan.
        outcome: Result of execute_plan.
        now: Timestamp for last_updated (defaults to current UTC time).

    Returns:
        New record set; the inputs are not modified.
    """
    purged = plan.purge_destination and outcome.purge_error is None
    if current_records is not None and not purged:
        base = current_records.copy()
    else:
        base = RecordSet()

    if not outcome.copied and not purged:
        return base

    copied = set(outcome.copied)
    for action in plan.actions:
        if action.transfers and action.destination_path in copied:
            base.files[action.destination_path] = action.record.moved_to(action.destination_path)

    base.play_time = max(base.play_time, legacy_records.play_time)
    base.last_updated = now or datetime.now(UTC)
    base.last_sync_status = MIGRATED_SYNC_STATUS
    return base
