"""Upload of changed save files.

This module provides:
- collect_candidates: Scan candidates plus records still pending upload
- pending_candidates: Files whose records changed since their last upload
- remote_collisions: Records that would share one remote object
- push_candidates: Upload candidate files and advance their sync time
- resume_manifest: Re-upload a manifest whose last upload failed
- upload_manifest: Write a record set to the remote as manifest JSON
- PushResult: Outcome of a push

Uploads are best-effort per file. Only files whose transfer succeeded get
a new last_synchronized timestamp. A failed file keeps its newer
last_local_write, so it is picked up again by pending_candidates even
though the next scan sees an unchanged checksum.

The manifest is uploaded after the files. If that upload fails the record
set is marked ManifestFailed; manifest_pending() then tells the next push
to upload the manifest even when no file changed.

Remote objects are addressed by resolve_relative_path(), which drops the
root marker. A %USERPROFILE% record that maps to the same remote object as
a %GAMEPATH% record is not uploaded; the %GAMEPATH% record wins.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from savesync.client.manifest import dump_manifest, record_set_filename
from savesync.client.transport import TransferResult, join_remote_path
from savesync.core.errors import TransientTransportError, ValidationError
from savesync.core.paths import (
    GAMEPATH_MARKER,
    USERPROFILE_MARKER,
    contract_path,
    expand_path,
    is_portable,
    resolve_relative_path,
)
from savesync.core.records import RecordSet
from savesync.core.types import TransferDirection

if TYPE_CHECKING:
    from savesync.client.sync.cancellation import CancellationToken
    from savesync.client.transport import Transport

logger = logging.getLogger(__name__)

SYNC_STATUS_SUCCESS = "Success"
SYNC_STATUS_PARTIAL = "Partial"
SYNC_STATUS_FAILED = "Failed"
SYNC_STATUS_MANIFEST_FAILED = "ManifestFailed"


@dataclass
class PushResult:
    """Result of pushing candidates to the remote.

    Attributes:
        records: Record set with sync times advanced for uploaded files.
        uploaded: Portable paths uploaded successfully.
        failed: Portable path -> error message.
        transfers: Transport results in upload order.
        manifest_uploaded: Whether the updated manifest reached the remote.
        manifest_error: Error of a failed manifest upload.
        cancelled: Whether the push stopped early.
    """

    records: RecordSet
    uploaded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    transfers: list[TransferResult] = field(default_factory=list)
    manifest_uploaded: bool = False
    manifest_error: str | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.cancelled and self.manifest_error is None


def _locate_pending(
    records: RecordSet,
    install_root: str | Path,
    user_profile: str | Path | None,
) -> tuple[dict[str, Path], dict[str, str]]:
    """Split pending records into local files and records that cannot be found.

    Returns:
        (portable path -> local file, portable path -> reason).
    """
    found: dict[str, Path] = {}
    unresolved: dict[str, str] = {}
    for portable in records.pending_paths():
        # Bare names from the contraction fallback do not say where the file lives
        if not is_portable(portable):
            unresolved[portable] = "record has no root marker, local file unknown"
            continue
        try:
            local_path = Path(expand_path(portable, install_root, user_profile))
        except ValidationError as e:
            unresolved[portable] = str(e)
            continue
        if local_path.is_file():
            found[portable] = local_path
        else:
            unresolved[portable] = f"file not found: {local_path}"
    return found, unresolved


def pending_candidates(
    records: RecordSet,
    install_root: str | Path,
    user_profile: str | Path | None = None,
) -> list[Path]:
    """List existing local files whose records are pending upload."""
    found, unresolved = _locate_pending(records, install_root, user_profile)
    for portable, reason in unresolved.items():
        logger.debug("Skipping pending record %s: %s", portable, reason)
    return list(found.values())


def collect_candidates(
    records: RecordSet,
    scanned: Sequence[Path],
    install_root: str | Path,
    user_profile: str | Path | None = None,
) -> tuple[list[Path], dict[str, str]]:
    """Combine the candidates of a scan with records still pending upload.

    Files found by the scan are used as given. Pending records that were
    not part of the scan are located through their portable path; those
    that cannot be found are returned separately instead of being dropped.

    Args:
        records: Record set after the scan.
        scanned: Absolute paths of the scan's candidates.
        install_root: Install directory of the tracked application.
        user_profile: User profile directory (defaults to the home directory).

    Returns:
        (absolute paths to upload, portable path -> reason for pending
        records with no local file).
    """
    candidates = list(scanned)
    covered: set[str] = set()
    for path in scanned:
        try:
            covered.add(contract_path(path, install_root, user_profile))
        except ValidationError:
            continue

    found, unresolved = _locate_pending(records, install_root, user_profile)
    for portable, local_path in found.items():
        if portable not in covered and local_path not in candidates:
            candidates.append(local_path)

    unresolved = {portable: reason for portable, reason in unresolved.items() if portable not in covered}
    return candidates, unresolved


def _marker_rank(portable: str) -> int:
    upper = portable.upper()
    if upper.startswith(GAMEPATH_MARKER):
        return 0
    if upper.startswith(USERPROFILE_MARKER):
        return 1
    return 2


def remote_collisions(portable_paths: Iterable[str]) -> dict[str, str]:
    """Find records whose remote object is already claimed by another record.

    Records are ranked %GAMEPATH% first, then %USERPROFILE%, then unmarked,
    then alphabetically. The first record of each remote path keeps it.

    Returns:
        Portable path -> portable path of the record that keeps the object.
    """
    owners: dict[str, str] = {}
    collisions: dict[str, str] = {}
    for portable in sorted(portable_paths, key=lambda p: (_marker_rank(p), p)):
        relative = resolve_relative_path(portable)
        owner = owners.setdefault(relative, portable)
        if owner != portable:
            collisions[portable] = owner
    return collisions


def manifest_pending(records: RecordSet | None) -> bool:
    """Whether the last manifest upload of this record set failed."""
    return records is not None and records.last_sync_status == SYNC_STATUS_MANIFEST_FAILED


def upload_manifest(
    transport: Transport,
    record_set: RecordSet,
    remote_path: str,
    timeout: float,
) -> TransferResult:
    """Upload a record set as manifest JSON.

    Args:
        transport: Transport used for the upload.
        record_set: Record set to write.
        remote_path: Remote manifest path.
        timeout: Timeout in seconds.

    Returns:
        TransferResult of the upload.
    """
    fd, temp_name = tempfile.mkstemp(prefix="savesync_manifest_", suffix=".json")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_manifest(record_set))
        try:
            return transport.transfer(temp_path, remote_path, TransferDirection.UPLOAD, timeout)
        except TransientTransportError as e:
            return TransferResult(success=False, source=str(temp_path), destination=remote_path, error=str(e))
    finally:
        temp_path.unlink(missing_ok=True)


def _publish_manifest(
    result: PushResult,
    transport: Transport,
    remote_root: str,
    timeout: float,
    profile_id: str | None,
) -> None:
    """Upload result.records as the manifest and record the outcome on result."""
    manifest_path = join_remote_path(remote_root, record_set_filename(profile_id))
    manifest = upload_manifest(transport, result.records, manifest_path, timeout)
    result.manifest_uploaded = manifest.success
    if not manifest.success:
        logger.warning("Manifest upload to %s failed: %s", manifest_path, manifest.error)
        result.manifest_error = manifest.error or "manifest upload failed"
        result.records = result.records.copy(last_sync_status=SYNC_STATUS_MANIFEST_FAILED)


def push_candidates(
    records: RecordSet,
    candidates: Sequence[Path],
    transport: Transport,
    remote_root: str,
    install_root: str | Path,
    timeout: float,
    user_profile: str | Path | None = None,
    profile_id: str | None = None,
    cancel_token: CancellationToken | None = None,
    now: datetime | None = None,
) -> PushResult:
    """Upload candidate files, then the updated manifest.

    Args:
        records: Current record set of the item.
        candidates: Absolute paths of files to upload.
        transport: Transport used for uploads.
        remote_root: Remote directory of the item.
        install_root: Install directory of the tracked application.
        timeout: Timeout per transfer in seconds.
        user_profile: User profile directory (defaults to the home directory).
        profile_id: Profile selecting the manifest file name.
        cancel_token: Checked before each file.
        now: Sync timestamp (defaults to current UTC time).

    Returns:
        PushResult. The input record set is not modified.
    """
    now = now or datetime.now(UTC)
    result = PushResult(records=records)

    portables: dict[Path, str] = {}
    for local_path in candidates:
        try:
            portables[local_path] = contract_path(local_path, install_root, user_profile)
        except ValidationError as e:
            result.failed[str(local_path)] = str(e)
    collisions = remote_collisions(records.paths() | set(portables.values()))

    for local_path, portable in portables.items():
        if cancel_token is not None and cancel_token.is_cancelled:
            logger.info("Push cancelled, %d files uploaded", len(result.uploaded))
            result.cancelled = True
            break

        relative = resolve_relative_path(portable)
        if portable in collisions:
            logger.warning("Not uploading %s: remote path %s belongs to %s", portable, relative, collisions[portable])
            result.failed[portable] = f"remote path {relative} already used by {collisions[portable]}"
            continue

        remote_path = join_remote_path(remote_root, relative)
        logger.info("Uploading %s", portable)
        try:
            transfer = transport.transfer(local_path, remote_path, TransferDirection.UPLOAD, timeout)
        except TransientTransportError as e:
            transfer = TransferResult(success=False, source=str(local_path), destination=remote_path, error=str(e))
        result.transfers.append(transfer)

        if transfer.success:
            result.uploaded.append(portable)
        else:
            logger.warning("Upload of %s failed: %s", portable, transfer.error)
            result.failed[portable] = transfer.error or "upload failed"

    if not result.uploaded:
        if result.failed:
            result.records = records.copy(last_sync_status=SYNC_STATUS_FAILED)
        return result

    status = SYNC_STATUS_PARTIAL if result.failed else SYNC_STATUS_SUCCESS
    updated = records.mark_synchronized(result.uploaded, now)
    result.records = updated.copy(last_updated=now, last_sync_status=status)
    _publish_manifest(result, transport, remote_root, timeout, profile_id)

    logger.info("Push complete: %d uploaded, %d failed", len(result.uploaded), len(result.failed))
    return result


def resume_manifest(
    records: RecordSet,
    transport: Transport,
    remote_root: str,
    timeout: float,
    profile_id: str | None = None,
) -> PushResult:
    """Upload the manifest of a record set whose last manifest upload failed.

    The sync status is restored to Success, or Partial while records are
    still pending, before the manifest is written.
    """
    status = SYNC_STATUS_PARTIAL if records.pending_paths() else SYNC_STATUS_SUCCESS
    result = PushResult(records=records.copy(last_sync_status=status))
    logger.info("Uploading manifest left over from the previous push")
    _publish_manifest(result, transport, remote_root, timeout, profile_id)
    return result
