"""Download of remote save files.

This module provides:
- pull_records: Download the files of a remote record set into the install root
- PullResult: Outcome of a pull

Each file is downloaded to a temporary sibling (<name>.tmp) and renamed over
the local file only after the transfer succeeded, so an interrupted pull
never leaves a half-written save behind. Files whose local checksum already
matches the remote record are not downloaded again.

Downloaded records are keyed by their portable path, also when the remote
manifest uses legacy flat keys, and stored as synchronized
(last_synchronized equals last_local_write), so they are not uploaded back
by the next push. Files that already matched are recorded the same way.
The remote play time is adopted only when every file arrived.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from savesync.client.manifest import is_manifest_file
from savesync.client.sync.uploader import SYNC_STATUS_FAILED, SYNC_STATUS_PARTIAL
from savesync.client.transport import TransferResult, join_remote_path
from savesync.core.checksum import compute_file_checksum
from savesync.core.errors import TransientTransportError, ValidationError
from savesync.core.paths import expand_path, file_name, resolve_relative_path
from savesync.core.records import ChecksumRecord, RecordSet
from savesync.core.types import TransferDirection

if TYPE_CHECKING:
    from savesync.client.sync.cancellation import CancellationToken
    from savesync.client.transport import Transport

logger = logging.getLogger(__name__)

SYNC_STATUS_DOWNLOADED = "Downloaded"


@dataclass
class PullResult:
    """Result of pulling a remote record set.

    Attributes:
        records: Local record set with downloaded files recorded.
        downloaded: Portable paths written to disk.
        unchanged: Portable paths whose local copy already matched.
        failed: Portable path -> error message.
        transfers: Transport results in download order.
        cancelled: Whether the pull stopped early.
    """

    records: RecordSet
    downloaded: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    transfers: list[TransferResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.cancelled


def _matches(local_path: Path, checksum: str) -> bool:
    """Whether an existing local file already has the given checksum."""
    if not checksum or not local_path.is_file():
        return False
    try:
        return compute_file_checksum(local_path) == checksum
    except OSError:
        return False


def _download_file(
    transport: Transport,
    remote_path: str,
    local_path: Path,
    timeout: float,
) -> TransferResult:
    """Download one file through a temporary sibling and move it into place."""
    tmp_path = local_path.with_suffix(local_path.suffix + ".tmp")
    try:
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            transfer = transport.transfer(tmp_path, remote_path, TransferDirection.DOWNLOAD, timeout)
        except TransientTransportError as e:
            transfer = TransferResult(success=False, source=remote_path, destination=str(local_path), error=str(e))
        if transfer.success:
            tmp_path.replace(local_path)
        return transfer
    except OSError as e:
        return TransferResult(success=False, source=remote_path, destination=str(local_path), error=str(e))
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def pull_records(
    remote_records: RecordSet,
    local_records: RecordSet | None,
    transport: Transport,
    remote_root: str,
    install_root: str | Path,
    timeout: float,
    user_profile: str | Path | None = None,
    cancel_token: CancellationToken | None = None,
    now: datetime | None = None,
) -> PullResult:
    """Download the files of a remote record set.

    Args:
        remote_records: Record set read from the remote manifest.
        local_records: Current local record set, or None if there is none.
        transport: Transport used for downloads.
        remote_root: Remote directory of the item.
        install_root: Install directory of the tracked application.
        timeout: Timeout per transfer in seconds.
        user_profile: User profile directory (defaults to the home directory).
        cancel_token: Checked before each file.
        now: Sync timestamp (defaults to current UTC time).

    Returns:
        PullResult. Neither input record set is modified.
    """
    now = now or datetime.now(UTC)
    records = local_records.copy() if local_records is not None else RecordSet()
    result = PullResult(records=records)

    for key in sorted(remote_records.files):
        if cancel_token is not None and cancel_token.is_cancelled:
            logger.info("Pull cancelled, %d files downloaded", len(result.downloaded))
            result.cancelled = True
            break

        remote_record = remote_records.files[key]
        portable = remote_record.portable_path or key
        if is_manifest_file(file_name(portable)):
            continue

        try:
            local_path = Path(expand_path(portable, install_root, user_profile))
        except ValidationError as e:
            logger.warning("Cannot place %s locally: %s", portable, e)
            result.failed[portable] = str(e)
            continue

        unchanged = _matches(local_path, remote_record.checksum)
        if not unchanged:
            remote_path = join_remote_path(remote_root, resolve_relative_path(portable))
            logger.info("Downloading %s", portable)
            transfer = _download_file(transport, remote_path, local_path, timeout)
            result.transfers.append(transfer)
            if not transfer.success:
                logger.warning("Download of %s failed: %s", portable, transfer.error)
                result.failed[portable] = transfer.error or "download failed"
                continue

        try:
            checksum = compute_file_checksum(local_path)
            size = local_path.stat().st_size
        except OSError as e:
            result.failed[portable] = str(e)
            continue
        if remote_record.checksum and checksum != remote_record.checksum:
            logger.warning("Checksum of downloaded %s differs from the remote record", portable)

        records.files[portable] = ChecksumRecord(
            portable_path=portable,
            checksum=checksum,
            size_bytes=size,
            last_local_write=now,
            last_synchronized=now,
        )
        if unchanged:
            logger.debug("Unchanged: %s", portable)
            result.unchanged.append(portable)
        else:
            result.downloaded.append(portable)

    if result.succeeded:
        result.records = records.copy(
            play_time=remote_records.play_time,
            last_updated=now,
            last_sync_status=SYNC_STATUS_DOWNLOADED,
        )
    else:
        status = SYNC_STATUS_PARTIAL if result.downloaded else SYNC_STATUS_FAILED
        result.records = records.copy(last_sync_status=status)

    logger.info(
        "Pull complete: %d downloaded, %d unchanged, %d failed",
        len(result.downloaded),
        len(result.unchanged),
        len(result.failed),
    )
    return result
