"""Change tracker for detecting modified save files.

This module provides:
- ChangeTracker: Checksums tracked files and selects upload candidates
- ScanResult / ScanProgress: Outcome of one scan

Architecture:
    The tracker only looks at the explicit list of tracked files; it never
    crawls directories. For each file it computes a checksum and compares
    it with the stored record:

    - no record, or a different checksum  -> upload candidate
    - same checksum                       -> unchanged
    - file missing on disk                -> skipped, record kept
    - file unreadable                     -> reported, scan continues

    Candidate records get the new checksum, size and write time. Their
    last_synchronized timestamp is left alone: only a confirmed transfer
    advances it (see savesync.client.sync.uploader).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from savesync.core.checksum import compute_file_checksum
from savesync.core.errors import ValidationError
from savesync.core.paths import contract_path, expand_path, is_portable
from savesync.core.records import ChecksumRecord, RecordSet

if TYPE_CHECKING:
    from savesync.client.sync.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanProgress:
    """Progress entry for one scanned file.

    Attributes:
        index: 1-based position in the tracked list.
        total: Number of tracked files.
        path: Portable path of the file.
        changed: Whether the file became an upload candidate.
    """

    index: int
    total: int
    path: str
    changed: bool


@dataclass
class ScanResult:
    """Result of a change scan.

    Attributes:
        records: Record set including updated candidate records.
        candidates: Absolute paths of files that need uploading.
        missing: Portable paths of tracked files not found on disk.
        errors: Portable (or given) path -> error message for unreadable files.
        cancelled: Whether the scan stopped early.
        progress: One entry per file that was checked, in scan order.
    """

    records: RecordSet
    candidates: list[Path] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False
    progress: list[ScanProgress] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if every tracked file was checked without error."""
        return not self.errors and not self.cancelled


class ChangeTracker:
    """Detects which tracked files changed since their last record.

    Usage:
        tracker = ChangeTracker(install_root="/games/Hollow")
        result = tracker.scan(store.load_record_set(item, profile), tracked)
        store.save_record_set(item, profile, result.records)
    """

    def __init__(
        self,
        install_root: str | Path,
        user_profile: str | Path | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            install_root: Install directory of the tracked application.
            user_profile: User profile directory (defaults to the home directory).
        """
        self._install_root = Path(install_root)
        self._user_profile = user_profile

    def _resolve(self, tracked: str | Path) -> Path:
        """Turn a tracked entry (portable, absolute or relative) into an absolute path."""
        if is_portable(tracked):
            return Path(expand_path(str(tracked), self._install_root, self._user_profile))
        path = Path(tracked)
        if path.is_absolute():
            return path
        return self._install_root / path

    def scan(
        self,
        previous_records: RecordSet | None,
        tracked_paths: Sequence[str | Path],
        cancel_token: CancellationToken | None = None,
        now: datetime | None = None,
    ) -> ScanResult:
        """Scan tracked files and select upload candidates.

        Args:
            previous_records: Last saved record set, or None on first run.
            tracked_paths: Files to check (portable, absolute, or relative to the install root).
            cancel_token: Checked before each file.
            now: Timestamp written to changed records (defaults to current UTC time).

        Returns:
            ScanResult. The input record set is not modified.
        """
        now = now or datetime.now(UTC)
        records = previous_records.copy() if previous_records is not None else RecordSet()
        result = ScanResult(records=records)
        total = len(tracked_paths)

        for index, tracked in enumerate(tracked_paths, start=1):
            if cancel_token is not None and cancel_token.is_cancelled:
                logger.info("Scan cancelled after %d of %d files", index - 1, total)
                result.cancelled = True
                break

            try:
                absolute = self._resolve(tracked)
                portable = contract_path(absolute, self._install_root, self._user_profile)
            except ValidationError as e:
                logger.warning("Skipping invalid tracked path %s: %s", tracked, e)
                result.errors[str(tracked)] = str(e)
                continue

            if not absolute.is_file():
                logger.debug("Tracked file not found: %s", absolute)
                result.missing.append(portable)
                continue

            try:
                checksum = compute_file_checksum(absolute)
                size = absolute.stat().st_size
            except OSError as e:
                logger.warning("Could not read %s: %s", absolute, e)
                result.errors[portable] = str(e)
                continue

            existing = records.get(portable)
            changed = existing is None or existing.checksum != checksum
            if changed:
                if existing is None:
                    record = ChecksumRecord(
                        portable_path=portable,
                        checksum=checksum,
                        size_bytes=size,
                        last_local_write=now,
                    )
                else:
                    record = existing.with_content(checksum, size, now)
                records.files[portable] = record
                result.candidates.append(absolute)
                logger.debug("Changed: %s", portable)

            result.progress.append(ScanProgress(index=index, total=total, path=portable, changed=changed))

        logger.info(
            "Scan complete: %d candidates, %d missing, %d errors",
            len(result.candidates),
            len(result.missing),
            len(result.errors),
        )
        return result
