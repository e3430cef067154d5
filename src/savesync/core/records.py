"""Checksum records and record sets.

This module provides:
- ChecksumRecord: Stored metadata for one tracked file
- RecordSet: Records of one (item, profile) pair plus usage metadata
- UsageSample: Cumulative usage pulled from a record set
- RecordSetDiff / diff_record_sets: Compare two record sets by checksum
- merge_record_sets: Combine two record sets under a conflict policy
- count_existing_files: How many records resolve to files on disk

Records are immutable. RecordSet methods return new sets, so a set that a
caller loaded is never changed behind its back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

from savesync.core.errors import ValidationError
from savesync.core.paths import expand_path
from savesync.core.types import ConflictPolicy

logger = logging.getLogger(__name__)

DEFAULT_SYNC_STATUS = "Unknown"


@dataclass(frozen=True)
class ChecksumRecord:
    """Represents one tracked file.

    Attributes:
        portable_path: Path with a root marker (see savesync.core.paths).
        checksum: Hex digest of the file content.
        size_bytes: File size, informational only.
        last_local_write: When a local change was last observed (UTC).
        last_synchronized: When this file was last transferred (UTC).
    """

    portable_path: str
    checksum: str
    size_bytes: int = 0
    last_local_write: datetime | None = None
    last_synchronized: datetime | None = None

    def __post_init__(self) -> None:
        if not self.portable_path:
            raise ValidationError("Checksum record needs a portable path")
        if self.size_bytes < 0:
            raise ValidationError(f"Negative size for {self.portable_path}: {self.size_bytes}")

    def with_content(self, checksum: str, size_bytes: int, written_at: datetime) -> ChecksumRecord:
        """Return a copy updated for new content; sync time is kept."""
        return replace(
            self,
            checksum=checksum,
            size_bytes=size_bytes,
            last_local_write=written_at,
        )

    def synchronized(self, when: datetime) -> ChecksumRecord:
        """Return a copy marked as transferred at the given time."""
        return replace(self, last_synchronized=when)

    @property
    def is_pending(self) -> bool:
        """True if local content changed since the last confirmed transfer."""
        if self.last_synchronized is None:
            return True
        return self.last_local_write is not None and self.last_local_write > self.last_synchronized

    def moved_to(self, portable_path: str) -> ChecksumRecord:
        """Return a copy stored under a different portable path."""
        return replace(self, portable_path=portable_path)


@dataclass(frozen=True)
class UsageSample:
    """Cumulative usage of an item as recorded in a record set."""

    cumulative_duration: timedelta
    as_of: datetime | None = None


@dataclass
class RecordSet:
    """Records of one (item, profile) pair keyed by portable path.

    Attributes:
        files: Mapping of portable path to record.
        play_time: Cumulative usage of the item.
        last_updated: When the set was last written.
        last_sync_status: Free-form status of the last sync ("Unknown", "Migrated", ...).
    """

    files: dict[str, ChecksumRecord] = field(default_factory=dict)
    play_time: timedelta = field(default_factory=timedelta)
    last_updated: datetime | None = None
    last_sync_status: str = DEFAULT_SYNC_STATUS

    @classmethod
    def from_records(cls, records: Iterable[ChecksumRecord], **metadata: object) -> RecordSet:
        """Build a set from records, keyed by their portable paths."""
        return cls(files={r.portable_path: r for r in records}, **metadata)  # type: ignore[arg-type]

    def __contains__(self, portable_path: object) -> bool:
        return portable_path in self.files

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[ChecksumRecord]:
        return iter(self.files.values())

    def get(self, portable_path: str) -> ChecksumRecord | None:
        return self.files.get(portable_path)

    def paths(self) -> set[str]:
        return set(self.files)

    def usage_sample(self) -> UsageSample:
        return UsageSample(cumulative_duration=self.play_time, as_of=self.last_updated)

    def copy(self, **changes: object) -> RecordSet:
        """Shallow copy with a fresh files dict and optional metadata changes."""
        return replace(self, files=dict(self.files), **changes)  # type: ignore[arg-type]

    def with_record(self, record: ChecksumRecord) -> RecordSet:
        updated = self.copy()
        updated.files[record.portable_path] = record
        return updated

    def without(self, portable_path: str) -> RecordSet:
        updated = self.copy()
        updated.files.pop(portable_path, None)
        return updated

    def pending_paths(self) -> list[str]:
        """Portable paths of records not yet transferred since their last change."""
        return sorted(r.portable_path for r in self.files.values() if r.is_pending)

    def mark_synchronized(self, portable_paths: Iterable[str], when: datetime | None = None) -> RecordSet:
        """Advance last_synchronized for files confirmed as transferred.

        Paths match either a key or a record's portable path. Unknown
        paths are ignored.
        """
        when = when or datetime.now(UTC)
        wanted = set(portable_paths)
        updated = self.copy()
        for key, record in self.files.items():
            if key in wanted or record.portable_path in wanted:
                updated.files[key] = record.synchronized(when)
        return updated


@dataclass(frozen=True)
class RecordSetDiff:
    """Portable paths that differ between two record sets."""

    added: frozenset[str]
    modified: frozenset[str]
    removed: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)


def diff_record_sets(previous: RecordSet, current: RecordSet) -> RecordSetDiff:
    """Compare two record sets.

    A record is modified iff its checksum changed. Size and timestamps are
    metadata and never make a record count as modified.

    Args:
        previous: Older record set.
        current: Newer record set.

    Returns:
        RecordSetDiff keyed by portable path.
    """
    previous_paths = previous.paths()
    current_paths = current.paths()

    modified = {
        path
        for path in previous_paths & current_paths
        if previous.files[path].checksum != current.files[path].checksum
    }
    return RecordSetDiff(
        added=frozenset(current_paths - previous_paths),
        modified=frozenset(modified),
        removed=frozenset(previous_paths - current_paths),
    )


def merge_record_sets(
    base: RecordSet,
    overlay: RecordSet,
    policy: ConflictPolicy,
    install_root: str | Path,
    user_profile: str | Path | None = None,
) -> RecordSet:
    """Combine two record sets.

    For paths present in both sets the overlay record wins under
    REPLACE_WITH_LEGACY; the base record wins under KEEP_EXISTING and MERGE.
    Paths present in only one set are always kept.

    Args:
        base: Existing (current) record set.
        overlay: Incoming (legacy) record set.
        policy: Conflict policy for shared paths.
        install_root: Install directory every record must resolve against.
        user_profile: User profile directory for %USERPROFILE% records.

    Returns:
        New merged record set. Metadata comes from the base set, or from
        the overlay under REPLACE_WITH_LEGACY.

    Raises:
        ValidationError: If a record's portable path cannot be expanded.
    """
    for record in (*base, *overlay):
        expand_path(record.portable_path, install_root, user_profile)

    if policy is ConflictPolicy.REPLACE_WITH_LEGACY:
        merged = overlay.copy()
        for path, record in base.files.items():
            merged.files.setdefault(path, record)
    else:
        merged = base.copy()
        for path, record in overlay.files.items():
            merged.files.setdefault(path, record)

    logger.debug(
        "Merged %d + %d records into %d (%s)",
        len(base),
        len(overlay),
        len(merged),
        policy.value,
    )
    return merged


def count_existing_files(
    record_set: RecordSet,
    install_root: str | Path,
    user_profile: str | Path | None = None,
) -> int:
    """Count records whose files exist on this machine.

    Records that cannot be expanded are logged and not counted.
    """
    existing = 0
    for record in record_set:
        try:
            absolute = expand_path(record.portable_path, install_root, user_profile)
        except ValidationError as e:
            logger.debug("Skipping unresolvable record %s: %s", record.portable_path, e)
            continue
        if Path(absolute).is_file():
            existing += 1
        else:
            logger.debug("File not found: %s", absolute)
    return existing
