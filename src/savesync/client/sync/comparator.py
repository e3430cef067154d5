"""Smart sync comparator.

This module provides:
- SyncComparison: Decision plus the numbers behind it
- compare: Decide sync direction from cumulative usage
- fetch_remote_usage: Read the usage sample of a remote record set
- compare_with_remote: Fetch, guard and compare in one call
- fetch_remote_records: Fetch the profile manifest, falling back to the legacy one
- format_duration: HH:MM:SS rendering used in messages

Decision rule (delta = remote - local):

    remote missing            -> REMOTE_NOT_FOUND (safe to push)
    |delta| <= threshold      -> SIMILAR
    delta > threshold         -> CLOUD_AHEAD
    delta < -threshold        -> LOCAL_AHEAD

Swapping local and remote swaps CLOUD_AHEAD and LOCAL_AHEAD and keeps the
magnitude. A remote that cannot be read is reported as REMOTE_NOT_FOUND,
never as an error. When the profile manifest is missing the legacy
manifest is read instead, so a remote written by an older client is not
mistaken for an empty one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from savesync.core.errors import TransientTransportError, ValidationError
from savesync.core.records import RecordSet, UsageSample, count_existing_files
from savesync.core.types import SyncStatus

if TYPE_CHECKING:
    from savesync.client.transport import Transport

logger = logging.getLogger(__name__)


def format_duration(value: timedelta) -> str:
    """Format a duration as HH:MM:SS, hours unbounded, sign dropped."""
    total = int(abs(value).total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


@dataclass(frozen=True)
class SyncComparison:
    """Outcome of comparing local and remote usage.

    Attributes:
        status: Direction decision.
        local_usage: Local cumulative usage.
        remote_usage: Remote cumulative usage, None if not found.
        magnitude: Absolute difference (zero for REMOTE_NOT_FOUND).
        message: Human-readable summary.
    """

    status: SyncStatus
    local_usage: timedelta
    remote_usage: timedelta | None
    magnitude: timedelta
    message: str

    @property
    def cloud_is_ahead(self) -> bool:
        """Whether pushing would overwrite newer remote progress."""
        return self.status is SyncStatus.CLOUD_AHEAD


def compare(
    local_usage: UsageSample,
    remote_usage: UsageSample | None,
    indifference_threshold: timedelta,
) -> SyncComparison:
    """Decide the sync direction from two usage samples.

    Args:
        local_usage: Usage recorded locally.
        remote_usage: Usage recorded remotely, or None if there is no remote copy.
        indifference_threshold: Differences up to this size count as SIMILAR.

    Returns:
        SyncComparison.

    Raises:
        ValidationError: If the threshold is negative.
    """
    if indifference_threshold < timedelta(0):
        raise ValidationError(f"Indifference threshold must not be negative: {indifference_threshold}")

    local = local_usage.cumulative_duration

    if remote_usage is None:
        return SyncComparison(
            status=SyncStatus.REMOTE_NOT_FOUND,
            local_usage=local,
            remote_usage=None,
            magnitude=timedelta(0),
            message="No cloud save found",
        )

    remote = remote_usage.cumulative_duration
    delta = remote - local

    if abs(delta) <= indifference_threshold:
        status = SyncStatus.SIMILAR
        magnitude = abs(delta)
        message = f"Progress is similar (diff: {format_duration(delta)})"
    elif delta > timedelta(0):
        status = SyncStatus.CLOUD_AHEAD
        magnitude = delta
        message = f"Cloud is ahead by {format_duration(delta)}"
    else:
        status = SyncStatus.LOCAL_AHEAD
        magnitude = -delta
        message = f"Local is ahead by {format_duration(delta)}"

    logger.debug(
        "Compared usage: local=%s remote=%s threshold=%s -> %s",
        format_duration(local),
        format_duration(remote),
        format_duration(indifference_threshold),
        status.value,
    )
    return SyncComparison(
        status=status,
        local_usage=local,
        remote_usage=remote,
        magnitude=magnitude,
        message=message,
    )


def fetch_remote_records(
    transport: Transport,
    remote_path: str,
    timeout: float,
    legacy_remote_path: str | None = None,
) -> RecordSet | None:
    """Fetch the remote record set of a profile.

    Args:
        transport: Transport used for the fetch.
        remote_path: Remote manifest path of the profile.
        timeout: Seconds before each fetch is abandoned.
        legacy_remote_path: Manifest written by older clients, read when the
            profile manifest does not exist.

    Returns:
        RecordSet, or None if neither manifest exists.

    Raises:
        TransientTransportError: If a manifest exists but cannot be read.
    """
    remote_records = transport.fetch_remote_record_set(remote_path, timeout)
    if remote_records is None and legacy_remote_path:
        logger.info("No profile manifest at %s, trying legacy %s", remote_path, legacy_remote_path)
        remote_records = transport.fetch_remote_record_set(legacy_remote_path, timeout)
    return remote_records


def fetch_remote_usage(
    transport: Transport,
    remote_path: str,
    timeout: float,
    legacy_remote_path: str | None = None,
) -> UsageSample | None:
    """Fetch the usage sample of a remote record set.

    Returns:
        UsageSample, or None if the remote set is missing or unreadable.
    """
    try:
        remote_records = fetch_remote_records(transport, remote_path, timeout, legacy_remote_path)
    except TransientTransportError as e:
        logger.warning("Could not read remote record set %s: %s", e.remote_path or remote_path, e)
        return None

    if remote_records is None:
        return None
    return remote_records.usage_sample()


def local_usage_sample(
    local_records: RecordSet | None,
    install_root: str | Path | None = None,
    user_profile: str | Path | None = None,
) -> UsageSample:
    """Build the local usage sample.

    When an install root is given and the record set references files of
    which none exist on this machine (for example a second OS sharing the
    same record store), local usage counts as zero.
    """
    if local_records is None:
        return UsageSample(cumulative_duration=timedelta(0))

    if install_root is not None and len(local_records) > 0:
        existing = count_existing_files(local_records, install_root, user_profile)
        if existing == 0:
            logger.warning(
                "Record set references %d files but none exist locally, treating local usage as zero",
                len(local_records),
            )
            return UsageSample(cumulative_duration=timedelta(0), as_of=local_records.last_updated)
        logger.debug("Local save validated: %d/%d files exist", existing, len(local_records))

    return local_records.usage_sample()


def compare_with_remote(
    local_records: RecordSet | None,
    transport: Transport,
    remote_path: str,
    indifference_threshold: timedelta,
    timeout: float,
    install_root: str | Path | None = None,
    user_profile: str | Path | None = None,
    legacy_remote_path: str | None = None,
) -> SyncComparison:
    """Compare local records with the remote record set.

    Args:
        local_records: Local record set, or None if there is none.
        transport: Transport used to fetch the remote set.
        remote_path: Remote manifest path.
        indifference_threshold: Differences up to this size count as SIMILAR.
        timeout: Seconds before the remote fetch is abandoned.
        install_root: Install directory used to check that local files exist.
        user_profile: User profile directory for %USERPROFILE% records.
        legacy_remote_path: Legacy manifest read when the profile manifest is missing.

    Returns:
        SyncComparison.

    Raises:
        ValidationError: If the threshold is negative.
    """
    if indifference_threshold < timedelta(0):
        raise ValidationError(f"Indifference threshold must not be negative: {indifference_threshold}")

    local = local_usage_sample(local_records, install_root, user_profile)
    remote = fetch_remote_usage(transport, remote_path, timeout, legacy_remote_path)
    comparison = compare(local, remote, indifference_threshold)
    logger.info("Smart sync: %s", comparison.message)
    return comparison
