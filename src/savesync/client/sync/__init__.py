"""Sync engine for tracked save files.

Architecture:
    ChangeTracker → RecordStore → SmartSync comparator → uploader / downloader

Components:
- **ChangeTracker**: Checksums tracked files, selects upload candidates
- **TrackingSession**: Background scans while the item runs, final scan on exit
- **Comparator**: Decides sync direction from cumulative play time
- **Uploader**: Pushes candidates and the manifest through a Transport
- **Downloader**: Pulls the files of a remote record set into the install root
- **MigrationPlanner**: Moves a legacy flat remote layout into the current layout

All public symbols are re-exported here.
"""

from savesync.client.sync.cancellation import CancellationToken
from savesync.client.sync.change_tracker import ChangeTracker, ScanProgress, ScanResult
from savesync.client.sync.comparator import (
    SyncComparison,
    compare,
    compare_with_remote,
    fetch_remote_records,
    fetch_remote_usage,
    format_duration,
    local_usage_sample,
)
from savesync.client.sync.downloader import SYNC_STATUS_DOWNLOADED, PullResult, pull_records
from savesync.client.sync.migration import (
    MigrationOutcome,
    MigrationPlan,
    MigrationPlanner,
    MigrationProgress,
    PlannedAction,
    build_migrated_records,
    execute_plan,
    migrated_path,
)
from savesync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)
from savesync.client.sync.session import TrackingSession
from savesync.client.sync.uploader import (
    SYNC_STATUS_FAILED,
    SYNC_STATUS_MANIFEST_FAILED,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_SUCCESS,
    PushResult,
    collect_candidates,
    manifest_pending,
    pending_candidates,
    push_candidates,
    remote_collisions,
    resume_manifest,
    upload_manifest,
)

__all__ = [
    # Retry functions and constants
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "retry_with_backoff",
    # Cancellation
    "CancellationToken",
    # Change tracking
    "ChangeTracker",
    "ScanProgress",
    "ScanResult",
    "TrackingSession",
    # Comparator
    "SyncComparison",
    "compare",
    "compare_with_remote",
    "fetch_remote_records",
    "fetch_remote_usage",
    "format_duration",
    "local_usage_sample",
    # Download
    "SYNC_STATUS_DOWNLOADED",
    "PullResult",
    "pull_records",
    # Migration
    "MigrationOutcome",
    "MigrationPlan",
    "MigrationPlanner",
    "MigrationProgress",
    "PlannedAction",
    "build_migrated_records",
    "execute_plan",
    "migrated_path",
    # Upload
    "SYNC_STATUS_FAILED",
    "SYNC_STATUS_MANIFEST_FAILED",
    "SYNC_STATUS_PARTIAL",
    "SYNC_STATUS_SUCCESS",
    "PushResult",
    "collect_candidates",
    "manifest_pending",
    "pending_candidates",
    "push_candidates",
    "remote_collisions",
    "resume_manifest",
    "upload_manifest",
]
