"""Core module - Portable paths, checksums, and record sets."""

from savesync.core.checksum import compute_file_checksum
from savesync.core.config import EngineConfig
from savesync.core.errors import (
    PersistenceError,
    SaveSyncError,
    TransientTransportError,
    ValidationError,
)
from savesync.core.paths import (
    GAMEPATH_MARKER,
    USERPROFILE_MARKER,
    contract_path,
    expand_path,
    is_portable,
    resolve_relative_path,
)
from savesync.core.records import (
    ChecksumRecord,
    RecordSet,
    RecordSetDiff,
    UsageSample,
    count_existing_files,
    diff_record_sets,
    merge_record_sets,
)
from savesync.core.types import (
    ActionOutcome,
    ConflictPolicy,
    MigrationAction,
    SyncStatus,
    TransferDirection,
)

__all__ = [
    # Checksums
    "compute_file_checksum",
    # Config
    "EngineConfig",
    # Errors
    "PersistenceError",
    "SaveSyncError",
    "TransientTransportError",
    "ValidationError",
    # Paths
    "GAMEPATH_MARKER",
    "USERPROFILE_MARKER",
    "contract_path",
    "expand_path",
    "is_portable",
    "resolve_relative_path",
    # Records
    "ChecksumRecord",
    "RecordSet",
    "RecordSetDiff",
    "UsageSample",
    "count_existing_files",
    "diff_record_sets",
    "merge_record_sets",
    # Types
    "ActionOutcome",
    "ConflictPolicy",
    "MigrationAction",
    "SyncStatus",
    "TransferDirection",
]
