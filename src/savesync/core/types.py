"""Shared types for savesync.

This module defines enums used by both the core engine and the client.
"""

from __future__ import annotations

from enum import Enum, auto


class SyncStatus(str, Enum):
    """Relationship between local and remote progress.

    REMOTE_NOT_FOUND covers both "no remote copy" and "remote could not be
    read"; callers treat it as safe to push.
    """

    LOCAL_AHEAD = "local_ahead"
    CLOUD_AHEAD = "cloud_ahead"
    SIMILAR = "similar"
    REMOTE_NOT_FOUND = "remote_not_found"


class ConflictPolicy(str, Enum):
    """How two record sets for the same item are reconciled."""

    KEEP_EXISTING = "keep"  # Leave the current layout untouched
    REPLACE_WITH_LEGACY = "replace"  # Purge current, copy everything from legacy
    MERGE = "merge"  # Copy legacy files missing from current


class MigrationAction(Enum):
    """Per-file action of a migration plan."""

    COPY = auto()
    SKIP = auto()
    REPLACE = auto()  # Copy over a file the current layout already had


class ActionOutcome(Enum):
    """Result of executing one planned action."""

    COPIED = auto()
    SKIPPED = auto()
    FAILED = auto()


class TransferDirection(str, Enum):
    """Direction of a single-file transfer."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
