"""Local record-set persistence for the sync client.

This module provides:
- RecordStore: Protocol the engine uses to load and save record sets
- LocalRecordStore: SQLite-based implementation

Architecture:
    One record set exists per (item, profile) pair. Loads treat a missing
    set and an unreadable database identically ("no prior state"), while
    saves raise PersistenceError: a lost save would make the next session
    upload every file again.

    The store also keeps the opt-in list of tracked files per item.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol

from savesync.client.sync.retry import retry_with_backoff
from savesync.core.errors import PersistenceError
from savesync.core.records import ChecksumRecord, RecordSet

logger = logging.getLogger(__name__)

# Database errors worth retrying (locked / busy database)
RETRYABLE_DB_ERRORS: tuple[type[Exception], ...] = (sqlite3.OperationalError,)


class RecordStore(Protocol):
    """Persistence collaborator for record sets."""

    def load_record_set(self, item_id: str, profile_id: str) -> RecordSet | None:
        """Load a record set, or None if there is no usable prior state."""
        ...

    def save_record_set(self, item_id: str, profile_id: str, record_set: RecordSet) -> None:
        """Save a record set. Raises PersistenceError on failure."""
        ...


def _to_timestamp(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _from_timestamp(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=UTC) if value is not None else None


class LocalRecordStore:
    """SQLite-based record-set store.

    Thread-safe: the background scan loop and the exit-time scan may use
    the same store for different items.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the record store database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode, explicit transactions for saves
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            -- Per-file checksum records
            CREATE TABLE IF NOT EXISTS record_files (
                item_id TEXT NOT NULL,
                profile_id TEXT NOT NULL,
                storage_key TEXT NOT NULL,
                portable_path TEXT NOT NULL,
                checksum TEXT NOT NULL,
                size_bytes INTEGER NOT NULL,
                last_local_write REAL,
                last_synchronized REAL,
                PRIMARY KEY (item_id, profile_id, storage_key)
            );

            -- Per-set metadata
            CREATE TABLE IF NOT EXISTS record_sets (
                item_id TEXT NOT NULL,
                profile_id TEXT NOT NULL,
                play_time REAL NOT NULL,
                last_updated REAL,
                last_sync_status TEXT NOT NULL,
                PRIMARY KEY (item_id, profile_id)
            );

            -- Opt-in list of tracked files per item
            CREATE TABLE IF NOT EXISTS tracked_files (
                item_id TEXT NOT NULL,
                path TEXT NOT NULL,
                PRIMARY KEY (item_id, path)
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Record sets ===

    def load_record_set(self, item_id: str, profile_id: str) -> RecordSet | None:
        """Load the record set of an item and profile.

        Args:
            item_id: Tracked item.
            profile_id: Profile of the item.

        Returns:
            RecordSet, or None if none was saved or it could not be read.
        """
        try:
            return retry_with_backoff(
                lambda: self._load(item_id, profile_id),
                retryable_exceptions=RETRYABLE_DB_ERRORS,
                operation=f"Load of {item_id}/{profile_id}",
            )
        except sqlite3.Error as e:
            logger.warning("Could not load records for %s/%s, starting fresh: %s", item_id, profile_id, e)
            return None

    def _load(self, item_id: str, profile_id: str) -> RecordSet | None:
        with self._lock:
            meta = self._conn.execute(
                "SELECT * FROM record_sets WHERE item_id = ? AND profile_id = ?",
                (item_id, profile_id),
            ).fetchone()
            rows = self._conn.execute(
                "SELECT * FROM record_files WHERE item_id = ? AND profile_id = ? ORDER BY storage_key",
                (item_id, profile_id),
            ).fetchall()

        if meta is None and not rows:
            return None

        files = {
            row["storage_key"]: ChecksumRecord(
                portable_path=row["portable_path"],
                checksum=row["checksum"],
                size_bytes=row["size_bytes"],
                last_local_write=_from_timestamp(row["last_local_write"]),
                last_synchronized=_from_timestamp(row["last_synchronized"]),
            )
            for row in rows
        }
        record_set = RecordSet(files=files)
        if meta is not None:
            record_set.play_time = timedelta(seconds=meta["play_time"])
            record_set.last_updated = _from_timestamp(meta["last_updated"])
            record_set.last_sync_status = meta["last_sync_status"]

        logger.debug("Loaded %d records for %s/%s", len(files), item_id, profile_id)
        return record_set

    def save_record_set(self, item_id: str, profile_id: str, record_set: RecordSet) -> None:
        """Replace the stored record set of an item and profile.

        Args:
            item_id: Tracked item.
            profile_id: Profile of the item.
            record_set: Complete record set to store.

        Raises:
            PersistenceError: If the set could not be written.
        """
        try:
            retry_with_backoff(
                lambda: self._save(item_id, profile_id, record_set),
                retryable_exceptions=RETRYABLE_DB_ERRORS,
                operation=f"Save of {item_id}/{profile_id}",
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save record set: {e}", item_id, profile_id) from e

        logger.info("Record set for %s/%s updated with %d file records", item_id, profile_id, len(record_set))

    def _save(self, item_id: str, profile_id: str, record_set: RecordSet) -> None:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.execute(
                    "DELETE FROM record_files WHERE item_id = ? AND profile_id = ?",
                    (item_id, profile_id),
                )
                self._conn.executemany(
                    """
                    INSERT INTO record_files (
                        item_id, profile_id, storage_key, portable_path, checksum,
                        size_bytes, last_local_write, last_synchronized
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            item_id,
                            profile_id,
                            key,
                            record.portable_path,
                            record.checksum,
                            record.size_bytes,
                            _to_timestamp(record.last_local_write),
                            _to_timestamp(record.last_synchronized),
                        )
                        for key, record in record_set.files.items()
                    ],
                )
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO record_sets (
                        item_id, profile_id, play_time, last_updated, last_sync_status
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        item_id,
                        profile_id,
                        record_set.play_time.total_seconds(),
                        _to_timestamp(record_set.last_updated),
                        record_set.last_sync_status,
                    ),
                )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def remove_record(self, item_id: str, profile_id: str, storage_key: str) -> bool:
        """Remove one record on explicit user request.

        Returns:
            True if a record was removed.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM record_files WHERE item_id = ? AND profile_id = ? AND storage_key = ?",
                (item_id, profile_id, storage_key),
            )
        return cursor.rowcount > 0

    # === Tracked files ===

    def add_tracked_path(self, item_id: str, path: str) -> None:
        """Opt a file into tracking for an item."""
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO tracked_files (item_id, path) VALUES (?, ?)",
                (item_id, path),
            )

    def remove_tracked_path(self, item_id: str, path: str) -> bool:
        """Stop tracking a file. Its record is kept."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM tracked_files WHERE item_id = ? AND path = ?",
                (item_id, path),
            )
        return cursor.rowcount > 0

    def list_tracked_paths(self, item_id: str) -> list[str]:
        """List tracked files of an item in insertion-independent order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT path FROM tracked_files WHERE item_id = ? ORDER BY path",
                (item_id,),
            ).fetchall()
        return [row["path"] for row in rows]
