"""Tracking session for a running application.

This module provides:
- TrackingSession: Periodic background scans plus a final scan on exit

While the tracked application runs, a BackgroundScheduler job scans the
tracked files every few seconds and saves the updated record set, so a
crash loses at most one interval of change detection. end_session() is
the exit-time obligation: it stops the background job, waits for a scan
in progress, and runs one last scan whose failure to save propagates.
The time between start() and end_session() is added to the record set's
play time, which the smart sync comparator uses.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from savesync.client.sync.cancellation import CancellationToken

if TYPE_CHECKING:
    from savesync.client.state import RecordStore
    from savesync.client.sync.change_tracker import ChangeTracker, ScanResult

logger = logging.getLogger(__name__)

DEFAULT_SCAN_INTERVAL = 5.0  # seconds


class TrackingSession:
    """Scans tracked files of one item and profile while it is in use."""

    def __init__(
        self,
        store: RecordStore,
        tracker: ChangeTracker,
        item_id: str,
        profile_id: str,
        tracked_paths: Callable[[], Sequence[str | Path]],
        interval: float = DEFAULT_SCAN_INTERVAL,
    ) -> None:
        """Initialize the session.

        Args:
            store: Record store for loading and saving record sets.
            tracker: Change tracker bound to the item's install root.
            item_id: Tracked item.
            profile_id: Active profile.
            tracked_paths: Returns the current tracked-file list; called every scan.
            interval: Seconds between background scans.
        """
        self._store = store
        self._tracker = tracker
        self._item_id = item_id
        self._profile_id = profile_id
        self._tracked_paths = tracked_paths
        self._interval = interval

        self._scheduler: BackgroundScheduler | None = None
        self._started_at: datetime | None = None
        self._token = CancellationToken()
        # Serializes load-scan-save cycles for this item and profile
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def scan_once(
        self,
        cancel_token: CancellationToken | None = None,
        add_play_time: timedelta | None = None,
    ) -> ScanResult:
        """Re-read the record set, scan, and save it if anything changed.

        Args:
            cancel_token: Checked before each file.
            add_play_time: Usage to add to the record set's play time; forces a save.

        Raises:
            PersistenceError: If the updated record set could not be saved.
        """
        with self._lock:
            previous = self._store.load_record_set(self._item_id, self._profile_id)
            result = self._tracker.scan(previous, list(self._tracked_paths()), cancel_token)
            if add_play_time:
                result.records = result.records.copy(play_time=result.records.play_time + add_play_time)
            if result.candidates or previous is None or add_play_time:
                self._store.save_record_set(self._item_id, self._profile_id, result.records)
        return result

    def _scan_job(self) -> None:
        """Job function for the scheduled scan."""
        try:
            self.scan_once(self._token)
        except Exception:
            logger.exception("Error during scheduled scan of %s", self._item_id)

    def start(self) -> None:
        """Start background scanning."""
        if self._scheduler is not None:
            return  # Already running

        self._started_at = datetime.now(UTC)
        self._token = CancellationToken()
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._scan_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id=f"scan_{self._item_id}",
            name=f"Save scan for {self._item_id}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Tracking session started for %s/%s (every %.1fs)",
            self._item_id,
            self._profile_id,
            self._interval,
        )

    def end_session(self) -> ScanResult:
        """Stop background scanning and run the final scan.

        Returns:
            ScanResult of the final scan.

        Raises:
            PersistenceError: If the final record set could not be saved.
        """
        self._token.cancel()
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        play_time = datetime.now(UTC) - self._started_at if self._started_at else None
        self._started_at = None
        result = self.scan_once(CancellationToken(), add_play_time=play_time)
        logger.info(
            "Tracking session ended for %s/%s: %d changed files",
            self._item_id,
            self._profile_id,
            len(result.candidates),
        )
        return result
