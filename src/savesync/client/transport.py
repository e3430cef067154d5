"""Remote transport collaborator.

This module provides:
- Transport: Protocol the engine uses to reach the remote copy
- TransferResult, TransferProgress: Outcome of one transfer
- RcloneTransport: Implementation running the rclone command-line tool
- join_remote_path: Build remote paths below a remote root

The engine only hands opaque path strings to the transport. Remote paths
use rclone's "remote:path" syntax but nothing outside this module
interprets them.
"""

from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from savesync.client.manifest import parse_manifest
from savesync.core.errors import TransientTransportError, ValidationError
from savesync.core.records import RecordSet
from savesync.core.types import TransferDirection

logger = logging.getLogger(__name__)

# rclone exit codes for "directory not found" and "file not found"
NOT_FOUND_EXIT_CODES = frozenset({3, 4})
NOT_FOUND_MARKERS = ("not found", "doesn't exist", "does not exist")


@dataclass(frozen=True)
class TransferProgress:
    """One progress update reported by the transport."""

    bytes_transferred: int
    total_bytes: int

    @property
    def percent(self) -> float:
        """Get progress percentage."""
        if self.total_bytes == 0:
            return 100.0
        return (self.bytes_transferred / self.total_bytes) * 100


@dataclass
class TransferResult:
    """Result of a single transport operation.

    Attributes:
        success: Whether the operation completed.
        source: Source path as given.
        destination: Destination path as given (empty for purge).
        error: Error message if failed.
        elapsed_time: Time taken in seconds.
        progress: Progress updates in the order they were reported.
    """

    success: bool
    source: str
    destination: str = ""
    error: str | None = None
    elapsed_time: float = 0.0
    progress: list[TransferProgress] = field(default_factory=list)


class Transport(Protocol):
    """Narrow interface to the remote copy."""

    def fetch_remote_record_set(self, remote_path: str, timeout: float) -> RecordSet | None:
        """Fetch a remote manifest. None if it does not exist.

        Raises:
            TransientTransportError: If the remote could not be read.
        """
        ...

    def transfer(
        self,
        local_path: Path,
        remote_path: str,
        direction: TransferDirection,
        timeout: float,
    ) -> TransferResult:
        """Copy one file between the local disk and the remote."""
        ...

    def copy_remote(
        self,
        source: str,
        destination: str,
        timeout: float,
        ignore_existing: bool = False,
    ) -> TransferResult:
        """Copy one file between two remote locations."""
        ...

    def purge_remote(self, remote_path: str, timeout: float) -> TransferResult:
        """Delete a remote directory and everything in it."""
        ...


def join_remote_path(root: str, relative: str) -> str:
    """Join a remote root ("remote:", "remote:dir", "remote:dir/") with a relative path."""
    relative = relative.lstrip("/")
    if not relative:
        return root
    if root.endswith((":", "/")):
        return root + relative
    return f"{root}/{relative}"


def _parse_progress(stderr: str) -> list[TransferProgress]:
    """Extract stats lines from rclone's JSON log output."""
    updates: list[TransferProgress] = []
    for line in stderr.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        stats = entry.get("stats") if isinstance(entry, dict) else None
        if isinstance(stats, dict):
            updates.append(
                TransferProgress(
                    bytes_transferred=int(stats.get("bytes", 0)),
                    total_bytes=int(stats.get("totalBytes", 0)),
                )
            )
    return updates


def _is_not_found(result: subprocess.CompletedProcess[str]) -> bool:
    if result.returncode in NOT_FOUND_EXIT_CODES:
        return True
    stderr = (result.stderr or "").lower()
    return any(marker in stderr for marker in NOT_FOUND_MARKERS)


class RcloneTransport:
    """Transport backed by the rclone command-line tool.

    Every call runs one rclone subprocess bounded by the caller's timeout.
    A timeout, a missing executable or an unexpected exit code surfaces as
    TransientTransportError (fetch) or as a failed TransferResult.
    """

    def __init__(self, executable: str = "rclone", config_path: str | None = None) -> None:
        """Initialize the transport.

        Args:
            executable: Name or path of the rclone binary.
            config_path: Optional rclone config file.
        """
        self._executable = executable
        self._config_path = config_path

    def _run(self, args: list[str], timeout: float) -> subprocess.CompletedProcess[str]:
        cmd = [self._executable, *args]
        if self._config_path:
            cmd += ["--config", self._config_path]

        logger.debug("Executing: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TransientTransportError(f"rclone {args[0]} timed out after {timeout:.0f}s") from e
        except OSError as e:
            raise TransientTransportError(f"Failed to start rclone: {e}") from e

    def fetch_remote_record_set(self, remote_path: str, timeout: float) -> RecordSet | None:
        """Fetch and parse a remote manifest file.

        Args:
            remote_path: Remote manifest path.
            timeout: Seconds before the fetch is abandoned.

        Returns:
            RecordSet, or None if the manifest does not exist.

        Raises:
            TransientTransportError: On timeout, rclone failure or an unreadable manifest.
        """
        result = self._run(["cat", remote_path], timeout)

        if result.returncode != 0:
            if _is_not_found(result):
                logger.info("Remote manifest not found: %s", remote_path)
                return None
            raise TransientTransportError(
                f"rclone cat failed ({result.returncode}): {result.stderr.strip()}",
                remote_path=remote_path,
            )

        if not result.stdout.strip():
            return None

        try:
            return parse_manifest(result.stdout)
        except ValidationError as e:
            raise TransientTransportError(str(e), remote_path=remote_path) from e

    def _copy(self, source: str, destination: str, timeout: float, extra: list[str]) -> TransferResult:
        start = time.monotonic()
        args = ["copyto", source, destination, "--use-json-log", "--stats", "1s", "-v", *extra]
        try:
            result = self._run(args, timeout)
        except TransientTransportError as e:
            return TransferResult(
                success=False,
                source=source,
                destination=destination,
                error=str(e),
                elapsed_time=time.monotonic() - start,
            )

        elapsed = time.monotonic() - start
        if result.returncode != 0:
            error = result.stderr.strip() or f"exit code {result.returncode}"
            logger.warning("Failed to copy %s -> %s: %s", source, destination, error)
            return TransferResult(
                success=False,
                source=source,
                destination=destination,
                error=error,
                elapsed_time=elapsed,
                progress=_parse_progress(result.stderr),
            )

        return TransferResult(
            success=True,
            source=source,
            destination=destination,
            elapsed_time=elapsed,
            progress=_parse_progress(result.stderr),
        )

    def transfer(
        self,
        local_path: Path,
        remote_path: str,
        direction: TransferDirection,
        timeout: float,
    ) -> TransferResult:
        """Upload or download one file."""
        if direction is TransferDirection.UPLOAD:
            return self._copy(str(local_path), remote_path, timeout, [])
        return self._copy(remote_path, str(local_path), timeout, [])

    def copy_remote(
        self,
        source: str,
        destination: str,
        timeout: float,
        ignore_existing: bool = False,
    ) -> TransferResult:
        """Copy one file between two remote paths."""
        extra = ["--ignore-existing"] if ignore_existing else []
        return self._copy(source, destination, timeout, extra)

    def purge_remote(self, remote_path: str, timeout: float) -> TransferResult:
        """Remove a remote directory and its contents.

        A directory that does not exist counts as purged.
        """
        start = time.monotonic()
        try:
            result = self._run(["purge", remote_path], timeout)
        except TransientTransportError as e:
            return TransferResult(success=False, source=remote_path, error=str(e))

        elapsed = time.monotonic() - start
        if result.returncode != 0 and not _is_not_found(result):
            return TransferResult(
                success=False,
                source=remote_path,
                error=result.stderr.strip() or f"exit code {result.returncode}",
                elapsed_time=elapsed,
            )
        return TransferResult(success=True, source=remote_path, elapsed_time=elapsed)
