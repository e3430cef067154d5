"""Shared configuration classes for savesync.

This module defines configuration used by the client components. The core
engine never reads it directly: call sites pass the relevant values
(thresholds, timeouts) into each operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any


@dataclass
class EngineConfig:
    """Tunables for tracking and synchronisation.

    Attributes:
        auto_threshold: Indifference threshold for the automatic post-exit check.
        manual_threshold: Indifference threshold for an interactive sync.
        remote_timeout: Timeout for fetching remote record sets, in seconds.
        transfer_timeout: Timeout for a single file transfer, in seconds.
        scan_interval: Seconds between background scans while the application runs.
        rclone_executable: Name or path of the rclone binary.
        rclone_config: Optional rclone config file passed with --config.
    """

    auto_threshold: timedelta = field(default_factory=lambda: timedelta(minutes=5))
    manual_threshold: timedelta = field(default_factory=lambda: timedelta(minutes=15))
    remote_timeout: float = 15.0
    transfer_timeout: float = 60.0
    scan_interval: float = 5.0
    rclone_executable: str = "rclone"
    rclone_config: str | None = None

    def __post_init__(self) -> None:
        """Validate value ranges."""
        if self.auto_threshold < timedelta(0) or self.manual_threshold < timedelta(0):
            raise ValueError("Thresholds must not be negative")
        if self.remote_timeout <= 0 or self.transfer_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if self.scan_interval <= 0:
            raise ValueError("Scan interval must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Build a config from a JSON-style mapping.

        Thresholds are given in minutes. Unknown keys are ignored.

        Args:
            data: Mapping loaded from the config file.

        Returns:
            EngineConfig with defaults for missing keys.
        """
        kwargs: dict[str, Any] = {}
        if "auto_threshold_minutes" in data:
            kwargs["auto_threshold"] = timedelta(minutes=float(data["auto_threshold_minutes"]))
        if "manual_threshold_minutes" in data:
            kwargs["manual_threshold"] = timedelta(minutes=float(data["manual_threshold_minutes"]))
        for key in ("remote_timeout", "transfer_timeout", "scan_interval"):
            if key in data:
                kwargs[key] = float(data[key])
        for key in ("rclone_executable", "rclone_config"):
            if data.get(key):
                kwargs[key] = str(data[key])
        return cls(**kwargs)
