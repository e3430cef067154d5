"""Tests for retry_with_backoff."""

import logging
import sqlite3
from unittest.mock import patch

import pytest

from savesync.client.sync.retry import (
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)


class TestRetryWithBackoff:
    """Tests for retry_with_backoff function."""

    def test_succeeds_on_first_try(self) -> None:
        """Should return result without sleeping."""
        with patch("savesync.client.sync.retry.time.sleep") as mock_sleep:
            assert retry_with_backoff(lambda: "ok") == "ok"
        mock_sleep.assert_not_called()

    def test_locked_database_retried(self) -> None:
        """A locked database that clears is retried transparently."""
        counter = {"calls": 0}

        def locked_once() -> str:
            counter["calls"] += 1
            if counter["calls"] == 1:
                raise sqlite3.OperationalError("database is locked")
            return "saved"

        with patch("savesync.client.sync.retry.time.sleep"):
            result = retry_with_backoff(locked_once, retryable_exceptions=(sqlite3.OperationalError,))

        assert result == "saved"
        assert counter["calls"] == 2

    def test_default_policy_three_attempts_doubling(self) -> None:
        """Defaults: three attempts, 0.5s then 1.0s between them."""
        sleep_times: list[float] = []
        counter = {"calls": 0}

        def always_locked() -> None:
            counter["calls"] += 1
            raise sqlite3.OperationalError("database is locked")

        with patch("savesync.client.sync.retry.time.sleep") as mock_sleep:
            mock_sleep.side_effect = sleep_times.append
            with pytest.raises(sqlite3.OperationalError):
                retry_with_backoff(always_locked, retryable_exceptions=(sqlite3.OperationalError,))

        assert counter["calls"] == DEFAULT_MAX_RETRIES + 1 == 3
        assert sleep_times == [DEFAULT_INITIAL_BACKOFF, DEFAULT_INITIAL_BACKOFF * 2]

    def test_does_not_retry_other_exceptions(self) -> None:
        """Should not retry exceptions outside the retryable list."""
        counter = {"calls": 0}

        def corrupt() -> None:
            counter["calls"] += 1
            raise sqlite3.IntegrityError("NOT NULL constraint failed")

        with pytest.raises(sqlite3.IntegrityError):
            retry_with_backoff(corrupt, retryable_exceptions=(sqlite3.OperationalError,))

        assert counter["calls"] == 1

    def test_max_backoff_cap(self) -> None:
        """Should cap backoff at max_backoff."""
        sleep_times: list[float] = []

        def always_fail() -> None:
            raise OSError("busy")

        with patch("savesync.client.sync.retry.time.sleep") as mock_sleep:
            mock_sleep.side_effect = sleep_times.append
            with pytest.raises(OSError):
                retry_with_backoff(
                    always_fail,
                    max_retries=4,
                    initial_backoff=1.0,
                    max_backoff=3.0,
                    retryable_exceptions=(OSError,),
                )

        assert sleep_times == [1.0, 2.0, 3.0, 3.0]

    def test_operation_named_in_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        """Log messages say which operation is being retried."""

        def always_locked() -> None:
            raise sqlite3.OperationalError("database is locked")

        with patch("savesync.client.sync.retry.time.sleep"), caplog.at_level(logging.WARNING):
            with pytest.raises(sqlite3.OperationalError):
                retry_with_backoff(always_locked, operation="Save of hollow/default")

        assert "Save of hollow/default attempt 1/3 failed" in caplog.text
        assert "Save of hollow/default failed after 3 attempts" in caplog.text
