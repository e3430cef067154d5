"""Tests for the smart sync comparator."""

from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from savesync.client.sync.comparator import (
    compare,
    compare_with_remote,
    fetch_remote_records,
    fetch_remote_usage,
    format_duration,
    local_usage_sample,
)
from savesync.core.errors import TransientTransportError, ValidationError
from savesync.core.records import ChecksumRecord, RecordSet, UsageSample
from savesync.core.types import SyncStatus

TEN_MINUTES = timedelta(minutes=10)


def usage(**kwargs: float) -> UsageSample:
    """Create a usage sample from timedelta keyword arguments."""
    return UsageSample(cumulative_duration=timedelta(**kwargs))


@pytest.fixture
def transport() -> MagicMock:
    """Create a mock transport with no remote record set."""
    mock = MagicMock()
    mock.fetch_remote_record_set.return_value = None
    return mock


class TestFormatDuration:
    """Tests for format_duration."""

    def test_format(self) -> None:
        assert format_duration(timedelta(hours=2, minutes=3, seconds=4)) == "02:03:04"

    def test_hours_unbounded(self) -> None:
        assert format_duration(timedelta(days=2, hours=1)) == "49:00:00"

    def test_sign_dropped(self) -> None:
        assert format_duration(timedelta(minutes=-5)) == "00:05:00"


class TestCompare:
    """Tests for the decision rule."""

    def test_remote_not_found(self) -> None:
        """Empty local usage and no remote set means safe to push."""
        result = compare(usage(), None, TEN_MINUTES)

        assert result.status is SyncStatus.REMOTE_NOT_FOUND
        assert result.remote_usage is None
        assert result.magnitude == timedelta(0)
        assert result.message == "No cloud save found"

    def test_similar_within_threshold(self) -> None:
        result = compare(usage(hours=2), usage(hours=2, seconds=5), TEN_MINUTES)

        assert result.status is SyncStatus.SIMILAR
        assert result.magnitude == timedelta(seconds=5)
        assert result.message == "Progress is similar (diff: 00:00:05)"

    def test_cloud_ahead(self) -> None:
        result = compare(usage(hours=1), usage(hours=3), TEN_MINUTES)

        assert result.status is SyncStatus.CLOUD_AHEAD
        assert result.magnitude == timedelta(hours=2)
        assert result.message == "Cloud is ahead by 02:00:00"
        assert result.cloud_is_ahead

    def test_local_ahead(self) -> None:
        result = compare(usage(hours=3), usage(hours=1), TEN_MINUTES)

        assert result.status is SyncStatus.LOCAL_AHEAD
        assert result.magnitude == timedelta(hours=2)
        assert result.message == "Local is ahead by 02:00:00"
        assert not result.cloud_is_ahead

    def test_difference_equal_to_threshold_is_similar(self) -> None:
        assert compare(usage(hours=1), usage(hours=1, minutes=10), TEN_MINUTES).status is SyncStatus.SIMILAR

    @pytest.mark.parametrize(
        ("local", "remote"),
        [
            (timedelta(hours=1), timedelta(hours=3)),
            (timedelta(minutes=7), timedelta(minutes=2)),
            (timedelta(0), timedelta(minutes=11)),
        ],
    )
    def test_swapping_sides_swaps_direction(self, local: timedelta, remote: timedelta) -> None:
        forward = compare(UsageSample(local), UsageSample(remote), timedelta(minutes=1))
        backward = compare(UsageSample(remote), UsageSample(local), timedelta(minutes=1))

        assert {forward.status, backward.status} == {SyncStatus.CLOUD_AHEAD, SyncStatus.LOCAL_AHEAD}
        assert forward.magnitude == backward.magnitude

    def test_zero_threshold(self) -> None:
        """With no tolerance only identical usage is similar."""
        assert compare(usage(hours=1), usage(hours=1), timedelta(0)).status is SyncStatus.SIMILAR
        assert compare(usage(hours=1), usage(hours=1, seconds=1), timedelta(0)).status is SyncStatus.CLOUD_AHEAD

    def test_negative_threshold_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compare(usage(), usage(), timedelta(seconds=-1))


class TestFetchRemoteUsage:
    """Tests for fetch_remote_usage."""

    def test_reads_play_time(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.return_value = RecordSet(play_time=timedelta(hours=5))

        sample = fetch_remote_usage(transport, "gdrive:h/.savetracker_profile_default.json", timeout=15)

        assert sample.cumulative_duration == timedelta(hours=5)
        transport.fetch_remote_record_set.assert_called_once_with("gdrive:h/.savetracker_profile_default.json", 15)

    def test_transport_failure_is_not_found(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.side_effect = TransientTransportError("timed out")
        assert fetch_remote_usage(transport, "gdrive:h/x.json", timeout=15) is None


class TestLocalUsageSample:
    """Tests for the local usage guard."""

    def test_no_records(self) -> None:
        assert local_usage_sample(None).cumulative_duration == timedelta(0)

    def test_without_install_root_uses_play_time(self) -> None:
        records = RecordSet.from_records(
            [ChecksumRecord(portable_path="%GAMEPATH%/a.dat", checksum="a")], play_time=timedelta(hours=2)
        )
        assert local_usage_sample(records).cumulative_duration == timedelta(hours=2)

    def test_no_files_on_this_machine_counts_as_zero(self, tmp_path: Path) -> None:
        """Records shared with another OS whose files are absent here count as zero usage."""
        records = RecordSet.from_records(
            [ChecksumRecord(portable_path="%GAMEPATH%/a.dat", checksum="a")], play_time=timedelta(hours=2)
        )
        assert local_usage_sample(records, tmp_path).cumulative_duration == timedelta(0)

    def test_existing_files_keep_play_time(self, tmp_path: Path) -> None:
        (tmp_path / "a.dat").write_bytes(b"a")
        records = RecordSet.from_records(
            [ChecksumRecord(portable_path="%GAMEPATH%/a.dat", checksum="a")], play_time=timedelta(hours=2)
        )
        assert local_usage_sample(records, tmp_path).cumulative_duration == timedelta(hours=2)


class TestCompareWithRemote:
    """Tests for compare_with_remote."""

    def test_empty_local_no_remote(self, transport: MagicMock) -> None:
        result = compare_with_remote(RecordSet(), transport, "gdrive:h/x.json", TEN_MINUTES, timeout=15)
        assert result.status is SyncStatus.REMOTE_NOT_FOUND

    def test_cloud_ahead(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.return_value = RecordSet(play_time=timedelta(hours=3))

        result = compare_with_remote(
            RecordSet(play_time=timedelta(hours=1)), transport, "gdrive:h/x.json", TEN_MINUTES, timeout=15
        )

        assert result.status is SyncStatus.CLOUD_AHEAD
        assert result.magnitude == timedelta(hours=2)

    def test_unreadable_remote_is_not_found(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.side_effect = TransientTransportError("rclone missing")

        result = compare_with_remote(RecordSet(), transport, "gdrive:h/x.json", TEN_MINUTES, timeout=15)

        assert result.status is SyncStatus.REMOTE_NOT_FOUND

    def test_negative_threshold_rejected_before_fetch(self, transport: MagicMock) -> None:
        with pytest.raises(ValidationError):
            compare_with_remote(RecordSet(), transport, "gdrive:h/x.json", timedelta(minutes=-1), timeout=15)
        transport.fetch_remote_record_set.assert_not_called()

    def test_legacy_manifest_used_when_profile_missing(self, transport: MagicMock) -> None:
        """A remote holding only the legacy manifest is not reported as empty."""
        transport.fetch_remote_record_set.side_effect = lambda path, timeout: (
            RecordSet(play_time=timedelta(hours=3)) if path.endswith(".savetracker_checksums.json") else None
        )

        result = compare_with_remote(
            RecordSet(play_time=timedelta(hours=1)),
            transport,
            "gdrive:h/.savetracker_profile_default.json",
            TEN_MINUTES,
            timeout=15,
            legacy_remote_path="gdrive:h/.savetracker_checksums.json",
        )

        assert result.status is SyncStatus.CLOUD_AHEAD
        paths = [c.args[0] for c in transport.fetch_remote_record_set.call_args_list]
        assert paths == ["gdrive:h/.savetracker_profile_default.json", "gdrive:h/.savetracker_checksums.json"]

    def test_profile_manifest_preferred_over_legacy(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.return_value = RecordSet(play_time=timedelta(hours=1))

        result = compare_with_remote(
            RecordSet(play_time=timedelta(hours=1)),
            transport,
            "gdrive:h/.savetracker_profile_default.json",
            TEN_MINUTES,
            timeout=15,
            legacy_remote_path="gdrive:h/.savetracker_checksums.json",
        )

        assert result.status is SyncStatus.SIMILAR
        transport.fetch_remote_record_set.assert_called_once()


class TestFetchRemoteRecords:
    """Tests for fetch_remote_records."""

    def test_neither_manifest_exists(self, transport: MagicMock) -> None:
        assert fetch_remote_records(transport, "gdrive:h/p.json", 15, "gdrive:h/legacy.json") is None
        assert transport.fetch_remote_record_set.call_count == 2

    def test_unreadable_manifest_raises(self, transport: MagicMock) -> None:
        transport.fetch_remote_record_set.side_effect = TransientTransportError("timed out")

        with pytest.raises(TransientTransportError):
            fetch_remote_records(transport, "gdrive:h/p.json", 15, "gdrive:h/legacy.json")
