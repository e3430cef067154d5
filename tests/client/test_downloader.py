"""Tests for pulling remote save files."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from savesync.client.sync.cancellation import CancellationToken
from savesync.client.sync.downloader import SYNC_STATUS_DOWNLOADED, pull_records
from savesync.client.sync.uploader import SYNC_STATUS_FAILED, SYNC_STATUS_PARTIAL
from savesync.client.transport import TransferResult
from savesync.core.checksum import compute_file_checksum
from savesync.core.errors import TransientTransportError
from savesync.core.records import ChecksumRecord, RecordSet
from savesync.core.types import TransferDirection

T0 = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)
REMOTE_ROOT = "gdrive:SaveSync/Hollow"

REMOTE_FILES = {
    f"{REMOTE_ROOT}/Saves/user1.dat": b"cloud slot one",
    f"{REMOTE_ROOT}/Hollow/options.ini": b"cloud options",
}


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    root = tmp_path / "Hollow"
    root.mkdir()
    return root


@pytest.fixture
def profile(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def remote_records(tmp_path: Path) -> RecordSet:
    """Remote record set whose checksums match REMOTE_FILES."""
    records = []
    for portable, remote_path in (
        ("%GAMEPATH%/Saves/user1.dat", f"{REMOTE_ROOT}/Saves/user1.dat"),
        ("%USERPROFILE%/Hollow/options.ini", f"{REMOTE_ROOT}/Hollow/options.ini"),
    ):
        sample = tmp_path / "sample"
        sample.write_bytes(REMOTE_FILES[remote_path])
        records.append(ChecksumRecord(portable_path=portable, checksum=compute_file_checksum(sample)))
    return RecordSet.from_records(records, play_time=timedelta(hours=6))


@pytest.fixture
def transport() -> MagicMock:
    """Create a transport that writes REMOTE_FILES on download."""
    mock = MagicMock()

    def transfer(local_path, remote_path, direction, timeout):
        if remote_path not in REMOTE_FILES:
            return TransferResult(success=False, source=remote_path, error="not found")
        Path(local_path).write_bytes(REMOTE_FILES[remote_path])
        return TransferResult(success=True, source=remote_path, destination=str(local_path))

    mock.transfer.side_effect = transfer
    return mock


class TestPullRecords:
    """Tests for pull_records."""

    def test_downloads_into_roots(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        result = pull_records(remote_records, None, transport, REMOTE_ROOT, install_root, 60, profile, now=T0)

        assert result.succeeded
        assert result.downloaded == ["%GAMEPATH%/Saves/user1.dat", "%USERPROFILE%/Hollow/options.ini"]
        assert (install_root / "Saves" / "user1.dat").read_bytes() == b"cloud slot one"
        assert (profile / "Hollow" / "options.ini").read_bytes() == b"cloud options"
        assert all(c.args[2] is TransferDirection.DOWNLOAD for c in transport.transfer.call_args_list)

    def test_no_temp_files_left(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        pull_records(remote_records, None, transport, REMOTE_ROOT, install_root, 60, profile)

        assert sorted(p.name for p in (install_root / "Saves").iterdir()) == ["user1.dat"]
        assert transport.transfer.call_args_list[0].args[0] == install_root / "Saves" / "user1.dat.tmp"

    def test_records_synchronized_and_play_time_adopted(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        local = RecordSet(play_time=timedelta(hours=1))

        result = pull_records(remote_records, local, transport, REMOTE_ROOT, install_root, 60, profile, now=T0)

        assert result.records.play_time == timedelta(hours=6)
        assert result.records.last_sync_status == SYNC_STATUS_DOWNLOADED
        assert result.records.pending_paths() == []
        record = result.records.files["%GAMEPATH%/Saves/user1.dat"]
        assert record.last_synchronized == T0
        assert record.size_bytes == len(b"cloud slot one")
        assert local.play_time == timedelta(hours=1)
        assert len(local) == 0

    def test_matching_local_file_not_downloaded(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        (install_root / "Saves").mkdir()
        (install_root / "Saves" / "user1.dat").write_bytes(b"cloud slot one")

        result = pull_records(remote_records, None, transport, REMOTE_ROOT, install_root, 60, profile)

        assert result.unchanged == ["%GAMEPATH%/Saves/user1.dat"]
        assert result.downloaded == ["%USERPROFILE%/Hollow/options.ini"]
        assert transport.transfer.call_count == 1

    def test_failed_file_keeps_local_copy_and_play_time(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        """A partial pull keeps the local play time so the next compare still sees the cloud ahead."""
        (profile / "Hollow").mkdir(parents=True)
        (profile / "Hollow" / "options.ini").write_bytes(b"local options")

        def transfer(local_path, remote_path, direction, timeout):
            if remote_path.endswith("options.ini"):
                raise TransientTransportError("connection reset")
            Path(local_path).write_bytes(REMOTE_FILES[remote_path])
            return TransferResult(success=True, source=remote_path, destination=str(local_path))

        transport.transfer.side_effect = transfer
        local = RecordSet(play_time=timedelta(hours=1))

        result = pull_records(remote_records, local, transport, REMOTE_ROOT, install_root, 60, profile)

        assert not result.succeeded
        assert result.failed == {"%USERPROFILE%/Hollow/options.ini": "connection reset"}
        assert (profile / "Hollow" / "options.ini").read_bytes() == b"local options"
        assert not (profile / "Hollow" / "options.ini.tmp").exists()
        assert result.records.play_time == timedelta(hours=1)
        assert result.records.last_sync_status == SYNC_STATUS_PARTIAL

    def test_all_failed(self, remote_records: RecordSet, install_root: Path, profile: Path) -> None:
        transport = MagicMock()
        transport.transfer.return_value = TransferResult(success=False, source="x", error="quota exceeded")

        result = pull_records(remote_records, None, transport, REMOTE_ROOT, install_root, 60, profile)

        assert result.downloaded == []
        assert len(result.failed) == 2
        assert result.records.last_sync_status == SYNC_STATUS_FAILED

    def test_unresolvable_record_reported(self, transport: MagicMock, install_root: Path, profile: Path) -> None:
        remote = RecordSet(files={"x": ChecksumRecord(portable_path="%STEAM%/x.sav", checksum="a")})

        result = pull_records(remote, None, transport, REMOTE_ROOT, install_root, 60, profile)

        assert "%STEAM%/x.sav" in result.failed
        transport.transfer.assert_not_called()

    def test_manifest_records_skipped(self, transport: MagicMock, install_root: Path, profile: Path) -> None:
        remote = RecordSet(
            files={
                "m": ChecksumRecord(portable_path="%GAMEPATH%/.savetracker_checksums.json", checksum="m"),
            }
        )

        result = pull_records(remote, None, transport, REMOTE_ROOT, install_root, 60, profile)

        assert result.succeeded
        assert result.downloaded == []
        transport.transfer.assert_not_called()

    def test_cancelled(
        self, remote_records: RecordSet, transport: MagicMock, install_root: Path, profile: Path
    ) -> None:
        token = CancellationToken()
        token.cancel()

        result = pull_records(
            remote_records, None, transport, REMOTE_ROOT, install_root, 60, profile, cancel_token=token
        )

        assert result.cancelled
        assert not result.succeeded
        transport.transfer.assert_not_called()
