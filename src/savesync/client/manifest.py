"""Record-set manifest file format.

This module provides:
- ManifestRecord, Manifest: Pydantic models of the JSON manifest
- parse_manifest / dump_manifest: Convert between JSON and RecordSet
- record_set_filename: Profile-specific manifest file name

The manifest is the durable contract shared with other tools and with the
remote copy. Field names follow the existing files:

    {
      "Files": {
        "%GAMEPATH%/Saves/save.dat": {
          "Checksum": "9e107d9d372bb6826bd81d3542a419d6",
          "LastUpload": "2024-05-01T18:22:03Z",
          "Path": "%GAMEPATH%/Saves/save.dat",
          "FileSize": 1024,
          "LastWriteTime": "2024-05-01T18:20:00Z"
        }
      },
      "LastUpdated": "2024-05-01T18:22:03Z",
      "PlayTime": "02:00:05",
      "LastSyncStatus": "Success"
    }

Legacy manifests key files by their flat storage name and keep the
structured path only in "Path"; both shapes parse into a RecordSet whose
keys are the manifest keys.
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from savesync.core.errors import ValidationError
from savesync.core.records import DEFAULT_SYNC_STATUS, ChecksumRecord, RecordSet

DEFAULT_PROFILE_ID = "DEFAULT_PROFILE_ID"
LEGACY_MANIFEST_FILENAME = ".savetracker_checksums.json"
PROFILE_MANIFEST_PREFIX = ".savetracker_profile_"
PROFILE_MANIFEST_SUFFIX = ".json"
MANIFEST_PREFIX = ".savetracker"

MAX_PROFILE_NAME_LENGTH = 24

# [-][d.]hh:mm:ss[.fffffff]
_TIMESPAN_RE = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<hours>\d+):(?P<minutes>\d{2}):(?P<seconds>\d{2})"
    r"(?:\.(?P<fraction>\d{1,7}))?$"
)


def parse_timespan(value: str) -> timedelta:
    """Parse a "[d.]hh:mm:ss[.fffffff]" duration.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    match = _TIMESPAN_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    fraction = (match["fraction"] or "").ljust(7, "0")
    result = timedelta(
        days=int(match["days"] or 0),
        hours=int(match["hours"]),
        minutes=int(match["minutes"]),
        seconds=int(match["seconds"]),
        microseconds=int(fraction) // 10,
    )
    return -result if match["sign"] else result


def format_timespan(value: timedelta) -> str:
    """Format a duration as "[d.]hh:mm:ss[.fffffff]"."""
    sign = "-" if value < timedelta(0) else ""
    value = abs(value)
    hours, remainder = divmod(value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.days:
        text = f"{value.days}.{text}"
    if value.microseconds:
        text += f".{value.microseconds * 10:07d}"
    return sign + text


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.year <= 1:
        # .NET writes DateTime.MinValue for "never"
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ManifestRecord(BaseModel):
    """One file entry of a manifest."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    checksum: str = Field(alias="Checksum", min_length=1)
    path: str = Field(default="", alias="Path")
    file_size: int = Field(default=0, alias="FileSize", ge=0)
    last_upload: datetime | None = Field(default=None, alias="LastUpload")
    last_write_time: datetime | None = Field(default=None, alias="LastWriteTime")

    @field_validator("last_upload", "last_write_time")
    @classmethod
    def _normalize_time(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class Manifest(BaseModel):
    """A full record-set manifest."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    files: dict[str, ManifestRecord] = Field(default_factory=dict, alias="Files")
    last_updated: datetime | None = Field(default=None, alias="LastUpdated")
    play_time: timedelta = Field(default_factory=timedelta, alias="PlayTime")
    last_sync_status: str = Field(default=DEFAULT_SYNC_STATUS, alias="LastSyncStatus")

    @field_validator("play_time", mode="before")
    @classmethod
    def _parse_play_time(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_timespan(value)
        return value

    @field_validator("last_updated")
    @classmethod
    def _normalize_updated(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_serializer("play_time")
    def _serialize_play_time(self, value: timedelta) -> str:
        return format_timespan(value)

    def to_record_set(self) -> RecordSet:
        files = {
            key: ChecksumRecord(
                portable_path=entry.path or key,
                checksum=entry.checksum,
                size_bytes=entry.file_size,
                last_local_write=entry.last_write_time,
                last_synchronized=entry.last_upload,
            )
            for key, entry in self.files.items()
        }
        return RecordSet(
            files=files,
            play_time=self.play_time,
            last_updated=self.last_updated,
            last_sync_status=self.last_sync_status,
        )

    @classmethod
    def from_record_set(cls, record_set: RecordSet) -> Manifest:
        return cls(
            files={
                key: ManifestRecord(
                    checksum=record.checksum,
                    path=record.portable_path,
                    file_size=record.size_bytes,
                    last_upload=record.last_synchronized,
                    last_write_time=record.last_local_write,
                )
                for key, record in record_set.files.items()
            },
            last_updated=record_set.last_updated,
            play_time=record_set.play_time,
            last_sync_status=record_set.last_sync_status,
        )


def parse_manifest(text: str | bytes) -> RecordSet:
    """Parse manifest JSON into a RecordSet.

    Raises:
        ValidationError: If the JSON is malformed or does not match the schema.
    """
    try:
        manifest = Manifest.model_validate_json(text)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid record-set manifest: {e}") from e
    return manifest.to_record_set()


def dump_manifest(record_set: RecordSet) -> str:
    """Serialize a RecordSet as indented manifest JSON."""
    manifest = Manifest.from_record_set(record_set)
    return json.dumps(manifest.model_dump(mode="json", by_alias=True), indent=2)


def sanitize_profile_name(profile_id: str) -> str:
    """Turn a profile id into a short file-name-safe name.

    Keeps lowercase alphanumerics only, truncated to 24 characters.
    """
    sanitized = "".join(c for c in profile_id.lower() if c.isascii() and c.isalnum())
    return sanitized[:MAX_PROFILE_NAME_LENGTH] or "profile"


def record_set_filename(profile_id: str | None = None) -> str:
    """Get the manifest file name for a profile.

    Args:
        profile_id: Profile id; None or the default id selects "default".

    Returns:
        File name such as ".savetracker_profile_default.json".
    """
    if not profile_id or profile_id.upper() == DEFAULT_PROFILE_ID:
        name = "default"
    else:
        name = sanitize_profile_name(profile_id)
    return f"{PROFILE_MANIFEST_PREFIX}{name}{PROFILE_MANIFEST_SUFFIX}"


def is_manifest_file(name: str) -> bool:
    """Check whether a file name belongs to savesync bookkeeping."""
    return name.lower().startswith(MANIFEST_PREFIX)
