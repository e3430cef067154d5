"""Portable path contraction and expansion.

This module provides:
- contract_path: Absolute path -> portable path with a root marker
- expand_path: Portable path -> absolute path for a given install root
- resolve_relative_path: Portable path -> path relative to its root

Portable paths use symbolic roots so that a record written on one machine
can be resolved on another machine where the application lives elsewhere:

    /games/Hollow/Saves/user1.dat  ->  %GAMEPATH%/Saves/user1.dat
    /home/alice/.config/x/opt.ini  ->  %USERPROFILE%/.config/x/opt.ini

Paths outside both roots contract to their bare file name. This loses the
directory structure and two files with the same name collide; it is kept
for compatibility with record files written by earlier versions.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from savesync.core.errors import ValidationError

logger = logging.getLogger(__name__)

GAMEPATH_MARKER = "%GAMEPATH%"
USERPROFILE_MARKER = "%USERPROFILE%"

# Checked in order, most specific root first
MARKERS: tuple[str, ...] = (GAMEPATH_MARKER, USERPROFILE_MARKER)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_MARKER_RE = re.compile(r"^%[^%/\\]+%")


def _normalize(path: str | Path) -> str:
    """Convert separators to forward slashes."""
    return str(path).replace("\\", "/")


def _with_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else path + "/"


def _file_name(normalized: str) -> str:
    return normalized.rstrip("/").rsplit("/", 1)[-1]


def _split_marker(normalized: str) -> tuple[str | None, str]:
    """Split a known leading marker from the rest of the path.

    Returns:
        (marker, remainder) or (None, path) if no known marker leads.
    """
    for marker in MARKERS:
        if normalized[: len(marker)].upper() == marker:
            return marker, normalized[len(marker):]
    return None, normalized


def is_portable(path: str | Path) -> bool:
    """Check whether a path starts with a known root marker."""
    marker, _ = _split_marker(_normalize(path))
    return marker is not None


def is_absolute(path: str | Path) -> bool:
    """Check for a POSIX root, UNC prefix or drive letter."""
    normalized = _normalize(path)
    return normalized.startswith("/") or bool(_DRIVE_RE.match(normalized))


def contract_path(
    absolute_path: str | Path,
    install_root: str | Path | None,
    user_profile: str | Path | None = None,
) -> str:
    """Contract an absolute path into a portable path.

    Args:
        absolute_path: Path of a file on this machine.
        install_root: Install directory of the tracked application.
        user_profile: User profile directory (defaults to the home directory).

    Returns:
        Portable path using a root marker, the unchanged input if it is
        already portable or relative, or the bare file name when the path
        lies outside every known root.

    Raises:
        ValidationError: If the path is empty.
    """
    if not str(absolute_path):
        raise ValidationError("Cannot contract an empty path")

    normalized = _normalize(absolute_path)

    if is_portable(normalized):
        return normalized

    if install_root:
        root = _with_trailing_slash(_normalize(install_root))
        if normalized.lower().startswith(root.lower()):
            return f"{GAMEPATH_MARKER}/{normalized[len(root):]}"

    profile = user_profile if user_profile is not None else Path.home()
    if profile:
        profile_root = _with_trailing_slash(_normalize(profile))
        if normalized.lower().startswith(profile_root.lower()):
            return f"{USERPROFILE_MARKER}/{normalized[len(profile_root):]}"

    if not is_absolute(normalized):
        return normalized

    name = _file_name(normalized)
    logger.debug("Path %s is outside known roots, keeping file name %s only", normalized, name)
    return name


def expand_path(
    portable_path: str,
    install_root: str | Path | None,
    user_profile: str | Path | None = None,
) -> str:
    """Expand a portable path back to an absolute path.

    Unmarked relative paths (including bare file names produced by the
    fallback branch of contract_path) resolve under the install root.

    Args:
        portable_path: Path produced by contract_path.
        install_root: Install directory of the tracked application.
        user_profile: User profile directory (defaults to the home directory).

    Returns:
        Absolute path with forward slashes.

    Raises:
        ValidationError: If the path is malformed or cannot be resolved.
    """
    if not portable_path:
        raise ValidationError("Cannot expand an empty portable path")

    normalized = _normalize(portable_path)
    marker, rest = _split_marker(normalized)

    if marker is None:
        if _MARKER_RE.match(normalized):
            raise ValidationError(f"Unknown root marker in portable path: {portable_path}")
        if is_absolute(normalized):
            raise ValidationError(f"Portable path must not be absolute: {portable_path}")

    rest = rest.lstrip("/")
    if _DRIVE_RE.match(rest):
        raise ValidationError(f"Portable path must not contain a drive letter: {portable_path}")
    if ".." in rest.split("/"):
        raise ValidationError(f"Portable path escapes its root: {portable_path}")

    if marker == USERPROFILE_MARKER:
        base = user_profile if user_profile is not None else Path.home()
    else:
        base = install_root

    if not base:
        raise ValidationError(f"No root directory available to expand {portable_path}")

    base_normalized = _normalize(base).rstrip("/") or "/"
    if not rest:
        return base_normalized
    return f"{_with_trailing_slash(base_normalized)}{rest}"


def resolve_relative_path(portable_path: str) -> str:
    """Resolve the path of a record relative to its root.

    Used when rebuilding a directory layout from record metadata:

        %GAMEPATH%/Saves/save.dat  ->  Saves/save.dat
        C:/Games/Other/save.dat    ->  save.dat

    Args:
        portable_path: Portable (or legacy absolute) path from a record.

    Returns:
        Relative path, or the bare file name for rooted paths.
    """
    normalized = _normalize(portable_path)
    marker, rest = _split_marker(normalized)
    if marker is not None:
        return rest.lstrip("/")

    if is_absolute(normalized) or ":" in normalized:
        return _file_name(normalized)

    return normalized.lstrip("/")


def file_name(path: str | Path) -> str:
    """Return the last component of a path using either separator."""
    return _file_name(_normalize(path))
