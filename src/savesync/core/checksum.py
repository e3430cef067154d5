"""Content checksums for tracked files."""

from __future__ import annotations

import hashlib
from pathlib import Path

# Read size for streamed hashing
BLOCK_SIZE = 64 * 1024


def compute_file_checksum(path: Path) -> str:
    """Compute the MD5 checksum of a file.

    MD5 matches the checksums stored in existing record files. It is used
    for change detection only, never for integrity against tampering.

    Args:
        path: Path to the file to hash.

    Returns:
        Lowercase hexadecimal digest.

    Raises:
        OSError: If the file cannot be read.
    """
    hasher = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()
