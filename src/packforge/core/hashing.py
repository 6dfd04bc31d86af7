"""File content fingerprints.

This module provides:
- File hashing with SHA-256
- FileFingerprint: hash plus the stat data it was computed from
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

READ_BLOCK_SIZE = 65536


def compute_file_hash(path: Path) -> str:
    """Compute SHA-256 hash of a file.

    Reads the file in blocks to handle large files efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Hexadecimal SHA-256 hash string.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()


@dataclass(frozen=True)
class FileFingerprint:
    """Content hash of a file and the mtime/size it was observed with.

    Attributes:
        content_hash: SHA-256 of the file contents.
        mtime: Modification time (ns) when the hash was computed.
        size: File size in bytes when the hash was computed.
    """

    content_hash: str
    mtime: int
    size: int

    @classmethod
    def of(cls, path: Path) -> FileFingerprint:
        """Hash a file on disk."""
        stat = path.stat()
        return cls(compute_file_hash(path), stat.st_mtime_ns, stat.st_size)

    def matches_stat(self, path: Path) -> bool:
        """Check whether the file still has the recorded mtime and size."""
        try:
            stat = path.stat()
        except OSError:
            return False
        return stat.st_mtime_ns == self.mtime and stat.st_size == self.size
