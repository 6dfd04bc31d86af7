"""Persisted content-hash cache for incremental workspace sync.

This module provides:
- ContentHashCache: per-root maps of relative path -> FileFingerprint,
  persisted in SQLite

Architecture:
    Fingerprints live in memory while a watch session runs. A root's map
    is written to the database only by save_state(), which rescans the root
    on disk first, so the persisted data always describes the files as they
    were at that moment. clear_cached_states() wipes memory and database for
    every root and is used on all failure paths.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from pathlib import Path

from packforge.core.errors import CacheError, ErrorKind
from packforge.core.hashing import FileFingerprint

logger = logging.getLogger(__name__)


def root_key(root: Path) -> str:
    """Normalize a root directory into a cache key."""
    return os.path.normcase(str(Path(root).resolve()))


def iter_files(root: Path) -> list[str]:
    """List files under root as sorted POSIX-style relative paths."""
    result: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            full = Path(dirpath) / name
            result.append(full.relative_to(root).as_posix())
    result.sort()
    return result


class ContentHashCache:
    """SQLite-backed store of file fingerprints, one map per root.

    Create one instance per process and close it on exit (it is also a
    context manager).
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the cache database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._roots: dict[str, dict[str, FileFingerprint]] = {}

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS file_hashes (
                root TEXT NOT NULL,
                path TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                mtime INTEGER NOT NULL,
                size INTEGER NOT NULL,
                PRIMARY KEY (root, path)
            );

            CREATE INDEX IF NOT EXISTS idx_file_hashes_root ON file_hashes(root);
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> ContentHashCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === In-memory access ===

    def _load(self, root: Path) -> dict[str, FileFingerprint]:
        """Get the map of a root, loading persisted rows on first use.

        Raises:
            CacheError: If the persisted rows can't be read.
        """
        key = root_key(root)
        with self._lock:
            entries = self._roots.get(key)
            if entries is None:
                entries = self.persisted_entries(root)
                self._roots[key] = entries
            return entries

    def get(self, root: Path, rel_path: str) -> FileFingerprint | None:
        """Get the cached fingerprint of a file under root."""
        with self._lock:
            return self._load(root).get(rel_path)

    def set(self, root: Path, rel_path: str, fingerprint: FileFingerprint) -> None:
        """Record the fingerprint of a file under root (memory only)."""
        with self._lock:
            self._load(root)[rel_path] = fingerprint

    def remove(self, root: Path, rel_path: str) -> None:
        """Forget a file under root (memory only)."""
        with self._lock:
            self._load(root).pop(rel_path, None)

    def entries(self, root: Path) -> dict[str, FileFingerprint]:
        """Get a copy of the in-memory map of a root."""
        with self._lock:
            return dict(self._load(root))

    def persisted_entries(self, root: Path) -> dict[str, FileFingerprint]:
        """Read the fingerprints stored in the database for a root.

        Raises:
            CacheError: If the database can't be read.
        """
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT path, content_hash, mtime, size FROM file_hashes WHERE root = ?",
                    (root_key(root),),
                ).fetchall()
            except sqlite3.Error as e:
                raise CacheError(
                    f"Failed to load file states of \"{root}\".",
                    ErrorKind.CACHE_LOAD,
                    path=str(root),
                ) from e
        return {
            row["path"]: FileFingerprint(row["content_hash"], row["mtime"], row["size"])
            for row in rows
        }

    def fingerprint(self, root: Path, rel_path: str, reload: bool = False) -> FileFingerprint:
        """Get the fingerprint of a file on disk, reusing the cache when valid.

        The cached value is reused only if the file still has the recorded
        mtime and size, unless reload is set.

        Args:
            root: Root directory the path is relative to.
            rel_path: POSIX-style relative path.
            reload: Always rehash the file.

        Returns:
            Fingerprint of the file as it is now. The cache is updated.
        """
        path = Path(root) / rel_path
        cached = self.get(root, rel_path)
        if not reload and cached is not None and cached.matches_stat(path):
            return cached
        current = FileFingerprint.of(path)
        self.set(root, rel_path, current)
        return current

    # === Persistence ===

    def save_state(self, root: Path) -> None:
        """Rescan a root on disk and persist its fingerprints.

        Args:
            root: Directory to save. A missing directory saves an empty map.

        Raises:
            CacheError: If the root can't be read or the database write fails.
        """
        root = Path(root)
        key = root_key(root)
        try:
            rel_paths = iter_files(root) if root.is_dir() else []
            fresh: dict[str, FileFingerprint] = {}
            for rel_path in rel_paths:
                fresh[rel_path] = self.fingerprint(root, rel_path)
            with self._lock:
                self._roots[key] = fresh
                self._conn.execute("BEGIN")
                try:
                    self._conn.execute("DELETE FROM file_hashes WHERE root = ?", (key,))
                    self._conn.executemany(
                        """
                        INSERT INTO file_hashes (root, path, content_hash, mtime, size)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        [
                            (key, rel_path, fp.content_hash, fp.mtime, fp.size)
                            for rel_path, fp in fresh.items()
                        ],
                    )
                    self._conn.execute("COMMIT")
                except sqlite3.Error:
                    self._conn.execute("ROLLBACK")
                    raise
        except (OSError, sqlite3.Error) as e:
            raise CacheError(
                f"Failed to save file states of \"{root}\".",
                ErrorKind.CACHE_SAVE,
                path=str(root),
            ) from e
        logger.debug(f"Saved {len(fresh)} file states for {root}")

    def clear_cached_states(self) -> None:
        """Discard every in-memory and persisted fingerprint for all roots.

        Raises:
            CacheError: If the database can't be cleared.
        """
        with self._lock:
            self._roots.clear()
            try:
                self._conn.execute("DELETE FROM file_hashes")
            except sqlite3.Error as e:
                raise CacheError(
                    "Failed to clear cached file states.",
                    ErrorKind.CACHE_CLEAR,
                    path=str(self._db_path),
                ) from e
        logger.debug("Cleared cached file states")

    def is_empty(self) -> bool:
        """Check that neither memory nor the database holds any fingerprint."""
        with self._lock:
            if any(self._roots.values()):
                return False
            row = self._conn.execute("SELECT COUNT(*) AS n FROM file_hashes").fetchone()
        return row["n"] == 0
