"""Workspace setup: synchronizing project sources into the scratch tree.

This module provides:
- setup_tmp_files: full resync (delete and recopy) used outside watch mode
- recycled_setup_tmp_files: hash-diffed sync used in watch mode
- full_recycled_move_or_copy: the hash-diffed mirror of one directory
- SyncSettings / SyncStats: options and counters of a recycled sync
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from packforge.build.cache import ContentHashCache, iter_files
from packforge.core.errors import ConfigError, ErrorKind, FileSystemError
from packforge.core.hashing import FileFingerprint
from packforge.core.types import SourceKind

if TYPE_CHECKING:
    from packforge.build.project import Project

logger = logging.getLogger(__name__)

# Descriptive names used in log and error messages
SOURCE_DESCRIPTIONS = {
    SourceKind.RESOURCE: "resource folder",
    SourceKind.BEHAVIOR: "behavior folder",
    SourceKind.DATA: "data folder",
}

CopyHook = Callable[[Path, Path], None]


@dataclass(frozen=True)
class SyncSettings:
    """Options of a recycled move-or-copy.

    Attributes:
        can_move: Move files instead of copying them (source is discarded).
        save_source_hashes: Record source fingerprints after the operation.
        save_target_hashes: Record target fingerprints after the operation.
        copy_target_acl_from_parent: Give new target files the permission
            bits of their parent directory.
        reload_source_hashes: Rehash source files even if a cached value
            exists.
    """

    can_move: bool = False
    save_source_hashes: bool = False
    save_target_hashes: bool = True
    copy_target_acl_from_parent: bool = False
    reload_source_hashes: bool = True


@dataclass
class SyncStats:
    """Counters of a recycled sync."""

    copied: int = 0
    skipped: int = 0
    removed: int = 0

    def add(self, other: SyncStats) -> None:
        self.copied += other.copied
        self.skipped += other.skipped
        self.removed += other.removed


def _makedirs(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError(
            f"Failed to create directory \"{path}\".", ErrorKind.MKDIR, path=str(path)
        ) from e


def _remove(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise FileSystemError(
            f"Failed to remove \"{path}\".", ErrorKind.REMOVE, path=str(path)
        ) from e


def _copy_acl_from_parent(path: Path) -> None:
    mode = stat.S_IMODE(path.parent.stat().st_mode) & 0o666
    os.chmod(path, mode)


def _transfer(source: Path, target: Path, settings: SyncSettings) -> None:
    """Copy or move one file, replacing whatever is at target."""
    if target.is_dir() and not target.is_symlink():
        _remove(target)
    _makedirs(target.parent)
    try:
        if settings.can_move:
            os.replace(source, target)
        else:
            shutil.copyfile(source, target)
        if settings.copy_target_acl_from_parent:
            _copy_acl_from_parent(target)
    except OSError as e:
        kind = ErrorKind.MOVE if settings.can_move else ErrorKind.COPY
        raise FileSystemError(
            f"Failed to {'move' if settings.can_move else 'copy'} "
            f"\"{source}\" to \"{target}\".",
            kind,
            source=str(source),
            path=str(target),
        ) from e


def _source_dirs(source: Path) -> set[str]:
    dirs: set[str] = set()
    for dirpath, dirnames, _filenames in os.walk(source):
        for name in dirnames:
            dirs.add((Path(dirpath) / name).relative_to(source).as_posix())
    return dirs


def full_recycled_move_or_copy(
    source: Path,
    target: Path,
    settings: SyncSettings,
    cache: ContentHashCache,
    on_copy: CopyHook | None = None,
) -> SyncStats:
    """Make target an exact mirror of source, skipping unchanged files.

    A source file is skipped when its fingerprint equals the cached
    fingerprint of the target file and the target file still exists with
    the recorded mtime and size. Everything in target that has no
    counterpart in source is removed. In move mode every source file is
    discarded, including the skipped ones.

    Args:
        source: Directory to mirror.
        target: Directory to update.
        settings: Move/copy and cache options.
        cache: Fingerprint cache shared across cycles.
        on_copy: Called with (source_file, target_file) for every transfer.

    Returns:
        Counters of copied, skipped and removed entries.

    Raises:
        FileSystemError: If a filesystem operation fails.
    """
    source = Path(source)
    target = Path(target)
    stats = SyncStats()
    _makedirs(target)

    try:
        source_files = iter_files(source)
        source_dirs = _source_dirs(source)
        target_files = iter_files(target)
    except OSError as e:
        raise FileSystemError(
            f"Failed to list \"{source}\" or \"{target}\".", ErrorKind.READ, path=str(source)
        ) from e
    source_set = set(source_files)

    # Remove target files that are gone from source
    for rel_path in target_files:
        if rel_path not in source_set:
            _remove(target / rel_path)
            cache.remove(target, rel_path)
            stats.removed += 1

    # Remove target directories that are gone from source (deepest first)
    for dirpath, dirnames, _filenames in os.walk(target, topdown=False):
        for name in dirnames:
            path = Path(dirpath) / name
            rel = path.relative_to(target).as_posix()
            if rel not in source_dirs:
                _remove(path)
                stats.removed += 1

    for rel in sorted(source_dirs):
        _makedirs(target / rel)

    for rel_path in source_files:
        source_file = source / rel_path
        target_file = target / rel_path
        try:
            source_fp = cache.fingerprint(
                source, rel_path, reload=settings.reload_source_hashes
            )
        except OSError as e:
            raise FileSystemError(
                f"Failed to read \"{source_file}\".", ErrorKind.READ, path=str(source_file)
            ) from e

        target_fp = cache.get(target, rel_path)
        if (
            target_fp is not None
            and target_fp.content_hash == source_fp.content_hash
            and target_fp.matches_stat(target_file)
        ):
            stats.skipped += 1
            if settings.can_move:
                _remove(source_file)
                cache.remove(source, rel_path)
            continue

        _transfer(source_file, target_file, settings)
        stats.copied += 1
        if on_copy is not None:
            on_copy(source_file, target_file)

        if settings.save_target_hashes:
            target_stat = target_file.stat()
            cache.set(
                target,
                rel_path,
                FileFingerprint(source_fp.content_hash, target_stat.st_mtime_ns, target_stat.st_size),
            )
        else:
            cache.remove(target, rel_path)
        if settings.can_move or not settings.save_source_hashes:
            cache.remove(source, rel_path)

    logger.debug(
        f"Synced {source} -> {target}: {stats.copied} copied, "
        f"{stats.skipped} skipped, {stats.removed} removed"
    )
    return stats


def _configured_sources(project: Project) -> list[tuple[SourceKind, str]]:
    return [
        (SourceKind.RESOURCE, project.resource_folder),
        (SourceKind.BEHAVIOR, project.behavior_folder),
        (SourceKind.DATA, project.data_path),
    ]


def recycled_setup_tmp_files(
    project: Project,
    dot_path: Path,
    cache: ContentHashCache,
    on_copy: CopyHook | None = None,
) -> SyncStats:
    """Set up the workspace reusing cached state of the previous cycle.

    Only files whose content differs from the cached workspace state are
    copied. Source hashes are always recomputed to catch external changes.

    Args:
        project: Loaded project configuration.
        dot_path: Scratch root (``.packforge``).
        cache: Fingerprint cache.
        on_copy: Instrumentation hook passed to every sync.

    Returns:
        Combined counters of the three subtrees.
    """
    start = time.monotonic()
    tmp_path = Path(dot_path) / "tmp"
    _makedirs(tmp_path)
    total = SyncStats()
    settings = SyncSettings(reload_source_hashes=True)
    for kind, folder in _configured_sources(project):
        target = tmp_path / kind.value
        if not folder:
            _makedirs(target)
            continue
        source = project.resolve_path(folder)
        if not source.exists():
            # Mirrors an empty tree into the target
            logger.warning(f"{SOURCE_DESCRIPTIONS[kind].capitalize()} \"{folder}\" does not exist")
        elif not source.is_dir():
            raise ConfigError(
                f"{SOURCE_DESCRIPTIONS[kind].capitalize()} \"{folder}\" is not a directory.",
                ErrorKind.CONFIG_NOT_A_DIRECTORY,
                path=str(source),
            )
        logger.debug(f"Copying project files from \"{source}\" to \"{target}\"")
        total.add(full_recycled_move_or_copy(source, target, settings, cache, on_copy))
    logger.debug(f"Setup done in {time.monotonic() - start:.3f}s")
    return total


def setup_tmp_files(project: Project, dot_path: Path) -> None:
    """Set up the workspace from scratch.

    The tmp directory is deleted and every configured source is copied
    into it. A missing source produces a warning and an empty directory.

    Args:
        project: Loaded project configuration.
        dot_path: Scratch root (``.packforge``).

    Raises:
        FileSystemError: If the workspace can't be rebuilt.
        ConfigError: If a configured source path is a file.
    """
    start = time.monotonic()
    tmp_path = Path(dot_path) / "tmp"
    logger.debug(f"Cleaning \"{tmp_path}\"")
    _remove(tmp_path)
    _makedirs(tmp_path)

    for kind, folder in _configured_sources(project):
        target = tmp_path / kind.value
        if not folder:
            _makedirs(target)
            continue
        source = project.resolve_path(folder)
        if not source.exists():
            logger.warning(f"{SOURCE_DESCRIPTIONS[kind].capitalize()} \"{folder}\" does not exist")
            _makedirs(target)
        elif source.is_dir():
            logger.debug(f"Copying project files from \"{source}\" to \"{target}\"")
            try:
                shutil.copytree(source, target)
            except OSError as e:
                raise FileSystemError(
                    f"Failed to copy \"{source}\" to \"{target}\".",
                    ErrorKind.COPY,
                    source=str(source),
                    path=str(target),
                ) from e
        else:
            raise ConfigError(
                f"{SOURCE_DESCRIPTIONS[kind].capitalize()} \"{folder}\" is not a directory.",
                ErrorKind.CONFIG_NOT_A_DIRECTORY,
                path=str(source),
            )
    logger.debug(f"Setup done in {time.monotonic() - start:.3f}s")
