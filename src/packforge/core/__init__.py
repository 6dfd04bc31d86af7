"""Core module - Shared errors, configuration, hashing and types."""

from packforge.core.config import (
    CONFIG_FILE_NAME,
    DEFAULT_FILTER_REPOSITORY,
    DOT_DIR_NAME,
    WorkspacePaths,
)
from packforge.core.errors import (
    CacheError,
    ConfigError,
    ErrorKind,
    ExportError,
    FileSystemError,
    FilterNotInstalledError,
    FilterResolutionError,
    FilterRunError,
    InstallError,
    InvalidTransitionError,
    NestedRemoteFilterError,
    PackforgeError,
)
from packforge.core.hashing import FileFingerprint, compute_file_hash
from packforge.core.types import RunnerState, SourceKind

__all__ = [
    # Config
    "CONFIG_FILE_NAME",
    "DEFAULT_FILTER_REPOSITORY",
    "DOT_DIR_NAME",
    "WorkspacePaths",
    # Errors
    "CacheError",
    "ConfigError",
    "ErrorKind",
    "ExportError",
    "FileSystemError",
    "FilterNotInstalledError",
    "FilterResolutionError",
    "FilterRunError",
    "InstallError",
    "InvalidTransitionError",
    "NestedRemoteFilterError",
    "PackforgeError",
    # Hashing
    "FileFingerprint",
    "compute_file_hash",
    # Types
    "RunnerState",
    "SourceKind",
]
