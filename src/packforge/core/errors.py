"""Error types for packforge.

Every error raised by the build core carries a stable ``kind`` tag and a
dict of contextual parameters (path, filter id, JSON location). Errors are
chained with ``raise ... from err`` so the full trace stays inspectable.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable tags for error categories."""

    # Filesystem
    MKDIR = "fs.mkdir"
    REMOVE = "fs.remove"
    COPY = "fs.copy"
    MOVE = "fs.move"
    READ = "fs.read"

    # Configuration shape
    CONFIG_MISSING_KEY = "config.missing_key"
    CONFIG_WRONG_TYPE = "config.wrong_type"
    CONFIG_NOT_A_DIRECTORY = "config.not_a_directory"
    CONFIG_INVALID = "config.invalid"

    # Filter resolution
    FILTER_NOT_INSTALLED = "filter.not_installed"
    FILTER_INVALID_MANIFEST = "filter.invalid_manifest"
    FILTER_NESTED_REMOTE = "filter.nested_remote"
    FILTER_UNKNOWN_TYPE = "filter.unknown_type"
    FILTER_CHECK = "filter.check"

    # Dependency install
    INSTALL_FETCH = "install.fetch"

    # Run
    FILTER_RUN = "run.filter"
    INVALID_TRANSITION = "run.invalid_transition"

    # Cache
    CACHE_LOAD = "cache.load"
    CACHE_SAVE = "cache.save"
    CACHE_CLEAR = "cache.clear"

    # Export
    EXPORT = "export"


class PackforgeError(Exception):
    """Base exception for all packforge errors.

    Attributes:
        kind: Stable error category tag.
        context: Contextual parameters (path, filter_id, json_path, ...).
    """

    default_kind = ErrorKind.CONFIG_INVALID

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.context = context

    def __str__(self) -> str:
        cause = self.__cause__
        if isinstance(cause, PackforgeError):
            return f"{self.message}\n{cause}"
        if cause is not None:
            return f"{self.message}\n{type(cause).__name__}: {cause}"
        return self.message


class FileSystemError(PackforgeError):
    """A create/remove/copy/move operation failed."""

    default_kind = ErrorKind.COPY


class ConfigError(PackforgeError):
    """Configuration has the wrong shape (missing key, wrong JSON type)."""

    default_kind = ErrorKind.CONFIG_INVALID


class FilterResolutionError(PackforgeError):
    """A filter entry or a package manifest could not be resolved."""

    default_kind = ErrorKind.FILTER_UNKNOWN_TYPE


class FilterNotInstalledError(FilterResolutionError):
    """The manifest of a remote filter could not be read."""

    default_kind = ErrorKind.FILTER_NOT_INSTALLED


class NestedRemoteFilterError(FilterResolutionError):
    """A remote package manifest references another remote package."""

    default_kind = ErrorKind.FILTER_NESTED_REMOTE


class InstallError(PackforgeError):
    """Fetching a remote filter package failed."""

    default_kind = ErrorKind.INSTALL_FETCH


class FilterRunError(PackforgeError):
    """A filter reported an error while running."""

    default_kind = ErrorKind.FILTER_RUN


class CacheError(PackforgeError):
    """Loading, persisting or clearing the hash cache failed."""

    default_kind = ErrorKind.CACHE_SAVE


class ExportError(PackforgeError):
    """Moving the finished workspace to its target failed."""

    default_kind = ErrorKind.EXPORT


class InvalidTransitionError(PackforgeError):
    """Raised when the profile runner attempts an invalid state transition."""

    default_kind = ErrorKind.INVALID_TRANSITION


def json_path_missing(path: str) -> ConfigError:
    """Build the error for a missing required JSON key."""
    return ConfigError(
        f"Missing required property \"{path}\".",
        ErrorKind.CONFIG_MISSING_KEY,
        json_path=path,
    )


def json_path_type(path: str, expected: str) -> ConfigError:
    """Build the error for a JSON value of the wrong type."""
    return ConfigError(
        f"Property \"{path}\" must be of type {expected}.",
        ErrorKind.CONFIG_WRONG_TYPE,
        json_path=path,
        expected=expected,
    )
