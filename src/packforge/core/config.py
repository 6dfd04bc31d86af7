"""Shared configuration classes for packforge.

This module defines the on-disk layout used by the build core and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from packforge.core.types import SourceKind

DOT_DIR_NAME = ".packforge"
CONFIG_FILE_NAME = "config.json"
HASH_DB_NAME = "hashes.db"

# Named filters are fetched from this repository
DEFAULT_FILTER_REPOSITORY = "github.com/Bedrock-OSS/regolith-filters"


@dataclass
class WorkspacePaths:
    """Filesystem layout of a packforge project.

    Attributes:
        project_root: Directory containing config.json.
        dot_dir_name: Name of the scratch directory inside the project.
    """

    project_root: Path
    dot_dir_name: str = DOT_DIR_NAME

    def __post_init__(self) -> None:
        """Normalize the project root."""
        self.project_root = Path(self.project_root)

    @property
    def config_file(self) -> Path:
        """Path to the project configuration file."""
        return self.project_root / CONFIG_FILE_NAME

    @property
    def dot_path(self) -> Path:
        """Scratch root holding the workspace, caches and state."""
        return self.project_root / self.dot_dir_name

    @property
    def tmp_path(self) -> Path:
        """Workspace that filters read from and write to."""
        return self.dot_path / "tmp"

    @property
    def cache_path(self) -> Path:
        """Root of installed remote filter packages."""
        return self.dot_path / "cache"

    @property
    def hash_db_path(self) -> Path:
        """SQLite database holding persisted file fingerprints."""
        return self.dot_path / HASH_DB_NAME

    def workspace_dir(self, kind: SourceKind) -> Path:
        """Get the workspace subtree for a source kind."""
        return self.tmp_path / kind.value
