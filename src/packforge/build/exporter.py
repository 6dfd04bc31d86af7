"""Exporting the finished workspace to its target directories.

The resource and behavior packs go to the profile's export target. The
data tree is written back to the project's data path so filters can keep
state between runs.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from packforge.build.cache import ContentHashCache
from packforge.build.profile import ExportTarget, Profile
from packforge.build.project import Project
from packforge.build.workspace import SyncSettings, full_recycled_move_or_copy
from packforge.core.errors import ErrorKind, ExportError, PackforgeError
from packforge.core.types import SourceKind

logger = logging.getLogger(__name__)


def export_paths(target: ExportTarget, project: Project) -> tuple[Path, Path]:
    """Resolve the (resource pack, behavior pack) destinations of a target."""
    if target.target == "exact":
        return project.resolve_path(target.rp_path), project.resolve_path(target.bp_path)
    build = Path(project.root) / "build"
    return build / f"{project.name}_rp", build / f"{project.name}_bp"


class Exporter:
    """Moves finished workspace content to the export target.

    With a cache, exports are hash-diffed (watch mode) and the workspace is
    left in place; without one the workspace trees are moved.
    """

    def __init__(
        self,
        project: Project,
        dot_path: Path,
        cache: ContentHashCache | None = None,
    ) -> None:
        self._project = project
        self._tmp_path = Path(dot_path) / "tmp"
        self._cache = cache

    def _pairs(self, profile: Profile) -> list[tuple[Path, Path]]:
        rp_target, bp_target = export_paths(profile.export_target, self._project)
        pairs = [
            (self._tmp_path / SourceKind.RESOURCE.value, rp_target),
            (self._tmp_path / SourceKind.BEHAVIOR.value, bp_target),
        ]
        if self._project.data_path:
            pairs.append(
                (
                    self._tmp_path / SourceKind.DATA.value,
                    self._project.resolve_path(self._project.data_path),
                )
            )
        return pairs

    def export(self, profile: Profile) -> None:
        """Export the workspace of a finished profile run.

        Raises:
            ExportError: If any tree can't be exported.
        """
        start = time.monotonic()
        for source, target in self._pairs(profile):
            logger.debug(f"Exporting \"{source}\" to \"{target}\"")
            try:
                if self._cache is not None:
                    full_recycled_move_or_copy(
                        source,
                        target,
                        SyncSettings(save_source_hashes=True, reload_source_hashes=False),
                        self._cache,
                    )
                else:
                    self._move(source, target)
            except (OSError, PackforgeError) as e:
                raise ExportError(
                    f"Failed to export \"{source}\" to \"{target}\".",
                    ErrorKind.EXPORT,
                    source=str(source),
                    path=str(target),
                ) from e
        logger.debug(f"Export done in {time.monotonic() - start:.3f}s")

    @staticmethod
    def _move(source: Path, target: Path) -> None:
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        if source.exists():
            shutil.move(str(source), str(target))
        else:
            target.mkdir()
