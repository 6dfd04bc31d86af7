"""Tests for exporting the finished workspace."""

from pathlib import Path

from packforge.build.cache import ContentHashCache
from packforge.build.exporter import Exporter, export_paths
from packforge.build.profile import ExportTarget
from packforge.build.project import Project
from packforge.build.workspace import setup_tmp_files


class TestExportPaths:
    """Tests for export_paths."""

    def test_local(self, project: Project, project_dir: Path) -> None:
        """Local exports should go to build/<name>_rp and build/<name>_bp."""
        rp, bp = export_paths(ExportTarget("local"), project)

        assert rp == project_dir / "build" / "demo_rp"
        assert bp == project_dir / "build" / "demo_bp"

    def test_exact(self, project: Project, project_dir: Path) -> None:
        """Exact exports should use the configured paths."""
        rp, bp = export_paths(ExportTarget("exact", "out/rp", "out/bp"), project)

        assert rp == project_dir / "out" / "rp"
        assert bp == project_dir / "out" / "bp"


class TestExporter:
    """Tests for Exporter.export."""

    def test_moves_workspace(self, project: Project, project_dir: Path, read_tree) -> None:
        """Without a cache, workspace trees should be moved to the target."""
        dot_path = project_dir / ".packforge"
        setup_tmp_files(project, dot_path)
        (dot_path / "tmp" / "RP" / "generated.txt").write_text("made by a filter")
        (dot_path / "tmp" / "data" / "counter.txt").write_text("1")

        Exporter(project, dot_path).export(project.profiles["default"])

        rp = read_tree(project_dir / "build" / "demo_rp")
        assert rp["generated.txt"] == b"made by a filter"
        assert rp["textures/stone.txt"] == b"stone texture"
        assert (project_dir / "build" / "demo_bp" / "entities" / "cow.json").exists()
        assert not (dot_path / "tmp" / "RP").exists()
        # Data is written back to its source
        assert (project_dir / "packs" / "data" / "counter.txt").read_text() == "1"

    def test_replaces_previous_export(self, project: Project, project_dir: Path) -> None:
        """Files of an older export should not survive."""
        old = project_dir / "build" / "demo_rp"
        old.mkdir(parents=True)
        (old / "stale.txt").write_text("old")
        dot_path = project_dir / ".packforge"
        setup_tmp_files(project, dot_path)

        Exporter(project, dot_path).export(project.profiles["default"])

        assert not (old / "stale.txt").exists()
        assert (old / "manifest.json").exists()

    def test_cached_export_keeps_workspace(
        self, project: Project, project_dir: Path, cache: ContentHashCache, read_tree
    ) -> None:
        """With a cache, exports should copy and leave the workspace in place."""
        dot_path = project_dir / ".packforge"
        setup_tmp_files(project, dot_path)

        Exporter(project, dot_path, cache).export(project.profiles["default"])

        assert read_tree(dot_path / "tmp" / "RP") == read_tree(project_dir / "build" / "demo_rp")
        assert cache.entries(dot_path / "tmp" / "RP")

    def test_exact_target(self, project: Project, project_dir: Path) -> None:
        """Exact exports should land in the configured directories."""
        profile = project.profiles["default"]
        profile.export_target = ExportTarget("exact", "out/rp", "out/bp")
        dot_path = project_dir / ".packforge"
        setup_tmp_files(project, dot_path)

        Exporter(project, dot_path).export(profile)

        assert (project_dir / "out" / "rp" / "manifest.json").exists()
        assert (project_dir / "out" / "bp" / "entities" / "cow.json").exists()
