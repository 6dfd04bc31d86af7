"""Tests for the profile runner state machine.

Covers:
- Loop shape under interruptions in each phase
- Incremental sync across interrupted cycles
- Disabled filters
- Cache clearing on failure
"""

from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from packforge.build.cache import ContentHashCache
from packforge.build.context import InterruptionSignal, RunContext
from packforge.build.filters import FilterRunner, LocalDefinition, LocalFilter
from packforge.build.project import Project
from packforge.build.runner import VALID_TRANSITIONS, ProfileRunner, run_profile
from packforge.core.errors import (
    CacheError,
    ConfigError,
    ErrorKind,
    ExportError,
    FilterRunError,
    InvalidTransitionError,
)
from packforge.core.types import RunnerState


@dataclass
class RecordingFilter(FilterRunner):
    """Filter that records its runs instead of executing anything."""

    calls: int = 0
    error: Exception | None = None

    def check(self, context: RunContext) -> None:
        pass

    def run(self, context: RunContext) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return False


def _signal(*answers: bool) -> MagicMock:
    """Signal answering the runner's polls in order."""
    signal = MagicMock(spec=InterruptionSignal)
    signal.is_interrupted.side_effect = list(answers)
    return signal


def _context(project: Project, signal=None) -> RunContext:
    return RunContext(
        project=project,
        profile_name="default",
        dot_path=project.root / ".packforge",
        interruption=signal,
    )


def _use_filters(project: Project, *filters: FilterRunner) -> None:
    project.profiles["default"].filters.filters = list(filters)


def _history(stats) -> list[str]:
    return [state.value for state in stats.history]


class TestTransitions:
    """Tests for the transition table."""

    def test_terminal_states(self) -> None:
        """DONE and FAILED should have no outgoing transitions."""
        assert VALID_TRANSITIONS[RunnerState.DONE] == set()
        assert VALID_TRANSITIONS[RunnerState.FAILED] == set()

    def test_every_state_can_fail(self) -> None:
        """Every non-terminal state should be able to fail."""
        for state, targets in VALID_TRANSITIONS.items():
            if state not in (RunnerState.DONE, RunnerState.FAILED):
                assert RunnerState.FAILED in targets

    def test_invalid_transition_rejected(self, project: Project) -> None:
        """Skipping a phase should be refused."""
        runner = ProfileRunner(_context(project))

        with pytest.raises(InvalidTransitionError):
            runner._enter(RunnerState.DONE)


class TestRunLoop:
    """Tests for the sync -> run -> export loop."""

    def test_single_pass(self, project: Project) -> None:
        """Without interruptions each phase should run once."""
        recorder = RecordingFilter("gen")
        _use_filters(project, recorder)
        exporter = MagicMock()

        stats = ProfileRunner(_context(project), exporter=exporter).run()

        assert _history(stats) == ["sync_workspace", "run_filters", "export_output", "done"]
        assert recorder.calls == 1
        exporter.export.assert_called_once_with(project.profiles["default"])

    def test_interrupted_syncs_loop(self, project: Project, cache: ContentHashCache) -> None:
        """Two interrupted syncs should give three syncs, one run and one export."""
        recorder = RecordingFilter("gen")
        _use_filters(project, recorder)
        exporter = MagicMock()
        signal = _signal(True, True, False, False)

        runner = ProfileRunner(
            _context(project, signal), cache, recycled=True, exporter=exporter
        )
        stats = runner.run()

        assert stats.count(RunnerState.SYNC_WORKSPACE) == 3
        assert stats.count(RunnerState.INTERRUPTED) == 2
        assert stats.count(RunnerState.RUN_FILTERS) == 1
        assert stats.count(RunnerState.EXPORT_OUTPUT) == 1
        assert recorder.calls == 1
        assert exporter.export.call_count == 1
        assert runner.state is RunnerState.DONE

    def test_interrupted_syncs_copy_once(
        self, project: Project, cache: ContentHashCache
    ) -> None:
        """Interrupted cycles without source changes should not copy again."""
        _use_filters(project, RecordingFilter("gen"))
        copied: list[Path] = []

        stats = ProfileRunner(
            _context(project, _signal(True, True, False, False)),
            cache,
            recycled=True,
            exporter=MagicMock(),
            on_copy=lambda source, target: copied.append(source),
        ).run()

        assert len(copied) == 4
        assert stats.copied_files == 4

    def test_interrupted_state_is_saved(self, project: Project, cache: ContentHashCache) -> None:
        """An interruption should persist the workspace file states."""
        _use_filters(project, RecordingFilter("gen"))
        context = _context(project, _signal(True, False, False))

        ProfileRunner(context, cache, recycled=True, exporter=MagicMock()).run()

        saved = cache.persisted_entries(context.tmp_path / "RP")
        assert set(saved) == {"manifest.json", "textures/stone.txt"}

    def test_interrupted_filters_loop(self, project: Project, cache: ContentHashCache) -> None:
        """A filter reporting an interruption should restart from sync."""
        calls = {"n": 0}

        @dataclass
        class InterruptOnce(RecordingFilter):
            def run(self, context: RunContext) -> bool:
                calls["n"] += 1
                return calls["n"] == 1

        _use_filters(project, InterruptOnce("gen"))
        exporter = MagicMock()

        stats = ProfileRunner(
            _context(project, _signal(False, False, False)),
            cache,
            recycled=True,
            exporter=exporter,
        ).run()

        assert _history(stats) == [
            "sync_workspace",
            "run_filters",
            "interrupted",
            "sync_workspace",
            "run_filters",
            "export_output",
            "done",
        ]
        assert exporter.export.call_count == 1

    def test_interrupted_export_loop(self, project: Project, cache: ContentHashCache) -> None:
        """A change during export should run the whole cycle again."""
        recorder = RecordingFilter("gen")
        _use_filters(project, recorder)
        exporter = MagicMock()

        stats = ProfileRunner(
            _context(project, _signal(False, True, False, False)),
            cache,
            recycled=True,
            exporter=exporter,
        ).run()

        assert _history(stats) == [
            "sync_workspace",
            "run_filters",
            "export_output",
            "interrupted",
            "sync_workspace",
            "run_filters",
            "export_output",
            "done",
        ]
        assert recorder.calls == 2
        assert exporter.export.call_count == 2

    def test_export_ignores_data_changes(self, project: Project, cache: ContentHashCache) -> None:
        """Data written back by the export should not restart the run."""
        _use_filters(project, RecordingFilter("gen"))
        signal = InterruptionSignal()
        exporter = MagicMock()
        exporter.export.side_effect = lambda profile: signal.notify("data")

        stats = ProfileRunner(
            _context(project, signal), cache, recycled=True, exporter=exporter
        ).run()

        assert stats.count(RunnerState.INTERRUPTED) == 0
        assert exporter.export.call_count == 1

    def test_export_interrupted_by_other_source(
        self, project: Project, cache: ContentHashCache
    ) -> None:
        """A resource pack change during export should restart the run."""
        _use_filters(project, RecordingFilter("gen"))
        signal = InterruptionSignal()
        exporter = MagicMock()
        exports = {"n": 0}

        def export(profile) -> None:
            exports["n"] += 1
            if exports["n"] == 1:
                signal.notify("RP")

        exporter.export.side_effect = export

        stats = ProfileRunner(
            _context(project, signal), cache, recycled=True, exporter=exporter
        ).run()

        assert stats.count(RunnerState.INTERRUPTED) == 1
        assert exports["n"] == 2

    def test_disabled_filter_skipped(self, project: Project) -> None:
        """Disabled filters should never run."""
        enabled = RecordingFilter("a")
        disabled = RecordingFilter("b", disabled=True)
        _use_filters(project, disabled, enabled)

        ProfileRunner(_context(project), exporter=MagicMock()).run()

        assert disabled.calls == 0
        assert enabled.calls == 1

    def test_on_state_callback(self, project: Project) -> None:
        """on_state should see every state entered."""
        seen: list[RunnerState] = []

        ProfileRunner(_context(project), exporter=MagicMock(), on_state=seen.append).run()

        assert seen[0] is RunnerState.SYNC_WORKSPACE
        assert seen[-1] is RunnerState.DONE

    def test_unknown_profile(self, project: Project) -> None:
        """Running an unknown profile should be a configuration error."""
        context = RunContext(project, "nope", project.root / ".packforge")

        with pytest.raises(ConfigError):
            ProfileRunner(context).run()

    def test_recycled_requires_cache(self, project: Project) -> None:
        """Recycled mode without a cache should be refused."""
        with pytest.raises(ValueError):
            ProfileRunner(_context(project), recycled=True)


class TestFailures:
    """Tests for failure handling."""

    def _saved_cache(self, project: Project, cache: ContentHashCache) -> None:
        cache.save_state(project.root / "packs" / "RP")
        assert not cache.is_empty()

    def test_filter_failure_clears_cache(self, project: Project, cache: ContentHashCache) -> None:
        """A failing filter should leave an empty cache behind."""
        self._saved_cache(project, cache)
        _use_filters(project, RecordingFilter("gen", error=RuntimeError("boom")))
        runner = ProfileRunner(
            _context(project, _signal(False)), cache, recycled=True, exporter=MagicMock()
        )

        with pytest.raises(FilterRunError) as exc_info:
            runner.run()

        assert exc_info.value.context["filter_id"] == "gen"
        assert cache.persisted_entries(project.root / "packs" / "RP") == {}
        assert cache.is_empty()
        assert runner.state is RunnerState.FAILED
        assert runner.stats.history[-1] is RunnerState.FAILED

    def test_export_failure_clears_cache(self, project: Project, cache: ContentHashCache) -> None:
        """A failing export should leave an empty cache behind."""
        _use_filters(project, RecordingFilter("gen"))
        exporter = MagicMock()
        exporter.export.side_effect = OSError("disk full")
        runner = ProfileRunner(
            _context(project, _signal(False)), cache, recycled=True, exporter=exporter
        )

        with pytest.raises(ExportError) as exc_info:
            runner.run()

        assert exc_info.value.kind is ErrorKind.EXPORT
        assert cache.is_empty()

    def test_save_failure_clears_cache(self, project: Project, cache: ContentHashCache) -> None:
        """A failed state save on interruption should fail the run."""
        _use_filters(project, RecordingFilter("gen"))
        runner = ProfileRunner(
            _context(project, _signal(True)), cache, recycled=True, exporter=MagicMock()
        )

        with patch.object(cache, "save_state", side_effect=CacheError("locked")):
            with pytest.raises(CacheError) as exc_info:
                runner.run()

        assert exc_info.value.kind is ErrorKind.CACHE_SAVE
        assert cache.is_empty()
        assert runner.state is RunnerState.FAILED

    def test_clear_failure_is_logged(
        self, project: Project, cache: ContentHashCache, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A cache that can't be cleared should not hide the original error."""
        _use_filters(project, RecordingFilter("gen", error=RuntimeError("boom")))
        runner = ProfileRunner(
            _context(project, _signal(False)), cache, recycled=True, exporter=MagicMock()
        )

        with patch.object(cache, "clear_cached_states", side_effect=CacheError("locked")):
            with pytest.raises(FilterRunError):
                runner.run()

        assert "Failed to clear cached file states" in caplog.text

    def test_cache_load_failure_fails_run(
        self, project: Project, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unreadable cache database should fail the run like any other error."""
        cache = ContentHashCache(tmp_path / "broken.db")
        cache.close()
        runner = ProfileRunner(
            _context(project, _signal(False)), cache, recycled=True, exporter=MagicMock()
        )

        with pytest.raises(CacheError) as exc_info:
            runner.run()

        assert exc_info.value.kind is ErrorKind.CACHE_LOAD
        assert runner.state is RunnerState.FAILED
        assert "Failed to clear cached file states" in caplog.text

    def test_non_recycled_run_clears_stale_state(
        self, project: Project, cache: ContentHashCache
    ) -> None:
        """A normal run should discard state left by a watch session."""
        self._saved_cache(project, cache)

        ProfileRunner(_context(project), cache, exporter=MagicMock()).run()

        assert cache.is_empty()


class TestEndToEnd:
    """Runs with real filters and the real exporter."""

    def test_local_filter_output_is_exported(
        self, make_config, project_dir: Path, read_tree
    ) -> None:
        """A python filter's output should end up in the exported pack."""
        (project_dir / "gen.py").write_text(
            "import pathlib\n"
            "pathlib.Path('RP', 'generated.txt').write_text('generated')\n"
            "counter = pathlib.Path('data', 'counter.txt')\n"
            "counter.write_text(str(int(counter.read_text()) + 1))\n"
        )
        config = make_config(
            filters=[{"filter": "gen"}],
            filterDefinitions={"gen": {"runWith": "python", "script": "gen.py"}},
        )
        project = Project.from_object(config, project_dir)

        stats = run_profile(_context(project))

        assert stats.history[-1] is RunnerState.DONE
        rp = read_tree(project_dir / "build" / "demo_rp")
        assert rp["generated.txt"] == b"generated"
        assert rp["manifest.json"] == b'{"type": "resources"}'
        assert (project_dir / "packs" / "data" / "counter.txt").read_text() == "1"
        # Sources are untouched
        assert not (project_dir / "packs" / "RP" / "generated.txt").exists()

    def test_recycled_runs_are_incremental(
        self, make_config, project_dir: Path, cache: ContentHashCache, read_tree
    ) -> None:
        """A second watch cycle should only copy the file that changed."""
        definition = LocalDefinition(
            filter_id="noop", run_with="python", script="noop.py", base_path=project_dir
        )
        (project_dir / "noop.py").write_text("")
        project = Project.from_object(make_config(), project_dir)
        _use_filters(project, LocalFilter(filter_id="noop", definition=definition))
        context = _context(project, InterruptionSignal())

        first = run_profile(context, cache, recycled=True)
        (project_dir / "packs" / "BP" / "entities" / "cow.json").write_text('{"health": 20}')
        second = run_profile(context, cache, recycled=True)

        assert first.copied_files == 4
        assert second.copied_files == 1
        bp = read_tree(project_dir / "build" / "demo_bp")
        assert bp["entities/cow.json"] == b'{"health": 20}'

