"""Tests for the run context and the interruption signal."""

import threading
from pathlib import Path

import pytest

from packforge.build.context import InterruptionSignal, RunContext
from packforge.build.project import Project
from packforge.core.errors import ConfigError


class TestInterruptionSignal:
    """Tests for InterruptionSignal."""

    def test_not_interrupted_initially(self) -> None:
        """A fresh signal should report nothing."""
        assert InterruptionSignal().is_interrupted() is False

    def test_poll_consumes(self) -> None:
        """A change should be reported once."""
        signal = InterruptionSignal()
        signal.notify("RP")
        signal.notify("BP")

        assert signal.is_interrupted() is True
        assert signal.is_interrupted() is False

    def test_ignored_sources(self) -> None:
        """Ignored sources should be dropped without interrupting."""
        signal = InterruptionSignal()
        signal.notify("data")

        assert signal.is_interrupted("data") is False
        assert signal.is_interrupted() is False

    def test_ignored_source_with_other_change(self) -> None:
        """Other sources should still interrupt when one is ignored."""
        signal = InterruptionSignal()
        signal.notify("data")
        signal.notify("RP")

        assert signal.is_interrupted("data") is True

    def test_wait_times_out(self) -> None:
        """wait() should return False without changes."""
        assert InterruptionSignal().wait(timeout=0.01) is False

    def test_wait_wakes_on_notify(self) -> None:
        """wait() should return once another thread reports a change."""
        signal = InterruptionSignal()
        timer = threading.Timer(0.05, signal.notify, args=("BP",))
        timer.start()

        assert signal.wait(timeout=5) is True
        timer.join()
        # Waiting does not consume the change
        assert signal.is_interrupted() is True


class TestRunContext:
    """Tests for RunContext."""

    def test_get_profile(self, project: Project) -> None:
        """The context's profile should be returned."""
        context = RunContext(project, "default", project.root / ".packforge")

        assert context.get_profile() is project.profiles["default"]

    def test_missing_profile(self, project: Project) -> None:
        """An unknown profile should be a configuration error."""
        context = RunContext(project, "nope", project.root / ".packforge")

        with pytest.raises(ConfigError) as exc_info:
            context.get_profile()

        assert exc_info.value.context["json_path"] == "profiles->nope"

    def test_child_shares_signal(self, project: Project) -> None:
        """Children should point at their parent and share the signal."""
        signal = InterruptionSignal()
        context = RunContext(project, "default", project.root / ".packforge", interruption=signal)

        child = context.child("other")

        assert child.parent is context
        assert child.profile_name == "other"
        assert child.interruption is signal
        assert child.dot_path == context.dot_path

    def test_not_interrupted_without_signal(self, project: Project) -> None:
        """Outside watch mode nothing interrupts a run."""
        context = RunContext(project, "default", project.root / ".packforge")

        assert context.is_interrupted() is False

    def test_tmp_path(self, tmp_path: Path, project: Project) -> None:
        """The workspace should be the tmp directory of the scratch root."""
        context = RunContext(project, "default", tmp_path / ".packforge")

        assert context.tmp_path == tmp_path / ".packforge" / "tmp"
