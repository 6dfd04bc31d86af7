"""Run context and interruption signal.

This module provides:
- InterruptionSignal: pending source changes reported by the watcher
- RunContext: state passed through a profile run
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from packforge.core.errors import ConfigError, ErrorKind

if TYPE_CHECKING:
    from packforge.build.profile import Profile
    from packforge.build.project import Project


class InterruptionSignal:
    """Level-triggered record of source changes.

    The watcher thread calls notify(); the runner polls is_interrupted() at
    cycle boundaries. Polling consumes every pending change.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[str] = set()
        self._event = threading.Event()

    def notify(self, source: str) -> None:
        """Record a change of a source tree (e.g. "RP", "BP", "data")."""
        with self._lock:
            self._pending.add(source)
            self._event.set()

    def is_interrupted(self, *ignored_sources: str) -> bool:
        """Consume pending changes.

        Args:
            ignored_sources: Sources whose changes are dropped without
                counting as an interruption.

        Returns:
            True if a change from any other source was pending.
        """
        with self._lock:
            pending = self._pending - set(ignored_sources)
            self._pending.clear()
            self._event.clear()
        return bool(pending)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a change is reported (does not consume it)."""
        return self._event.wait(timeout)


@dataclass
class RunContext:
    """Ephemeral state of a profile run.

    Attributes:
        project: Loaded project configuration.
        profile_name: Name of the profile being run.
        dot_path: Scratch root (``.packforge``).
        parent: Context of the profile that runs this one as a nested filter.
        interruption: Signal fed by the watcher, None outside watch mode.
    """

    project: Project
    profile_name: str
    dot_path: Path
    parent: RunContext | None = None
    interruption: InterruptionSignal | None = field(default=None, repr=False)

    def get_profile(self) -> Profile:
        """Get the profile this context runs."""
        profile = self.project.profiles.get(self.profile_name)
        if profile is None:
            raise ConfigError(
                f"Profile \"{self.profile_name}\" does not exist in the project.",
                ErrorKind.CONFIG_MISSING_KEY,
                json_path=f"profiles->{self.profile_name}",
            )
        return profile

    def child(self, profile_name: str) -> RunContext:
        """Create the context of a nested profile."""
        return RunContext(
            project=self.project,
            profile_name=profile_name,
            dot_path=self.dot_path,
            parent=self,
            interruption=self.interruption,
        )

    def is_interrupted(self, *ignored_sources: str) -> bool:
        """Check the interruption signal (always False outside watch mode)."""
        if self.interruption is None:
            return False
        return self.interruption.is_interrupted(*ignored_sources)

    @property
    def tmp_path(self) -> Path:
        """Workspace directory filters run in."""
        return Path(self.dot_path) / "tmp"
