"""Profile runner state machine.

States:
    SYNC_WORKSPACE -> RUN_FILTERS -> EXPORT_OUTPUT -> DONE
          |               |               |
          +-------> INTERRUPTED <---------+
                          |
                          +--> SYNC_WORKSPACE

    Every state can move to FAILED. DONE and FAILED are terminal.

All state transitions are validated. Recycled (watch) mode syncs the
workspace hash-diffed and saves the workspace state on every
interruption; non-recycled mode rebuilds the workspace from scratch each
cycle. Any failure clears the hash cache before the error is raised, so
the next run starts from a full resync.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from packforge.build.cache import ContentHashCache
from packforge.build.context import RunContext
from packforge.build.exporter import Exporter
from packforge.build.profile import Profile, check_profile
from packforge.build.workspace import (
    CopyHook,
    recycled_setup_tmp_files,
    setup_tmp_files,
)
from packforge.core.errors import (
    CacheError,
    ErrorKind,
    ExportError,
    FileSystemError,
    FilterRunError,
    InvalidTransitionError,
    PackforgeError,
)
from packforge.core.types import RunnerState, SourceKind

logger = logging.getLogger(__name__)

# Valid state transitions
VALID_TRANSITIONS: dict[RunnerState, set[RunnerState]] = {
    RunnerState.SYNC_WORKSPACE: {
        RunnerState.RUN_FILTERS,
        RunnerState.INTERRUPTED,
        RunnerState.FAILED,
    },
    RunnerState.RUN_FILTERS: {
        RunnerState.EXPORT_OUTPUT,
        RunnerState.INTERRUPTED,
        RunnerState.FAILED,
    },
    RunnerState.EXPORT_OUTPUT: {
        RunnerState.DONE,
        RunnerState.INTERRUPTED,
        RunnerState.FAILED,
    },
    RunnerState.INTERRUPTED: {RunnerState.SYNC_WORKSPACE, RunnerState.FAILED},
    RunnerState.DONE: set(),  # Terminal
    RunnerState.FAILED: set(),  # Terminal
}

# Workspace subtrees whose state is saved on interruption
SAVED_SUBTREES = (SourceKind.RESOURCE, SourceKind.BEHAVIOR, SourceKind.DATA)


class ProfileExporter(Protocol):
    """Exports the workspace of a finished profile."""

    def export(self, profile: Profile) -> None: ...


@dataclass
class RunStats:
    """What a profile run did.

    Attributes:
        history: Every state entered, in order.
        copied_files: Files copied by recycled syncs.
    """

    history: list[RunnerState] = field(default_factory=list)
    copied_files: int = 0

    def count(self, state: RunnerState) -> int:
        return self.history.count(state)


class ProfileRunner:
    """Drives sync -> run -> export for one profile, looping on interruptions."""

    def __init__(
        self,
        context: RunContext,
        cache: ContentHashCache | None = None,
        *,
        recycled: bool = False,
        exporter: ProfileExporter | None = None,
        check: bool = True,
        on_state: Callable[[RunnerState], None] | None = None,
        on_copy: CopyHook | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            context: Context of the profile to run.
            cache: Hash cache; required in recycled mode.
            recycled: Use the hash-diffed workspace sync (watch mode).
            exporter: Export backend, defaults to Exporter.
            check: Check every filter before the first cycle.
            on_state: Called with every state entered.
            on_copy: Copy instrumentation hook for recycled syncs.
        """
        if recycled and cache is None:
            raise ValueError("Recycled mode requires a hash cache")
        self._context = context
        self._cache = cache
        self._recycled = recycled
        self._exporter = exporter or Exporter(
            context.project, context.dot_path, cache if recycled else None
        )
        self._check = check
        self._on_state = on_state
        self._on_copy = on_copy
        self._state = RunnerState.SYNC_WORKSPACE
        self.stats = RunStats()

    @property
    def state(self) -> RunnerState:
        """Current state."""
        return self._state

    def _enter(self, new_state: RunnerState, initial: bool = False) -> None:
        if not initial and new_state not in VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.name} to {new_state.name}",
                ErrorKind.INVALID_TRANSITION,
            )
        self._state = new_state
        self.stats.history.append(new_state)
        if self._on_state:
            self._on_state(new_state)

    def run(self) -> RunStats:
        """Run the profile until it is exported.

        Returns:
            Statistics of the run.

        Raises:
            PackforgeError: If sync, a filter, export or cache persistence
                fails. The hash cache is cleared first.
        """
        if not self._recycled:
            # Never mix with state left by a recycled run
            self._clear_cached_states()

        profile = self._context.get_profile()
        if self._check:
            check_profile(self._context)

        self._enter(RunnerState.SYNC_WORKSPACE, initial=True)
        while True:
            try:
                if self._state is RunnerState.SYNC_WORKSPACE:
                    next_state = self._sync_workspace()
                elif self._state is RunnerState.RUN_FILTERS:
                    next_state = self._run_filters(profile)
                elif self._state is RunnerState.EXPORT_OUTPUT:
                    next_state = self._export_output(profile)
                elif self._state is RunnerState.INTERRUPTED:
                    next_state = self._save_interrupted_state()
                else:
                    return self.stats
            except PackforgeError:
                self._clear_cached_states()
                self._enter(RunnerState.FAILED)
                raise
            self._enter(next_state)

    # === States ===

    def _sync_workspace(self) -> RunnerState:
        project = self._context.project
        dot_path = self._context.dot_path
        cache = self._cache
        try:
            if self._recycled and cache is not None:
                result = recycled_setup_tmp_files(project, dot_path, cache, self._on_copy)
                self.stats.copied_files += result.copied
            else:
                setup_tmp_files(project, dot_path)
        except PackforgeError:
            raise
        except OSError as e:
            raise FileSystemError(
                f"Failed to set up the workspace in \"{dot_path}\".",
                ErrorKind.COPY,
                path=str(dot_path),
            ) from e
        if self._context.is_interrupted():
            return RunnerState.INTERRUPTED
        return RunnerState.RUN_FILTERS

    def _run_filters(self, profile: Profile) -> RunnerState:
        try:
            interrupted = profile.filters.run(self._context)
        except FilterRunError:
            raise
        except PackforgeError as e:
            raise FilterRunError(
                f"Failed to run profile \"{self._context.profile_name}\".",
                ErrorKind.FILTER_RUN,
                profile=self._context.profile_name,
            ) from e
        if interrupted:
            return RunnerState.INTERRUPTED
        return RunnerState.EXPORT_OUTPUT

    def _export_output(self, profile: Profile) -> RunnerState:
        logger.info("Moving files to target directory.")
        start = time.monotonic()
        try:
            self._exporter.export(profile)
        except ExportError:
            raise
        except (OSError, PackforgeError) as e:
            raise ExportError(
                "Failed to export the project.", ErrorKind.EXPORT
            ) from e
        # The exporter writes the data tree back to its source, so changes
        # of the data path don't count
        if self._context.is_interrupted(SourceKind.DATA.value):
            return RunnerState.INTERRUPTED
        logger.debug(f"Done in {time.monotonic() - start:.3f}s")
        return RunnerState.DONE

    def _save_interrupted_state(self) -> RunnerState:
        logger.info("Changes detected, restarting.")
        cache = self._cache
        if not self._recycled or cache is None:
            return RunnerState.SYNC_WORKSPACE
        try:
            for kind in SAVED_SUBTREES:
                cache.save_state(self._context.tmp_path / kind.value)
        except CacheError as e:
            raise CacheError(
                "Failed to save file path states in cache.",
                ErrorKind.CACHE_SAVE,
            ) from e
        return RunnerState.SYNC_WORKSPACE

    def _clear_cached_states(self) -> None:
        """Clear the hash cache, logging instead of raising on failure."""
        if self._cache is None:
            return
        try:
            self._cache.clear_cached_states()
        except CacheError as e:
            logger.error(f"Failed to clear cached file states: {e}")


def run_profile(
    context: RunContext,
    cache: ContentHashCache | None = None,
    recycled: bool = False,
) -> RunStats:
    """Run a profile once (or until no interruption is pending in watch mode)."""
    return ProfileRunner(context, cache, recycled=recycled).run()
