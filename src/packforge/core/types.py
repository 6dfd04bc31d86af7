"""Shared types for packforge."""

from __future__ import annotations

from enum import Enum


class SourceKind(str, Enum):
    """Project source trees synchronized into the workspace.

    The value is the name of the matching workspace subdirectory.
    """

    RESOURCE = "RP"
    BEHAVIOR = "BP"
    DATA = "data"


class RunnerState(str, Enum):
    """State of the profile runner loop."""

    SYNC_WORKSPACE = "sync_workspace"
    RUN_FILTERS = "run_filters"
    EXPORT_OUTPUT = "export_output"
    INTERRUPTED = "interrupted"
    DONE = "done"
    FAILED = "failed"
