"""Source tree watcher feeding the interruption signal.

This module provides:
- SourceEventHandler: maps file system events of one source tree onto
  InterruptionSignal.notify()
- ProjectWatcher: watches the resource, behavior and data trees with
  watchdog
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    DirModifiedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from packforge.build.context import InterruptionSignal
from packforge.core.types import SourceKind

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from packforge.build.project import Project

logger = logging.getLogger(__name__)


class SourceEventHandler(FileSystemEventHandler):
    """Reports every change under one source tree as an interruption."""

    def __init__(self, kind: SourceKind, signal: InterruptionSignal) -> None:
        super().__init__()
        self._kind = kind
        self._signal = signal

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any event."""
        # Directory mtime updates accompany the file events we already get
        if isinstance(event, DirModifiedEvent):
            return
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        logger.debug(f"{self._kind.value} changed: {event.src_path}")
        self._signal.notify(self._kind.value)


class ProjectWatcher:
    """Watches the source trees of a project for changes."""

    def __init__(self, project: Project, signal: InterruptionSignal) -> None:
        """Initialize the watcher.

        Args:
            project: Loaded project; unset or missing trees are not watched.
            signal: Signal notified on every change.
        """
        self._signal = signal
        self._paths: dict[SourceKind, Path] = {}
        for kind, folder in (
            (SourceKind.RESOURCE, project.resource_folder),
            (SourceKind.BEHAVIOR, project.behavior_folder),
            (SourceKind.DATA, project.data_path),
        ):
            if folder and project.resolve_path(folder).is_dir():
                self._paths[kind] = project.resolve_path(folder).resolve()
        self._observer: BaseObserver = Observer()
        self._running = False

    @property
    def watched_paths(self) -> dict[SourceKind, Path]:
        """Watched directory of every source kind."""
        return dict(self._paths)

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def start(self) -> None:
        """Start watching for changes."""
        if self._running:
            return
        for kind, path in self._paths.items():
            self._observer.schedule(SourceEventHandler(kind, self._signal), str(path), recursive=True)
        self._observer.start()
        self._running = True

    def stop(self) -> None:
        """Stop watching for changes."""
        if not self._running:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False

    def __enter__(self) -> ProjectWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
