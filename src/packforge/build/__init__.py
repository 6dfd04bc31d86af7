"""Build pipeline for packforge - workspace sync, filters, install and run."""

from .cache import ContentHashCache
from .context import InterruptionSignal, RunContext
from .exporter import Exporter
from .fetch import GitHubArchiveFetcher, PackageFetcher
from .filters import (
    FilterCollection,
    FilterDefinition,
    FilterRunner,
    LocalDefinition,
    LocalFilter,
    NestedProfileFilter,
    RemoteDefinition,
    RemoteFilter,
    filter_definition_from_object,
    filter_runner_from_object,
    resolve_subfilters,
)
from .installer import DependencyInstaller
from .locators import filter_name_to_url, url_to_path, versioned_locator
from .profile import ExportTarget, Profile, check_profile, resolve_profile
from .project import Project, load_project
from .runner import ProfileRunner, RunStats, run_profile
from .workspace import (
    SyncSettings,
    SyncStats,
    full_recycled_move_or_copy,
    recycled_setup_tmp_files,
    setup_tmp_files,
)

__all__ = [
    "ContentHashCache",
    "DependencyInstaller",
    "ExportTarget",
    "Exporter",
    "FilterCollection",
    "FilterDefinition",
    "FilterRunner",
    "GitHubArchiveFetcher",
    "InterruptionSignal",
    "LocalDefinition",
    "LocalFilter",
    "NestedProfileFilter",
    "PackageFetcher",
    "Profile",
    "ProfileRunner",
    "Project",
    "RemoteDefinition",
    "RemoteFilter",
    "RunContext",
    "RunStats",
    "SyncSettings",
    "SyncStats",
    "check_profile",
    "filter_definition_from_object",
    "filter_name_to_url",
    "filter_runner_from_object",
    "full_recycled_move_or_copy",
    "load_project",
    "recycled_setup_tmp_files",
    "resolve_profile",
    "resolve_subfilters",
    "run_profile",
    "setup_tmp_files",
    "url_to_path",
    "versioned_locator",
]
