"""Filter definitions and runners.

This module provides:
- FilterDefinition: installer-side description (LocalDefinition,
  RemoteDefinition), built by filter_definition_from_object()
- FilterRunner: one pipeline step (LocalFilter, RemoteFilter,
  NestedProfileFilter), built by filter_runner_from_object()
- FilterCollection: ordered list of runners

Filter entries are classified by their discriminant key before a variant
is constructed:
    "profile" -> NestedProfileFilter
    "url"     -> RemoteFilter (locator taken verbatim, pinned by an
                 optional "version")
    "filter"  -> the named definition, or a RemoteFilter for the
                 repository locator of that name
"""

from __future__ import annotations

import json
import logging
import shlex
import shutil
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from packforge.build.locators import filter_name_to_url, url_to_path, versioned_locator
from packforge.core.errors import (
    ErrorKind,
    FilterNotInstalledError,
    FilterResolutionError,
    FilterRunError,
    NestedRemoteFilterError,
    json_path_type,
)

if TYPE_CHECKING:
    from packforge.build.context import RunContext

logger = logging.getLogger(__name__)

MANIFEST_NAME = "filter.json"

# Interpreters of local filters; "shell" and "exe" run the command directly
RUN_WITH_INTERPRETERS: dict[str, list[str]] = {
    "python": [sys.executable],
    "nodejs": ["node"],
}
RUN_WITH_KINDS = ("python", "nodejs", "shell", "exe")


def _arguments_from_object(obj: dict[str, Any]) -> tuple[list[str], dict[str, Any]]:
    arguments = obj.get("arguments", [])
    if not isinstance(arguments, list):
        raise json_path_type("arguments", "array")
    settings = obj.get("settings", {})
    if not isinstance(settings, dict):
        raise json_path_type("settings", "object")
    return [str(a) for a in arguments], dict(settings)


def _disabled_from_object(obj: dict[str, Any]) -> bool:
    disabled = obj.get("disabled", False)
    if not isinstance(disabled, bool):
        raise json_path_type("disabled", "boolean")
    return disabled


def _version_from_object(obj: dict[str, Any]) -> str:
    version = obj.get("version", "")
    if not isinstance(version, str):
        raise json_path_type("version", "string")
    return version


# === Runners ===


@dataclass
class FilterRunner(ABC):
    """One executable pipeline step.

    Attributes:
        filter_id: Identifier (empty for anonymous entries such as nested
            profiles).
        disabled: Disabled filters are skipped without being run.
        arguments: Extra command-line arguments.
        settings: Declared JSON configuration passed to the filter.
    """

    filter_id: str
    disabled: bool = False
    arguments: list[str] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)

    def is_disabled(self) -> bool:
        return self.disabled

    def copy_arguments(self, source: FilterRunner) -> None:
        """Take over the invocation arguments of another runner."""
        self.arguments = list(source.arguments)
        self.settings = dict(source.settings)

    @abstractmethod
    def check(self, context: RunContext) -> None:
        """Validate the filter before any run.

        Raises:
            PackforgeError: If the filter can't run.
        """

    @abstractmethod
    def run(self, context: RunContext) -> bool:
        """Run the filter in the workspace.

        Returns:
            True if the run was interrupted by a source change.

        Raises:
            PackforgeError: If the filter fails.
        """


@dataclass
class FilterCollection:
    """Ordered list of filters; order is execution order."""

    filters: list[FilterRunner] = field(default_factory=list)

    def __iter__(self) -> Iterator[FilterRunner]:
        return iter(self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def check(self, context: RunContext) -> None:
        for f in self.filters:
            f.check(context)

    def run(self, context: RunContext) -> bool:
        """Run every enabled filter in order.

        Returns:
            True as soon as a filter reports an interruption; the remaining
            filters are not run.
        """
        for f in self.filters:
            if f.is_disabled():
                logger.info(f"Filter \"{f.filter_id}\" is disabled, skipping.")
                continue
            # Nested profiles have no id
            if f.filter_id:
                logger.info(f"Running filter {f.filter_id}")
            start = time.monotonic()
            try:
                interrupted = f.run(context)
            except FilterRunError:
                raise
            except Exception as e:
                raise FilterRunError(
                    f"Failed to run filter \"{f.filter_id}\".",
                    ErrorKind.FILTER_RUN,
                    filter_id=f.filter_id,
                ) from e
            logger.debug(f"Executed in {time.monotonic() - start:.3f}s")
            if interrupted:
                return True
        return False


@dataclass
class LocalFilter(FilterRunner):
    """Filter executed as a local process in the workspace directory."""

    definition: LocalDefinition | None = None

    def _definition(self) -> LocalDefinition:
        if self.definition is None:
            raise FilterResolutionError(
                f"Filter \"{self.filter_id}\" has no definition.",
                ErrorKind.FILTER_UNKNOWN_TYPE,
                filter_id=self.filter_id,
            )
        return self.definition

    def check(self, context: RunContext) -> None:
        definition = self._definition()
        if definition.run_with in RUN_WITH_INTERPRETERS:
            interpreter = RUN_WITH_INTERPRETERS[definition.run_with][0]
            if shutil.which(interpreter) is None:
                raise FilterResolutionError(
                    f"\"{interpreter}\" is required by filter \"{self.filter_id}\" "
                    "but it was not found.",
                    ErrorKind.FILTER_CHECK,
                    filter_id=self.filter_id,
                )
        if definition.run_with != "shell" and not definition.entry_point().exists():
            raise FilterResolutionError(
                f"Filter \"{self.filter_id}\" entry point "
                f"\"{definition.entry_point()}\" does not exist.",
                ErrorKind.FILTER_CHECK,
                filter_id=self.filter_id,
                path=str(definition.entry_point()),
            )

    def command_line(self) -> list[str] | str:
        """Build the command that runs this filter."""
        definition = self._definition()
        settings_arg = json.dumps(self.settings)
        if definition.run_with == "shell":
            parts = [definition.command, shlex.quote(settings_arg)]
            parts.extend(shlex.quote(a) for a in self.arguments)
            return " ".join(parts)
        command = list(RUN_WITH_INTERPRETERS.get(definition.run_with, []))
        command.append(str(definition.entry_point()))
        command.append(settings_arg)
        command.extend(self.arguments)
        return command

    def run(self, context: RunContext) -> bool:
        command = self.command_line()
        logger.debug(f"Executing {command} in {context.tmp_path}")
        try:
            result = subprocess.run(
                command,
                cwd=context.tmp_path,
                shell=isinstance(command, str),
                check=False,
            )
        except OSError as e:
            raise FilterRunError(
                f"Failed to start filter \"{self.filter_id}\".",
                ErrorKind.FILTER_RUN,
                filter_id=self.filter_id,
            ) from e
        if result.returncode != 0:
            raise FilterRunError(
                f"Filter \"{self.filter_id}\" exited with code {result.returncode}.",
                ErrorKind.FILTER_RUN,
                filter_id=self.filter_id,
                returncode=result.returncode,
            )
        return context.is_interrupted()


@dataclass
class RemoteFilter(FilterRunner):
    """Filter whose implementation is an installed remote package.

    The sub-filters declared by the package manifest are resolved on first
    use and kept for the rest of the run.
    """

    url: str = ""
    version: str = ""
    _subfilters: FilterCollection | None = field(default=None, repr=False, compare=False)

    @property
    def locator(self) -> str:
        """Locator to install, pinned to the version when one is set."""
        return versioned_locator(self.url, self.version)

    def download_path(self, dot_path: Path) -> Path:
        """Installation directory of the package."""
        return url_to_path(Path(dot_path) / "cache", self.locator)

    def subfilter_collection(self, dot_path: Path) -> FilterCollection:
        """Resolve the sub-filters declared in the package manifest.

        Raises:
            FilterNotInstalledError: If the manifest can't be read.
            NestedRemoteFilterError: If the manifest references another
                remote filter.
            FilterResolutionError: If the manifest has the wrong shape.
        """
        if self._subfilters is None:
            self._subfilters = resolve_subfilters(self, self.download_path(dot_path))
        return self._subfilters

    def check(self, context: RunContext) -> None:
        path = self.download_path(context.dot_path)
        if not path.exists():
            raise FilterNotInstalledError(
                f"Filter \"{self.filter_id}\" is not installed.\n"
                "You can install all of the filters by running:\n"
                "packforge install-all",
                filter_id=self.filter_id,
                path=str(path),
            )
        self.subfilter_collection(context.dot_path).check(context)

    def run(self, context: RunContext) -> bool:
        return self.subfilter_collection(context.dot_path).run(context)


@dataclass
class NestedProfileFilter(FilterRunner):
    """Filter that runs every filter of another profile."""

    profile: str = ""

    def check(self, context: RunContext) -> None:
        parent: RunContext | None = context
        while parent is not None:
            if parent.profile_name == self.profile:
                raise FilterResolutionError(
                    f"Found circular dependency in the nested profile \"{self.profile}\".",
                    ErrorKind.FILTER_CHECK,
                    profile=self.profile,
                )
            parent = parent.parent
        child = context.child(self.profile)
        child.get_profile().filters.check(child)

    def run(self, context: RunContext) -> bool:
        child = context.child(self.profile)
        return child.get_profile().filters.run(child)


# === Definitions ===


@dataclass
class FilterDefinition(ABC):
    """Installer-side description of a filter."""

    filter_id: str

    @abstractmethod
    def create_runner(self, filter_id: str, obj: dict[str, Any]) -> FilterRunner:
        """Construct a runner for a profile or manifest entry.

        Args:
            filter_id: Identifier of the runner.
            obj: The entry object (read only).
        """


@dataclass
class LocalDefinition(FilterDefinition):
    """Filter executed from a script or command on this machine.

    Attributes:
        run_with: One of "python", "nodejs", "shell", "exe".
        script: Script path (python/nodejs) or executable path (exe).
        command: Shell command (shell).
        base_path: Directory relative script paths resolve against.
    """

    run_with: str = ""
    script: str = ""
    command: str = ""
    base_path: Path = field(default_factory=Path)

    def entry_point(self) -> Path:
        return Path(self.base_path) / self.script

    def create_runner(self, filter_id: str, obj: dict[str, Any]) -> FilterRunner:
        arguments, settings = _arguments_from_object(obj)
        return LocalFilter(
            filter_id=filter_id,
            disabled=_disabled_from_object(obj),
            arguments=arguments,
            settings=settings,
            definition=self,
        )


@dataclass
class RemoteDefinition(FilterDefinition):
    """Filter installed from a remote package."""

    url: str = ""
    version: str = ""

    def create_runner(self, filter_id: str, obj: dict[str, Any]) -> FilterRunner:
        arguments, settings = _arguments_from_object(obj)
        return RemoteFilter(
            filter_id=filter_id,
            disabled=_disabled_from_object(obj),
            arguments=arguments,
            settings=settings,
            url=self.url,
            version=self.version,
        )


def filter_definition_from_object(
    filter_id: str, obj: dict[str, Any], base_path: Path
) -> FilterDefinition:
    """Build a filter definition from a definition or manifest entry.

    Args:
        filter_id: Identifier of the definition.
        obj: JSON object.
        base_path: Directory relative script paths resolve against.

    Raises:
        FilterResolutionError: If the object matches no filter type.
    """
    if "url" in obj:
        url = obj["url"]
        if not isinstance(url, str):
            raise json_path_type("url", "string")
        return RemoteDefinition(
            filter_id=filter_id, url=url, version=_version_from_object(obj)
        )

    if "runWith" in obj:
        run_with = obj["runWith"]
        if run_with not in RUN_WITH_KINDS:
            raise FilterResolutionError(
                f"Unknown runWith value \"{run_with}\" of filter \"{filter_id}\".",
                ErrorKind.FILTER_UNKNOWN_TYPE,
                filter_id=filter_id,
            )
        key = "command" if run_with == "shell" else "script"
        value = obj.get(key)
        if not isinstance(value, str) or not value:
            raise json_path_type(key, "string")
        if run_with == "shell":
            return LocalDefinition(
                filter_id=filter_id, run_with=run_with, command=value, base_path=base_path
            )
        return LocalDefinition(
            filter_id=filter_id, run_with=run_with, script=value, base_path=base_path
        )

    if "filter" in obj:
        # Bare reference to a named filter of the repository
        name = obj["filter"]
        if not isinstance(name, str):
            raise json_path_type("filter", "string")
        return RemoteDefinition(filter_id=filter_id, url=filter_name_to_url(name))

    raise FilterResolutionError(
        f"Unable to determine the type of filter \"{filter_id}\".",
        ErrorKind.FILTER_UNKNOWN_TYPE,
        filter_id=filter_id,
    )


def filter_runner_from_object(
    obj: dict[str, Any], definitions: dict[str, FilterDefinition]
) -> FilterRunner:
    """Build the runner of a profile entry.

    Raises:
        FilterResolutionError: If the entry has no known discriminant.
        ConfigError: If a property has the wrong type.
    """
    if "profile" in obj:
        profile = obj["profile"]
        if not isinstance(profile, str):
            raise json_path_type("profile", "string")
        return NestedProfileFilter(
            filter_id="", disabled=_disabled_from_object(obj), profile=profile
        )

    if "url" in obj:
        url = obj["url"]
        if not isinstance(url, str):
            raise json_path_type("url", "string")
        name = obj.get("filter", url)
        definition = RemoteDefinition(
            filter_id=str(name), url=url, version=_version_from_object(obj)
        )
        return definition.create_runner(str(name), obj)

    if "filter" in obj:
        name = obj["filter"]
        if not isinstance(name, str):
            raise json_path_type("filter", "string")
        definition = definitions.get(name)
        if definition is None:
            definition = RemoteDefinition(filter_id=name, url=filter_name_to_url(name))
        return definition.create_runner(name, obj)

    raise FilterResolutionError(
        "Unable to determine the type of the filter entry. "
        "Expected one of the properties \"filter\", \"url\" or \"profile\".",
        ErrorKind.FILTER_UNKNOWN_TYPE,
    )


def resolve_subfilters(remote: RemoteFilter, install_path: Path) -> FilterCollection:
    """Expand the manifest of an installed remote filter into sub-filters.

    The i-th manifest entry becomes ``"<parentId>:subfilter<i>"`` and
    inherits the arguments the remote filter was invoked with.

    Args:
        remote: The remote filter being expanded.
        install_path: Installation directory holding ``filter.json``.

    Raises:
        FilterNotInstalledError: If the manifest can't be read.
        NestedRemoteFilterError: If an entry resolves to a remote filter.
        FilterResolutionError: If the manifest has the wrong shape.
    """
    path = Path(install_path) / MANIFEST_NAME
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        # The OS error is left out on purpose, it rarely helps here
        raise FilterNotInstalledError(
            f"Couldn't read filter data from path:\n{path}\n"
            "Did you install the filter?\n"
            "You can install all of the filters by running:\n"
            "packforge install-all",
            filter_id=remote.filter_id,
            path=str(path),
        ) from None

    try:
        manifest = json.loads(text)
    except json.JSONDecodeError as e:
        raise FilterResolutionError(
            f"Invalid JSON in filter manifest \"{path}\".",
            ErrorKind.FILTER_INVALID_MANIFEST,
            path=str(path),
        ) from e

    if not isinstance(manifest, dict) or "filters" not in manifest:
        raise FilterResolutionError(
            f"Filter manifest \"{path}\" is missing the \"filters\" property.",
            ErrorKind.FILTER_INVALID_MANIFEST,
            path=str(path),
            json_path="filters",
        )
    entries = manifest["filters"]
    if not isinstance(entries, list):
        raise FilterResolutionError(
            f"Property \"filters\" of filter manifest \"{path}\" must be an array.",
            ErrorKind.FILTER_INVALID_MANIFEST,
            path=str(path),
            json_path="filters",
        )

    result = FilterCollection()
    for i, entry in enumerate(entries):
        json_path = f"filters->{i}"
        if not isinstance(entry, dict):
            raise FilterResolutionError(
                f"Property \"{json_path}\" of filter manifest \"{path}\" must be an object.",
                ErrorKind.FILTER_INVALID_MANIFEST,
                path=str(path),
                json_path=json_path,
            )
        filter_id = f"{remote.filter_id}:subfilter{i}"
        try:
            # The same object describes the definition and the runner
            definition = filter_definition_from_object(filter_id, entry, Path(install_path))
            runner = definition.create_runner(filter_id, entry)
        except FilterResolutionError as e:
            raise FilterResolutionError(
                f"Failed to parse \"{json_path}\" of filter manifest \"{path}\".",
                e.kind,
                path=str(path),
                json_path=json_path,
            ) from e
        except Exception as e:
            raise FilterResolutionError(
                f"Failed to parse \"{json_path}\" of filter manifest \"{path}\".",
                ErrorKind.FILTER_INVALID_MANIFEST,
                path=str(path),
                json_path=json_path,
            ) from e
        if isinstance(runner, RemoteFilter):
            raise NestedRemoteFilterError(
                "Detected a reference to a remote filter inside another remote filter.\n"
                "This feature is not supported.\n"
                f"Filter name: {remote.filter_id}\n"
                f"Filter configuration file: {path}\n"
                f"JSON path to remote filter reference: {json_path}",
                filter_id=remote.filter_id,
                path=str(path),
                json_path=json_path,
            )
        runner.copy_arguments(remote)
        result.filters.append(runner)
    return result
