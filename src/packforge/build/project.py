"""Project configuration loaded from ``config.json``.

Example:
    {
      "name": "my_pack",
      "packs": {"resourcePack": "./packs/RP", "behaviorPack": "./packs/BP"},
      "dataPath": "./packs/data",
      "filterDefinitions": {"gen": {"runWith": "python", "script": "./gen.py"}},
      "profiles": {"default": {"filters": [{"filter": "gen"}],
                               "export": {"target": "local"}}}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from packforge.build.filters import FilterDefinition, filter_definition_from_object
from packforge.build.profile import Profile, resolve_profile
from packforge.core.errors import (
    ConfigError,
    ErrorKind,
    PackforgeError,
    json_path_missing,
    json_path_type,
)

logger = logging.getLogger(__name__)


@dataclass
class Project:
    """A loaded project. Immutable during a run.

    Attributes:
        name: Project name, used for export directory names.
        root: Directory containing config.json.
        resource_folder: Resource pack source path ("" if unset).
        behavior_folder: Behavior pack source path ("" if unset).
        data_path: Data source path ("" if unset).
        filter_definitions: Named filter definitions.
        profiles: Profiles by name.
    """

    name: str
    root: Path
    resource_folder: str = ""
    behavior_folder: str = ""
    data_path: str = ""
    filter_definitions: dict[str, FilterDefinition] = field(default_factory=dict)
    profiles: dict[str, Profile] = field(default_factory=dict)

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured path relative to the project root."""
        return Path(self.root) / path

    @classmethod
    def from_object(cls, obj: dict[str, Any], root: Path) -> Project:
        """Build a project from the parsed config.json object.

        Raises:
            ConfigError: If the configuration has the wrong shape.
            FilterResolutionError: If a filter can't be resolved.
        """
        if "name" not in obj:
            raise json_path_missing("name")
        name = obj["name"]
        if not isinstance(name, str):
            raise json_path_type("name", "string")

        packs = obj.get("packs", {})
        if not isinstance(packs, dict):
            raise json_path_type("packs", "object")
        resource_folder = _optional_string(packs, "resourcePack", "packs->resourcePack")
        behavior_folder = _optional_string(packs, "behaviorPack", "packs->behaviorPack")
        data_path = _optional_string(obj, "dataPath", "dataPath")

        raw_definitions = obj.get("filterDefinitions", {})
        if not isinstance(raw_definitions, dict):
            raise json_path_type("filterDefinitions", "object")
        definitions: dict[str, FilterDefinition] = {}
        for def_name, raw in raw_definitions.items():
            json_path = f"filterDefinitions->{def_name}"
            if not isinstance(raw, dict):
                raise json_path_type(json_path, "object")
            try:
                definitions[def_name] = filter_definition_from_object(def_name, raw, Path(root))
            except PackforgeError as e:
                raise type(e)(
                    f"Failed to parse \"{json_path}\".", e.kind, json_path=json_path
                ) from e

        if "profiles" not in obj:
            raise json_path_missing("profiles")
        raw_profiles = obj["profiles"]
        if not isinstance(raw_profiles, dict):
            raise json_path_type("profiles", "object")
        profiles: dict[str, Profile] = {}
        for profile_name, raw in raw_profiles.items():
            json_path = f"profiles->{profile_name}"
            if not isinstance(raw, dict):
                raise json_path_type(json_path, "object")
            try:
                profiles[profile_name] = resolve_profile(raw, definitions)
            except PackforgeError as e:
                raise type(e)(
                    f"Failed to parse \"{json_path}\".", e.kind, json_path=json_path
                ) from e

        return cls(
            name=name,
            root=Path(root),
            resource_folder=resource_folder,
            behavior_folder=behavior_folder,
            data_path=data_path,
            filter_definitions=definitions,
            profiles=profiles,
        )


def _optional_string(obj: dict[str, Any], key: str, json_path: str) -> str:
    value = obj.get(key, "")
    if not isinstance(value, str):
        raise json_path_type(json_path, "string")
    return value


def load_project(config_file: Path) -> Project:
    """Load a project from its config.json.

    Args:
        config_file: Path to config.json; its directory is the project root.

    Raises:
        ConfigError: If the file is missing, invalid JSON or has the wrong shape.
    """
    config_file = Path(config_file)
    try:
        text = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Couldn't read project configuration \"{config_file}\".",
            ErrorKind.READ,
            path=str(config_file),
        ) from e
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Project configuration \"{config_file}\" is not valid JSON.",
            ErrorKind.CONFIG_INVALID,
            path=str(config_file),
        ) from e
    if not isinstance(obj, dict):
        raise json_path_type("(root)", "object")
    project = Project.from_object(obj, config_file.parent)
    logger.debug(f"Loaded project \"{project.name}\" with {len(project.profiles)} profile(s)")
    return project
