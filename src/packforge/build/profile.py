"""Profiles: ordered filter pipelines plus an export target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from packforge.build.filters import (
    FilterCollection,
    FilterDefinition,
    filter_runner_from_object,
)
from packforge.core.errors import (
    ConfigError,
    ErrorKind,
    FilterResolutionError,
    PackforgeError,
    json_path_missing,
    json_path_type,
)

if TYPE_CHECKING:
    from packforge.build.context import RunContext

EXPORT_TARGETS = ("local", "exact")


@dataclass
class ExportTarget:
    """Where finished packs are exported.

    Attributes:
        target: "local" (``build/`` inside the project) or "exact".
        rp_path: Resource pack destination (exact target).
        bp_path: Behavior pack destination (exact target).
        read_only: Accepted for compatibility; local and exact exports
            ignore it.
    """

    target: str
    rp_path: str = ""
    bp_path: str = ""
    read_only: bool = False

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ExportTarget:
        """Parse an export object.

        Raises:
            ConfigError: If the object has the wrong shape.
        """
        if "target" not in obj:
            raise json_path_missing("target")
        target = obj["target"]
        if target not in EXPORT_TARGETS:
            raise ConfigError(
                f"Unknown export target \"{target}\". "
                f"Expected one of: {', '.join(EXPORT_TARGETS)}.",
                ErrorKind.CONFIG_INVALID,
                json_path="target",
            )
        result = cls(target=target)
        for key, attr in (("rpPath", "rp_path"), ("bpPath", "bp_path")):
            value = obj.get(key, "")
            if not isinstance(value, str):
                raise json_path_type(key, "string")
            if target == "exact" and not value:
                raise json_path_missing(key)
            setattr(result, attr, value)
        read_only = obj.get("readOnly", False)
        if not isinstance(read_only, bool):
            raise json_path_type("readOnly", "boolean")
        result.read_only = read_only
        return result


@dataclass
class Profile:
    """A named, ordered pipeline of filters plus one export target."""

    filters: FilterCollection = field(default_factory=FilterCollection)
    export_target: ExportTarget = field(default_factory=lambda: ExportTarget("local"))


def resolve_profile(
    obj: dict[str, Any], definitions: dict[str, FilterDefinition]
) -> Profile:
    """Turn a raw profile object into a Profile.

    Args:
        obj: ``{"filters": [...], "export": {...}}``.
        definitions: Filter definitions of the project, by name.

    Raises:
        ConfigError: If a key is missing or has the wrong type.
        FilterResolutionError: If a filter entry can't be classified.
    """
    if "filters" not in obj:
        raise json_path_missing("filters")
    entries = obj["filters"]
    if not isinstance(entries, list):
        raise json_path_type("filters", "array")

    result = Profile()
    for i, entry in enumerate(entries):
        json_path = f"filters->{i}"
        if not isinstance(entry, dict):
            raise json_path_type(json_path, "object")
        try:
            runner = filter_runner_from_object(entry, definitions)
        except PackforgeError as e:
            raise type(e)(
                f"Failed to parse \"{json_path}\".", e.kind, json_path=json_path, index=i
            ) from e
        result.filters.filters.append(runner)

    if "export" not in obj:
        raise json_path_missing("export")
    export = obj["export"]
    if not isinstance(export, dict):
        raise json_path_type("export", "object")
    try:
        result.export_target = ExportTarget.from_object(export)
    except ConfigError as e:
        raise ConfigError(
            "Failed to parse \"export\".", e.kind, json_path="export"
        ) from e
    return result


def check_profile(context: RunContext) -> None:
    """Check every filter of the context's profile before running it.

    Raises:
        FilterResolutionError: If a filter fails its check (wrapped with the
            filter id).
    """
    for f in context.get_profile().filters:
        try:
            f.check(context)
        except PackforgeError as e:
            raise FilterResolutionError(
                f"Filter \"{f.filter_id}\" failed the check.",
                ErrorKind.FILTER_CHECK,
                filter_id=f.filter_id,
            ) from e

