"""Pytest fixtures shared by the packforge tests.

This module provides a small project on disk (resource, behavior and data
trees plus a config.json) and helpers to build configurations.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from packforge.build.cache import ContentHashCache
from packforge.build.project import Project


def build_config(filters: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    """Build a config.json object with a single "default" profile."""
    config: dict[str, Any] = {
        "name": "demo",
        "packs": {"resourcePack": "./packs/RP", "behaviorPack": "./packs/BP"},
        "dataPath": "./packs/data",
        "filterDefinitions": {},
        "profiles": {
            "default": {"filters": filters or [], "export": {"target": "local"}},
        },
    }
    config.update(extra)
    return config


def tree_contents(root: Path) -> dict[str, bytes]:
    """Map every file under root to its content."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture(autouse=True)
def reset_packforge_logger() -> Generator[None, None, None]:
    """Undo CLI logging setup so caplog keeps working between tests."""
    yield
    logger = logging.getLogger("packforge")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a project with a few source files and a config.json."""
    root = tmp_path / "project"
    (root / "packs" / "RP" / "textures").mkdir(parents=True)
    (root / "packs" / "RP" / "textures" / "stone.txt").write_text("stone texture")
    (root / "packs" / "RP" / "manifest.json").write_text('{"type": "resources"}')
    (root / "packs" / "BP" / "entities").mkdir(parents=True)
    (root / "packs" / "BP" / "entities" / "cow.json").write_text('{"health": 10}')
    (root / "packs" / "data").mkdir(parents=True)
    (root / "packs" / "data" / "counter.txt").write_text("0")
    (root / "config.json").write_text(json.dumps(build_config()))
    return root


@pytest.fixture
def project(project_dir: Path) -> Project:
    """Load the project created by project_dir."""
    return Project.from_object(build_config(), project_dir)


@pytest.fixture
def cache(tmp_path: Path) -> Generator[ContentHashCache, None, None]:
    """Create a hash cache in a temporary database."""
    c = ContentHashCache(tmp_path / "state" / "hashes.db")
    yield c
    c.close()


@pytest.fixture
def make_config() -> Any:
    """Factory building config.json objects (see build_config)."""
    return build_config


@pytest.fixture
def read_tree() -> Any:
    """Function mapping every file under a directory to its content."""
    return tree_contents
