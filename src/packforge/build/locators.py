"""Dependency locators of remote filter packages.

A locator is ``github.com/<owner>/<repo>[//<subdir>][?ref=<version>]``.
Pinned versions are installed next to the unpinned package, in a
directory suffixed with ``@<version>``.
"""

from __future__ import annotations

from pathlib import Path

from packforge.core.config import DEFAULT_FILTER_REPOSITORY

REF_QUERY = "?ref="


def filter_name_to_url(name: str, repository: str = DEFAULT_FILTER_REPOSITORY) -> str:
    """Map a named filter onto its locator in the filter repository."""
    return f"{repository}//{name}"


def versioned_locator(url: str, version: str = "") -> str:
    """Pin a locator to a version; an empty version keeps the default ref."""
    if not version:
        return url
    return f"{url}{REF_QUERY}{version}"


def url_to_path(cache_root: Path, url: str) -> Path:
    """Get the installation directory of a locator.

    The locator is used verbatim, so separators inside it become nested
    cache directories.
    """
    locator, _, version = url.partition(REF_QUERY)
    path = Path(cache_root) / locator
    if version:
        path = path.with_name(f"{path.name}@{version.replace('/', '_')}")
    return path
